# leadflow/services/activity.py

from fastapi import Request
from sqlalchemy.future import select

from leadflow.config import settings
from leadflow.models.activity_log import ActivityLog
from leadflow.models.enums import ActivityAction
from leadflow.models.user import User
from leadflow.schemas.activity import ActivityEntry, ActivityActor
from leadflow.utils.database import AsyncSessionLocal


def client_ip(request: Request) -> str:
    """IP вызывающего: из middleware, иначе из заголовка / сокета."""
    ip = getattr(request.state, "client_ip", None)
    if ip:
        return ip
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


async def record_activity(
    request: Request,
    user_id: int,
    action: ActivityAction,
    details: str = "",
) -> bool:
    """
    Добавляет запись в журнал активности.

    Запись идёт в отдельной сессии: основное действие к этому моменту уже
    закоммичено, и ошибка журнала не должна его откатить или сломать ответ.
    Любая ошибка логируется и гасится. Возвращает True, если запись сохранена.
    """
    log = getattr(request.app.state, "log", None)
    try:
        async with AsyncSessionLocal() as session:
            session.add(ActivityLog(
                user_id=user_id,
                action=ActivityAction(action).value,
                details=details,
                ip_address=client_ip(request),
            ))
            await session.commit()
        return True
    except Exception as e:
        if log:
            await log.log_error(
                "activity",
                f"Не удалось записать активность: {e}",
                {"user_id": user_id, "action": action, "details": details},
            )
        return False


async def read_activity_logs(request: Request, limit: int | None = None) -> list[ActivityEntry]:
    """
    Последние записи журнала, новые первыми.
    Автор подтягивается outer join'ом: для удалённых пользователей user = None.
    """
    db = request.state.db
    log = request.app.state.log
    limit = limit or settings.ACTIVITY_LOG_LIMIT

    result = await db.execute(
        select(ActivityLog, User)
        .outerjoin(User, User.id == ActivityLog.user_id)
        .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
        .limit(limit)
    )

    entries = []
    for entry, user in result.all():
        entries.append(ActivityEntry(
            id=entry.id,
            action=entry.action,
            details=entry.details or "",
            ip_address=entry.ip_address or "",
            timestamp=entry.timestamp,
            user_id=entry.user_id,
            user=ActivityActor.model_validate(user) if user is not None else None,
        ))

    await log.log_info("activity", f"{len(entries)} записей журнала загружено")
    return entries
