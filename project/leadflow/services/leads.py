# leadflow/services/leads.py

from sqlalchemy import func
from sqlalchemy.future import select
from fastapi import HTTPException, Request, status

from leadflow.config import settings
from leadflow.models.enums import ActivityAction, LeadStatus
from leadflow.models.lead import Lead as LeadModel, LeadNote
from leadflow.models.user import User
from leadflow.schemas.lead import LeadCreate, LeadUpdate, LeadPage, LeadStats, Pagination
from leadflow.services import access, spreadsheet
from leadflow.services.activity import record_activity


async def _get_lead(request: Request, id: int, action: str) -> LeadModel:
    """Загрузка лида со связями; 404, если его нет."""
    db = request.state.db
    db_lead = None
    if access.in_id_range(id):
        result = await db.execute(
            select(LeadModel)
            .where(LeadModel.id == id)
            .execution_options(populate_existing=True)
        )
        db_lead = result.scalar_one_or_none()
    if db_lead is None:
        await request.app.state.log.log_error("lead", f"Лид не найден ({action})", {"id": id})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
    return db_lead


async def _ensure_user_exists(request: Request, user_id: int | None):
    if user_id is None:
        return
    db = request.state.db
    found = None
    if access.in_id_range(user_id):
        found = (await db.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none()
    if found is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assigned user not found")


async def _deny(request: Request, current_user: User, message: str, id: int):
    await request.app.state.log.log_warning(
        "lead", "Доступ запрещён", {"id": id, "user_id": current_user.id, "role": current_user.role}
    )
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


# ==========================================================
# ЧТЕНИЕ
# ==========================================================
async def read_leads_service(request: Request, current_user: User, query: access.LeadQuery) -> LeadPage:
    """
    Список лидов с фильтрами, пагинацией и ограничением по роли.
    """
    db = request.state.db
    log = request.app.state.log

    lead_filter = access.build_lead_filter(current_user.role, current_user.id, query)
    conditions = lead_filter.conditions()

    total = (await db.execute(
        select(func.count()).select_from(LeadModel).where(*conditions)
    )).scalar_one()

    result = await db.execute(
        select(LeadModel)
        .where(*conditions)
        .order_by(LeadModel.created_at.desc(), LeadModel.id.desc())
        .offset(lead_filter.offset)
        .limit(lead_filter.limit)
    )
    leads = result.scalars().all()

    await log.log_info("lead", f"{len(leads)} лидов загружено", {"total": total, "filter": lead_filter})
    return LeadPage(
        items=leads,
        pagination=Pagination(
            total=total,
            page=lead_filter.page,
            pages=access.page_count(total, lead_filter.limit),
            limit=lead_filter.limit,
        ),
    )


async def read_lead_service(id: int, request: Request, current_user: User) -> LeadModel:
    """
    Чтение лида по ID: сначала существование, затем право чтения.
    """
    db_lead = await _get_lead(request, id, "чтение")
    if not access.can_read_lead(current_user.role, current_user.id, db_lead.assigned_to):
        await _deny(request, current_user, "Not authorized to view this lead", id)

    await request.app.state.log.log_info("lead", "Лид загружен", {"id": id})
    return db_lead


# ==========================================================
# ИЗМЕНЕНИЕ
# ==========================================================
async def create_lead_service(lead: LeadCreate, request: Request, current_user: User) -> LeadModel:
    """
    Создание нового лида.
    Лид, созданный агентом, всегда назначается на него самого.
    """
    db = request.state.db
    log = request.app.state.log

    data = lead.model_dump()
    data["assigned_to"] = access.creation_assignee(current_user.role, current_user.id, data.get("assigned_to"))
    await _ensure_user_exists(request, data["assigned_to"])

    db_lead = LeadModel(**data)
    db.add(db_lead)
    await db.commit()
    db_lead = await _get_lead(request, db_lead.id, "создание")

    await log.log_info("lead", "Лид создан", {"id": db_lead.id, "assigned_to": db_lead.assigned_to})
    await record_activity(request, current_user.id, ActivityAction.CREATE_LEAD, f"Created lead: {db_lead.name}")
    return db_lead


async def update_lead_service(id: int, lead_update: LeadUpdate, request: Request, current_user: User) -> LeadModel:
    """
    Обновление лида по ID.
    Порядок: существование (404) -> право (403) -> изменение.
    """
    db = request.state.db
    log = request.app.state.log

    db_lead = await _get_lead(request, id, "обновление")
    if not access.can_update_lead(current_user.role, current_user.id, db_lead.assigned_to):
        await _deny(request, current_user, "Not authorized to update this lead", id)

    changes = lead_update.model_dump(exclude_unset=True)
    if not access.has_capability(current_user.role, access.Capability.ASSIGN_LEADS):
        # агент не может переназначить лид
        changes.pop("assigned_to", None)
    elif "assigned_to" in changes:
        await _ensure_user_exists(request, changes["assigned_to"])

    for key, value in changes.items():
        if value is None and key != "assigned_to":
            continue  # обязательные поля не обнуляем
        setattr(db_lead, key, value)

    db.add(db_lead)
    await db.commit()
    db_lead = await _get_lead(request, id, "обновление")

    await log.log_info("lead", "Лид обновлён", {"id": id, "fields": sorted(changes)})
    await record_activity(request, current_user.id, ActivityAction.UPDATE_LEAD, f"Updated lead: {db_lead.name}")
    return db_lead


async def delete_lead_service(id: int, request: Request, current_user: User) -> None:
    """
    Удаление лида по ID (только админы).
    """
    db = request.state.db
    log = request.app.state.log

    db_lead = await _get_lead(request, id, "удаление")
    if not access.can_delete_lead(current_user.role):
        await _deny(request, current_user, "Not authorized to delete leads", id)

    name = db_lead.name
    await db.delete(db_lead)
    await db.commit()

    await log.log_info("lead", "Лид удалён", {"id": id})
    await record_activity(request, current_user.id, ActivityAction.DELETE_LEAD, f"Deleted lead: {name}")


# ==========================================================
# ЗАМЕТКИ
# ==========================================================
async def add_note_service(id: int, text: str, request: Request, current_user: User) -> LeadModel:
    """Добавляет заметку; достаточно права чтения лида."""
    db = request.state.db
    log = request.app.state.log

    db_lead = await read_lead_service(id, request, current_user)
    db_lead.notes.append(LeadNote(text=text, author=current_user.name))
    db.add(db_lead)
    await db.commit()
    db_lead = await _get_lead(request, id, "заметка")

    await log.log_info("lead", "Заметка добавлена", {"id": id})
    await record_activity(request, current_user.id, ActivityAction.ADD_NOTE, f"Added note to lead: {db_lead.name}")
    return db_lead


async def delete_note_service(id: int, note_id: int, request: Request, current_user: User) -> LeadModel:
    """Удаляет одну заметку лида; 404, если заметки нет."""
    db = request.state.db
    log = request.app.state.log

    db_lead = await read_lead_service(id, request, current_user)
    note = next((n for n in db_lead.notes if n.id == note_id), None)
    if note is None:
        await log.log_error("lead", "Заметка не найдена", {"id": id, "note_id": note_id})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")

    db_lead.notes.remove(note)
    db.add(db_lead)
    await db.commit()
    db_lead = await _get_lead(request, id, "заметка")

    await log.log_info("lead", "Заметка удалена", {"id": id, "note_id": note_id})
    await record_activity(request, current_user.id, ActivityAction.DELETE_NOTE, f"Deleted note from lead: {db_lead.name}")
    return db_lead


# ==========================================================
# СТАТИСТИКА
# ==========================================================
async def lead_stats_service(request: Request, current_user: User) -> LeadStats:
    """
    Сводка для дашборда по видимым пользователю лидам:
    всего, по статусам, по ответственным, последние N.
    """
    db = request.state.db
    log = request.app.state.log

    visible = access.build_lead_filter(current_user.role, current_user.id, access.LeadQuery()).conditions()

    total = (await db.execute(
        select(func.count()).select_from(LeadModel).where(*visible)
    )).scalar_one()

    by_status = dict((await db.execute(
        select(LeadModel.status, func.count()).where(*visible).group_by(LeadModel.status)
    )).all())

    agents = (await db.execute(
        select(LeadModel.assigned_to, User.name, func.count(LeadModel.id))
        .outerjoin(User, User.id == LeadModel.assigned_to)
        .where(*visible)
        .group_by(LeadModel.assigned_to, User.name)
        .order_by(func.count(LeadModel.id).desc())
    )).all()

    recent = (await db.execute(
        select(LeadModel)
        .where(*visible)
        .order_by(LeadModel.created_at.desc(), LeadModel.id.desc())
        .limit(settings.STATS_RECENT_LIMIT)
    )).scalars().all()

    await log.log_info("lead", "Статистика рассчитана", {"total": total})
    return LeadStats(
        total_leads=total,
        status_distribution=[
            {"status": s, "count": by_status.get(s, 0)} for s in LeadStatus
        ],
        agent_performance=[
            {"agent_id": agent_id, "name": name, "count": count} for agent_id, name, count in agents
        ],
        recent_leads=recent,
    )


# ==========================================================
# ИМПОРТ / ЭКСПОРТ
# ==========================================================
async def export_leads_service(request: Request, current_user: User, query: access.LeadQuery) -> bytes:
    """
    Экспорт в xlsx тех же лидов, что видны в списке (без пагинации).
    """
    db = request.state.db
    log = request.app.state.log

    conditions = access.build_lead_filter(current_user.role, current_user.id, query).conditions()
    result = await db.execute(
        select(LeadModel).where(*conditions).order_by(LeadModel.created_at.desc(), LeadModel.id.desc())
    )
    leads = result.scalars().all()
    content = spreadsheet.write_leads(leads)

    await log.log_info("lead", "Экспорт лидов", {"count": len(leads)})
    await record_activity(request, current_user.id, ActivityAction.EXPORT_LEADS, f"Exported {len(leads)} leads")
    return content


async def import_leads_service(content: bytes, request: Request, current_user: User) -> tuple[int, int]:
    """
    Массовое создание лидов из xlsx. Возвращает (создано, пропущено).
    """
    db = request.state.db
    log = request.app.state.log

    try:
        rows, skipped = spreadsheet.read_leads(content)
    except spreadsheet.SpreadsheetError as e:
        await log.log_error("lead", f"Ошибка разбора файла импорта: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid spreadsheet file")

    db.add_all([LeadModel(**row) for row in rows])
    await db.commit()

    await log.log_info("lead", "Импорт лидов", {"count": len(rows), "skipped": skipped})
    await record_activity(request, current_user.id, ActivityAction.IMPORT_LEADS, f"Imported {len(rows)} leads")
    return len(rows), skipped
