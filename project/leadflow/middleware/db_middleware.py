# leadflow/middleware/db_middleware.py

from leadflow.utils.database import AsyncSessionLocal


def scope_client_ip(scope) -> str:
    """Первый адрес из X-Forwarded-For, иначе адрес сокета."""
    for name, value in scope.get("headers") or []:
        if name == b"x-forwarded-for":
            first = value.decode("latin-1").split(",")[0].strip()
            if first:
                return first
    client = scope.get("client")
    return client[0] if client else ""


class DBSessionMiddleware:
    """
    Одна сессия БД на HTTP запрос: request.state.db.
    Заодно кладёт IP клиента в request.state.client_ip для журнала активности.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        state["client_ip"] = scope_client_ip(scope)
        session = AsyncSessionLocal()
        state["db"] = session
        try:
            await self.app(scope, receive, send)
        except Exception:
            # незакоммиченное не должно утечь в следующий запрос
            await session.rollback()
            raise
        finally:
            # закрываем сессию только после завершения запроса
            await session.close()
