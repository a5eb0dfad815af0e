# leadflow/utils/database.py

from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.future import select
from leadflow.config import settings
from leadflow.utils.security import hash_password

# ────────────── Base для моделей ──────────────
Base = declarative_base()  # базовый класс для всех моделей SQLAlchemy

# ────────────── Асинхронный движок ──────────────
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False  # True можно включить для отладки SQL
)

# ────────────── Асинхронная сессия ──────────────
# expire_on_commit=False: объекты отдаются в ответ уже после commit
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


def utcnow() -> datetime:
    """Текущее время в UTC без tzinfo (так оно и хранится в базе)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ────────────── Инициализация базы данных ──────────────
async def init_db():
    """
    Создаёт все таблицы в базе данных (если ещё не созданы)
    Проверяет наличие хотя бы одного super-admin
        - Если его нет, создаёт учётную запись из SEED_ADMIN_* настроек
        - Пароль хранится в виде хэша
    Возвращает созданного администратора или None.
    """
    from leadflow.models.user import User
    from leadflow.models.enums import Role
    # модели должны быть импортированы до create_all
    import leadflow.models.lead  # noqa: F401
    import leadflow.models.activity_log  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.role == Role.SUPER_ADMIN).limit(1))
        if result.scalar_one_or_none() is not None:
            return None

        admin_user = User(
            name=settings.SEED_ADMIN_NAME,
            email=settings.SEED_ADMIN_EMAIL.lower(),
            password=hash_password(settings.SEED_ADMIN_PASSWORD),
            role=Role.SUPER_ADMIN,
        )
        session.add(admin_user)
        await session.commit()
        await session.refresh(admin_user)
        return admin_user
