# leadflow/services/users.py

import os
import time
from datetime import timedelta

import aiofiles
from fastapi import HTTPException, Request, UploadFile, status
from sqlalchemy import or_, update
from sqlalchemy.future import select
from starlette.concurrency import run_in_threadpool

from leadflow.config import settings
from leadflow.models.enums import ActivityAction, Role
from leadflow.models.lead import Lead
from leadflow.models.user import User
from leadflow.schemas.auth import AuthResponse
from leadflow.schemas.user import UserCreate, UserUpdate, RegisterRequest, UserListItem, ProfileResponse
from leadflow.services.access import in_id_range
from leadflow.services.activity import record_activity
from leadflow.services.google_auth import verify_google_token
from leadflow.utils.database import utcnow
from leadflow.utils.security import hash_password, verify_password, random_password, create_access_token

ALLOWED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif")


def auth_payload(user: User) -> AuthResponse:
    """Ответ на вход: данные пользователя + свежий токен."""
    return AuthResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        profile_pic=user.profile_pic or "",
        token=create_access_token(user.id),
    )


async def get_user_or_404(request: Request, user_id: int) -> User:
    db = request.state.db
    user = None
    if in_id_range(user_id):
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
    if user is None:
        await request.app.state.log.log_error("user", "Пользователь не найден", {"id": user_id})
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def _email_taken(request: Request, email: str, exclude_id: int | None = None) -> bool:
    query = select(User.id).where(User.email == email.lower())
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    result = await request.state.db.execute(query)
    return result.first() is not None


# ==========================================================
# АУТЕНТИФИКАЦИЯ
# ==========================================================
async def authenticate_service(request: Request, login: str, password: str) -> User:
    """
    Вход по email или имени. При успехе обновляет lastLogin и пишет LOGIN.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(
        select(User).where(or_(User.email == login.strip().lower(), User.name == login.strip()))
    )
    user = result.scalars().first()

    if not user or not verify_password(password, user.password):
        await log.log_warning("auth", "Неудачная попытка входа", {"login": login})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user.last_login = utcnow()
    await db.commit()

    await log.log_info("auth", "Пользователь успешно авторизован", {"user_id": user.id})
    await record_activity(request, user.id, ActivityAction.LOGIN, "User logged in")
    return user


async def register_service(data: RegisterRequest, request: Request) -> User:
    """
    Самостоятельная регистрация. Всегда support-agent.
    """
    db = request.state.db
    log = request.app.state.log

    if await _email_taken(request, data.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    user = User(
        name=data.name,
        email=data.email.lower(),
        password=hash_password(data.password),
        role=Role.SUPPORT_AGENT,
        last_login=utcnow(),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    await log.log_info("auth", "Пользователь зарегистрирован", {"user_id": user.id})
    await record_activity(request, user.id, ActivityAction.REGISTER, "User registered new account")
    return user


async def google_login_service(token: str, request: Request) -> tuple[User, bool]:
    """
    Вход через Google. Новый email -> новый support-agent со случайным паролем.
    Возвращает (пользователь, создан ли он).
    """
    db = request.state.db
    log = request.app.state.log

    try:
        identity = await run_in_threadpool(verify_google_token, token)
    except Exception as e:
        await log.log_warning("auth", f"Google токен не прошёл проверку: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Google authentication failed")

    result = await db.execute(select(User).where(User.email == identity.email))
    user = result.scalar_one_or_none()

    if user is not None:
        user.last_login = utcnow()
        await db.commit()
        await log.log_info("auth", "Вход через Google", {"user_id": user.id})
        await record_activity(request, user.id, ActivityAction.LOGIN_GOOGLE, "User logged in via Google")
        return user, False

    user = User(
        name=identity.name,
        email=identity.email,
        password=hash_password(random_password()),
        profile_pic=identity.picture or "",
        role=Role.SUPPORT_AGENT,
        last_login=utcnow(),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    await log.log_info("auth", "Регистрация через Google", {"user_id": user.id})
    await record_activity(request, user.id, ActivityAction.REGISTER_GOOGLE, "User registered via Google")
    return user, True


# ==========================================================
# HEARTBEAT
# ==========================================================
async def ping_service(request: Request, current_user: User):
    """Отметка активности пользователя (heartbeat клиента)."""
    db = request.state.db
    current_user.last_active = utcnow()
    await db.commit()
    return current_user.last_active


def activity_status(user: User, now=None) -> str:
    """Active, если последний heartbeat попадает в окно активности."""
    if user.last_active is None:
        return "Inactive"
    now = now or utcnow()
    window = timedelta(minutes=settings.USER_ACTIVE_WINDOW_MINUTES)
    return "Active" if now - user.last_active <= window else "Inactive"


# ==========================================================
# УПРАВЛЕНИЕ ПОЛЬЗОВАТЕЛЯМИ (админ)
# ==========================================================
async def read_users_service(request: Request) -> list[UserListItem]:
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    users = result.scalars().all()
    now = utcnow()

    await log.log_info("user", f"{len(users)} пользователей загружено")
    return [UserListItem(**_user_fields(u), status=activity_status(u, now)) for u in users]


def _user_fields(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "profile_pic": user.profile_pic or "",
        "phone": user.phone or "",
        "location": user.location or "",
        "dob": user.dob,
        "last_login": user.last_login,
        "last_active": user.last_active,
        "created_at": user.created_at,
    }


async def create_user_service(data: UserCreate, request: Request, current_user: User) -> User:
    db = request.state.db
    log = request.app.state.log

    if await _email_taken(request, data.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    user = User(
        name=data.name,
        email=data.email.lower(),
        password=hash_password(data.password),
        role=data.role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    await log.log_info("user", "Пользователь создан", {"id": user.id, "role": user.role})
    await record_activity(
        request, current_user.id, ActivityAction.CREATE_USER,
        f"Admin created user: {user.name} ({user.role.value})",
    )
    return user


async def update_user_service(user_id: int, data: UserUpdate, request: Request, current_user: User) -> User:
    """
    Обновление пользователя администратором.
    Пустые значения не затирают текущие; пароль хэшируется.
    """
    db = request.state.db
    log = request.app.state.log

    user = await get_user_or_404(request, user_id)
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v not in (None, "")}

    if "email" in changes:
        changes["email"] = changes["email"].lower()
        if await _email_taken(request, changes["email"], exclude_id=user.id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")
    if "password" in changes:
        changes["password"] = hash_password(changes["password"])

    for key, value in changes.items():
        setattr(user, key, value)
    await db.commit()
    await db.refresh(user)

    await log.log_info("user", "Пользователь обновлён", {"id": user.id, "fields": sorted(changes)})
    await record_activity(request, current_user.id, ActivityAction.UPDATE_USER, f"Admin updated user: {user.name}")
    return user


async def delete_user_service(user_id: int, request: Request, current_user: User) -> None:
    """
    Удаление пользователя. Его лиды остаются, но снимаются с назначения.
    """
    db = request.state.db
    log = request.app.state.log

    user = await get_user_or_404(request, user_id)
    name = user.name

    await db.execute(update(Lead).where(Lead.assigned_to == user.id).values(assigned_to=None))
    await db.delete(user)
    await db.commit()

    await log.log_info("user", "Пользователь удалён", {"id": user_id})
    await record_activity(request, current_user.id, ActivityAction.DELETE_USER, f"Admin deleted user: {name}")


# ==========================================================
# ПРОФИЛЬ (самообслуживание)
# ==========================================================
async def save_profile_picture(file: UploadFile, request: Request) -> str:
    """
    Сохраняет картинку в UPLOAD_DIR и возвращает её полный URL.
    """
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only image files are allowed!")

    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    filename = f"{int(time.time() * 1000)}{ext}"
    async with aiofiles.open(os.path.join(settings.UPLOAD_DIR, filename), mode="wb") as f:
        await f.write(await file.read())

    return f"{str(request.base_url).rstrip('/')}/uploads/{filename}"


async def update_profile_service(
    request: Request,
    current_user: User,
    fields: dict,
    picture: UploadFile | None = None,
) -> ProfileResponse:
    """
    Обновление собственного профиля. Пустые поля игнорируются.
    Картинка: загруженный файл важнее переданного URL.
    """
    db = request.state.db
    log = request.app.state.log

    changes = {k: v for k, v in fields.items() if v not in (None, "")}

    if "email" in changes:
        changes["email"] = changes["email"].lower()
        if await _email_taken(request, changes["email"], exclude_id=current_user.id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")
    if "password" in changes:
        changes["password"] = hash_password(changes["password"])
    if picture is not None and picture.filename:
        changes["profile_pic"] = await save_profile_picture(picture, request)

    for key, value in changes.items():
        setattr(current_user, key, value)
    await db.commit()
    await db.refresh(current_user)

    await log.log_info("user", "Профиль обновлён", {"id": current_user.id, "fields": sorted(changes)})
    await record_activity(request, current_user.id, ActivityAction.UPDATE_PROFILE, "User updated their own profile")
    return ProfileResponse(**_user_fields(current_user), token=create_access_token(current_user.id))
