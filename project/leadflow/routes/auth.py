# leadflow/routes/auth.py

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jwt import ExpiredSignatureError, InvalidTokenError
from sqlalchemy.future import select

from leadflow.models.user import User
from leadflow.schemas.auth import LoginRequest, GoogleLoginRequest, AuthResponse
from leadflow.schemas.user import RegisterRequest
from leadflow.services.access import Capability, has_capability, in_id_range
from leadflow.services.users import (
    auth_payload,
    authenticate_service,
    register_service,
    google_login_service,
)
from leadflow.utils.security import decode_access_token

router = APIRouter()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> User:
    """
    Проверяет JWT токен и возвращает пользователя из базы.

    **Статусы:**
    - 401 Unauthorized – токен истёк, неверный, без sub или пользователь удалён
    """
    log = request.app.state.log
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
        if not in_id_range(user_id):
            raise ValueError("sub out of range")
    except ExpiredSignatureError:
        await log.log_warning("auth", "Токен истёк")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except (InvalidTokenError, TypeError, ValueError):
        await log.log_warning("auth", "Неверный токен")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalid")

    result = await request.state.db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        await log.log_warning("auth", "Пользователь из токена не найден", {"user_id": user_id})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user


def require(capability: Capability):
    """
    Зависимость-проверка роли по таблице возможностей.
    Пример: Depends(require(Capability.MANAGE_USERS))
    """
    async def checker(request: Request, current_user: User = Depends(get_current_user)) -> User:
        if not has_capability(current_user.role, capability):
            await request.app.state.log.log_warning(
                "auth", "Недостаточно прав",
                {"user_id": current_user.id, "role": current_user.role, "capability": capability},
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
        return current_user

    return checker


# ────────────── LOGIN ──────────────
@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Вход по email (или имени) и паролю",
    responses={
        200: {"description": "✅ Вход выполнен, возвращает данные пользователя и токен"},
        401: {"description": "❌ Неверный email или пароль"},
        422: {"description": "⚠️ Ошибка валидации входных данных"},
    },
)
async def login(body: LoginRequest, request: Request):
    """
    Авторизация пользователя.

    **Входные данные (JSON):**
    - `email`: str, email или имя пользователя
    - `password`: str, пароль

    **Выходные данные:** `id`, `name`, `email`, `role`, `profilePic`, `token`.
    Обновляет `lastLogin` и пишет `LOGIN` в журнал активности.
    """
    user = await authenticate_service(request, body.email, body.password)
    return auth_payload(user)


# ────────────── TOKEN (OAuth2 form для /docs) ──────────────
@router.post(
    "/token",
    summary="Получение JWT токена (OAuth2 form)",
    responses={
        200: {"description": "✅ Токен успешно получен"},
        401: {"description": "❌ Неверный логин или пароль"},
    },
)
async def login_for_access_token(request: Request, form_data: OAuth2PasswordRequestForm = Depends()):
    """
    То же, что /login, но в формате OAuth2 password flow:
    возвращает `access_token`, `token_type` и `user`.
    """
    user = await authenticate_service(request, form_data.username, form_data.password)
    payload = auth_payload(user)
    return {
        "access_token": payload.token,
        "token_type": "bearer",
        "user": payload.model_dump(by_alias=True, exclude={"token"}),
    }


# ────────────── Регистрация ──────────────
@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Регистрация нового пользователя",
    responses={
        201: {"description": "Пользователь успешно зарегистрирован"},
        400: {"description": "Пользователь с таким email уже существует"},
        422: {"description": "Ошибка валидации"},
    },
)
async def register(body: RegisterRequest, request: Request):
    """
    Регистрация нового пользователя.

    - Все новые пользователи **по умолчанию support-agent**.
    - Пароль хэшируется перед сохранением.
    """
    user = await register_service(body, request)
    return auth_payload(user)


# ────────────── Google ──────────────
@router.post(
    "/google",
    response_model=AuthResponse,
    summary="Вход через Google ID token",
    responses={
        200: {"description": "Пользователь существовал, вход выполнен"},
        201: {"description": "Создан новый пользователь"},
        400: {"description": "Google токен не прошёл проверку"},
    },
)
async def google_login(body: GoogleLoginRequest, request: Request, response: Response):
    user, created = await google_login_service(body.id_token, request)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return auth_payload(user)
