# leadflow/utils/security.py

"""
Модуль для работы с паролями и JWT токенами.
Используется passlib с sha256_crypt, чтобы избежать проблем с bcrypt на Windows.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jwt import encode, decode
from passlib.context import CryptContext

from leadflow.config import settings

# Создаём контекст для хэширования паролей
# schemes=["sha256_crypt"] - используем SHA-256 с солью
# deprecated="auto" - автоматически помечает устаревшие схемы
pwd_context = CryptContext(
    schemes=["sha256_crypt"],
    deprecated="auto",
    sha256_crypt__default_rounds=settings.PASSWORD_HASH_ROUNDS,
)

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """
    Хэширует пароль.

    :param password: строка пароля пользователя
    :return: хэшированный пароль в виде строки
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Проверяет совпадение пароля с его хэшем.

    :param plain_password: строка пароля пользователя
    :param hashed_password: хэшированный пароль из базы
    :return: True если пароль совпадает с хэшем, иначе False
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def random_password() -> str:
    """Случайный пароль для учётных записей, созданных через Google."""
    return secrets.token_urlsafe(16)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """
    Создаёт JWT токен для пользователя.
    Вход: id пользователя (кладётся в "sub" строкой)
    Выход: JWT строка
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.AUTH_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": str(user_id), "exp": expire}
    return encode(to_encode, settings.AUTH_SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Декодирует JWT токен.
    Пробрасывает ExpiredSignatureError / InvalidTokenError из PyJWT.
    """
    return decode(token, settings.AUTH_SECRET_KEY, algorithms=[ALGORITHM])
