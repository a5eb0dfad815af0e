# leadflow/schemas/user.py

from pydantic import Field
from typing import Optional
from datetime import date, datetime
from leadflow.models.enums import Role
from leadflow.schemas.base import CamelModel

class UserBase(CamelModel):
    """
    Базовая схема пользователя для входных данных и обновления.
    """
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[Role] = None

class UserCreate(UserBase):
    """
    Схема для создания пользователя администратором.
    Имя, email и пароль обязательны; роль по умолчанию support-agent.
    """
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    role: Role = Role.SUPPORT_AGENT

class UserUpdate(UserBase):
    """
    Схема для обновления пользователя администратором.
    Передаются только те поля, которые нужно изменить.
    """
    pass

class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)

class UserResponse(CamelModel):
    """
    Схема для ответа API при чтении пользователя (без пароля)
    """
    id: int
    name: str
    email: str
    role: Role
    profile_pic: str = ""
    phone: str = ""
    location: str = ""
    dob: Optional[date] = None
    last_login: Optional[datetime] = None
    last_active: Optional[datetime] = None
    created_at: datetime

class UserListItem(UserResponse):
    status: str  # Active / Inactive

class ProfileResponse(UserResponse):
    token: str

class PingResponse(CamelModel):
    last_active: datetime
