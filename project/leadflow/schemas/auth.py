# leadflow/schemas/auth.py

from pydantic import Field
from leadflow.models.enums import Role
from leadflow.schemas.base import CamelModel

class LoginRequest(CamelModel):
    # email или отображаемое имя пользователя
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class GoogleLoginRequest(CamelModel):
    id_token: str = Field(..., min_length=1)

class AuthResponse(CamelModel):
    id: int
    name: str
    email: str
    role: Role
    profile_pic: str = ""
    token: str
