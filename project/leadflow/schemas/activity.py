# leadflow/schemas/activity.py

from typing import Optional
from datetime import datetime
from leadflow.models.enums import Role
from leadflow.schemas.base import CamelModel

class ActivityActor(CamelModel):
    id: int
    name: str
    role: Role
    email: str

class ActivityEntry(CamelModel):
    id: int
    action: str
    details: str
    ip_address: str
    timestamp: datetime
    user_id: int
    user: Optional[ActivityActor] = None  # None, если пользователь удалён
