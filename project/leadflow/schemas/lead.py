# leadflow/schemas/lead.py

from pydantic import Field
from typing import Optional, List
from datetime import datetime
from leadflow.models.enums import LeadStatus
from leadflow.schemas.base import CamelModel

# ────────────── Базовая схема ──────────────
class LeadBase(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    source: Optional[str] = None
    status: Optional[LeadStatus] = None
    tags: Optional[List[str]] = None
    assigned_to: Optional[int] = None

# ────────────── Схема для CREATE ──────────────
class LeadCreate(LeadBase):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    status: LeadStatus = LeadStatus.NEW
    tags: List[str] = []

# ────────────── Схема для UPDATE ──────────────
class LeadUpdate(LeadBase):
    # все поля необязательные, но переданные не могут быть пустыми
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    source: Optional[str] = Field(None, min_length=1)

class NoteCreate(CamelModel):
    text: str = Field(..., min_length=1)

# ────────────── Схемы для RESPONSE ──────────────
class Note(CamelModel):
    id: int
    text: str
    author: str
    date: datetime

class Assignee(CamelModel):
    id: int
    name: str
    email: str

class Lead(CamelModel):
    id: int
    name: str
    email: str
    phone: str
    source: str
    status: LeadStatus
    tags: List[str] = []
    notes: List[Note] = []
    assigned_to: Optional[int] = None
    assignee: Optional[Assignee] = None
    created_at: datetime
    updated_at: datetime

class Pagination(CamelModel):
    total: int
    page: int
    pages: int
    limit: int

class LeadPage(CamelModel):
    items: List[Lead]
    pagination: Pagination

class StatusCount(CamelModel):
    status: LeadStatus
    count: int

class AgentCount(CamelModel):
    agent_id: Optional[int] = None
    name: Optional[str] = None
    count: int

class LeadStats(CamelModel):
    total_leads: int
    status_distribution: List[StatusCount]
    agent_performance: List[AgentCount]
    recent_leads: List[Lead]

class ImportResult(CamelModel):
    message: str
    count: int
    skipped: int
