# leadflow/services/access.py

"""
Политика доступа к лидам.

Чистые функции без I/O:
  - таблица возможностей (capability) для каждой роли,
  - построение фильтра списка лидов с учётом роли,
  - решения о правах на чтение / изменение / удаление / назначение.
"""

import enum
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import or_, select

from leadflow.config import settings
from leadflow.models.enums import Role, LeadStatus
from leadflow.models.lead import Lead, LeadTag

# верхняя граница INTEGER в базе (signed 64-bit)
MAX_ID = 2 ** 63 - 1


class Capability(str, enum.Enum):
    VIEW_ALL_LEADS = "view_all_leads"
    UPDATE_ANY_LEAD = "update_any_lead"
    DELETE_LEAD = "delete_lead"
    ASSIGN_LEADS = "assign_leads"
    IMPORT_LEADS = "import_leads"
    LIST_USERS = "list_users"
    MANAGE_USERS = "manage_users"
    VIEW_ACTIVITY_LOG = "view_activity_log"


_ADMIN = frozenset({
    Capability.VIEW_ALL_LEADS,
    Capability.UPDATE_ANY_LEAD,
    Capability.DELETE_LEAD,
    Capability.ASSIGN_LEADS,
    Capability.IMPORT_LEADS,
    Capability.LIST_USERS,
})

# ────────────── Таблица возможностей ──────────────
CAPABILITIES: dict[Role, frozenset] = {
    Role.SUPER_ADMIN: _ADMIN | {Capability.MANAGE_USERS, Capability.VIEW_ACTIVITY_LOG},
    Role.SUB_ADMIN: _ADMIN,
    Role.SUPPORT_AGENT: frozenset(),
}


def in_id_range(value: int) -> bool:
    """Значение помещается в INTEGER базы; иначе такой записи заведомо нет."""
    return -MAX_ID - 1 <= value <= MAX_ID


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in CAPABILITIES.get(Role(role), frozenset())


# ==========================================================
# РЕШЕНИЯ ПО ЛИДАМ
# ==========================================================
def can_read_lead(role: Role, user_id: int, assigned_to: Optional[int]) -> bool:
    return has_capability(role, Capability.VIEW_ALL_LEADS) or assigned_to == user_id


def can_update_lead(role: Role, user_id: int, assigned_to: Optional[int]) -> bool:
    """Админ или текущий ответственный за лид."""
    return has_capability(role, Capability.UPDATE_ANY_LEAD) or (
        assigned_to is not None and assigned_to == user_id
    )


def can_delete_lead(role: Role) -> bool:
    # назначение на агента не даёт права удаления
    return has_capability(role, Capability.DELETE_LEAD)


def creation_assignee(role: Role, user_id: int, requested: Optional[int]) -> Optional[int]:
    """Агент всегда создаёт лид на себя, что бы ни пришло в запросе."""
    if has_capability(role, Capability.ASSIGN_LEADS):
        return requested
    return user_id


# ==========================================================
# ФИЛЬТР СПИСКА
# ==========================================================
@dataclass(frozen=True)
class LeadQuery:
    """Сырые параметры запроса списка лидов (как пришли в URL)."""
    status: Optional[str] = None
    tags: Optional[str] = None
    search: Optional[str] = None
    assigned_to: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    page: Optional[str] = None
    limit: Optional[str] = None


@dataclass(frozen=True)
class LeadFilter:
    """Итоговый фильтр после применения роли и нормализации."""
    assigned_to: Optional[int] = None
    status: Optional[LeadStatus] = None
    tags: Optional[frozenset] = None
    search: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def conditions(self) -> list:
        """Условия SQLAlchemy, объединяемые через AND."""
        clauses = []
        if self.assigned_to is not None:
            clauses.append(Lead.assigned_to == self.assigned_to)
        if self.status is not None:
            clauses.append(Lead.status == self.status)
        if self.tags:
            tagged = select(LeadTag.lead_id).where(LeadTag.tag.in_(sorted(self.tags)))
            clauses.append(Lead.id.in_(tagged))
        if self.search:
            clauses.append(or_(*[
                column.icontains(self.search, autoescape=True)
                for column in (Lead.name, Lead.email, Lead.phone, Lead.source)
            ]))
        if self.start is not None:
            clauses.append(Lead.created_at >= self.start)
        if self.end is not None:
            clauses.append(Lead.created_at <= self.end)
        return clauses


def parse_tags(raw: Optional[str]) -> Optional[frozenset]:
    """'a, b,  b' -> {'a', 'b'}; пустой набор -> None (нет фильтра)."""
    if not raw:
        return None
    tags = frozenset(part.strip() for part in raw.split(",") if part.strip())
    return tags or None


def parse_int(raw, minimum: int = 1, maximum: int = MAX_ID) -> Optional[int]:
    """Целое в [minimum, maximum]; всё остальное считается некорректным."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if minimum <= value <= maximum else None


def parse_status(raw: Optional[str]) -> Optional[LeadStatus]:
    if not raw:
        return None
    wanted = raw.strip().lower()
    for status in LeadStatus:
        if status.value.lower() == wanted:
            return status
    return None


def parse_bound(raw: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    ISO дата или дата-время -> naive UTC.
    Для верхней границы дата без времени покрывает весь день.
    """
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        if len(text) == 10:
            day = date.fromisoformat(text)
            return datetime.combine(day, time.max if end_of_day else time.min)
        value = datetime.fromisoformat(text)
        if value.tzinfo is not None:
            # у границ datetime.min / max перевод в UTC выходит за диапазон
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError):
        return None
    return value


def build_lead_filter(role: Role, user_id: int, query: LeadQuery) -> LeadFilter:
    """
    Собирает фильтр списка лидов.

    - support-agent видит только свои лиды: assigned_to принудительно
      равен его id, переданное значение игнорируется;
    - админы: assigned_to применяется, только если передан;
    - статус, теги, поиск, диапазон дат применяются для всех ролей;
    - некорректные значения отбрасываются, а не ломают запрос.
    """
    if has_capability(role, Capability.VIEW_ALL_LEADS):
        assigned_to = parse_int(query.assigned_to)
    else:
        assigned_to = user_id

    limit = parse_int(query.limit) or settings.LEADS_PAGE_SIZE
    limit = min(limit, settings.LEADS_MAX_PAGE_SIZE)

    search = (query.search or "").strip() or None

    return LeadFilter(
        assigned_to=assigned_to,
        status=parse_status(query.status),
        tags=parse_tags(query.tags),
        search=search,
        start=parse_bound(query.start_date),
        end=parse_bound(query.end_date, end_of_day=True),
        page=parse_int(query.page, maximum=MAX_ID // limit) or 1,
        limit=limit,
    )


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0
