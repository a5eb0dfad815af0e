# leadflow/models/lead.py

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from leadflow.utils.database import Base, utcnow
from leadflow.models.enums import LeadStatus

class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)  # автоинкремент
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    source = Column(String, nullable=False)
    status = Column(
        Enum(LeadStatus, name="lead_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=LeadStatus.NEW,
    )
    assigned_to = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    assignee = relationship("User", lazy="selectin")
    tag_rows = relationship(
        "LeadTag", lazy="selectin", cascade="all, delete-orphan", order_by="LeadTag.id"
    )
    notes = relationship(
        "LeadNote", lazy="selectin", cascade="all, delete-orphan", order_by="LeadNote.id"
    )

    @property
    def tags(self) -> list[str]:
        return [row.tag for row in self.tag_rows]

    @tags.setter
    def tags(self, values):
        # порядок сохраняем, дубликаты и пустые строки выкидываем
        clean = []
        for value in values or []:
            value = str(value).strip()
            if value and value not in clean:
                clean.append(value)
        self.tag_rows = [LeadTag(tag=value) for value in clean]


class LeadTag(Base):
    __tablename__ = "lead_tags"

    id = Column(Integer, primary_key=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    tag = Column(String, nullable=False, index=True)


class LeadNote(Base):
    """Заметка принадлежит лиду; автор хранится снимком имени, не ссылкой."""
    __tablename__ = "lead_notes"

    id = Column(Integer, primary_key=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    author = Column(String, nullable=False, default="")
    date = Column(DateTime, nullable=False, default=utcnow)
