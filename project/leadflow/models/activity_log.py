# leadflow/models/activity_log.py

from sqlalchemy import Column, Integer, String, Text, DateTime
from leadflow.utils.database import Base, utcnow

class ActivityLog(Base):
    """
    Неизменяемая запись журнала.
    user_id без внешнего ключа: записи переживают удаление пользователя.
    """
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    action = Column(String, nullable=False)            # LOGIN, CREATE_LEAD, ...
    details = Column(Text, nullable=False, default="")
    ip_address = Column(String, nullable=False, default="")
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
