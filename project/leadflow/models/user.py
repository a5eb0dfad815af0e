# leadflow/models/user.py

from sqlalchemy import Column, Integer, String, Date, DateTime, Enum
from leadflow.utils.database import Base, utcnow
from leadflow.models.enums import Role

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)          # автоинкремент
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password = Column(String, nullable=False)                    # только хэш
    role = Column(
        Enum(Role, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Role.SUPPORT_AGENT,
    )
    profile_pic = Column(String, nullable=False, default="")
    phone = Column(String, nullable=False, default="")
    location = Column(String, nullable=False, default="")
    dob = Column(Date, nullable=True)
    last_login = Column(DateTime, nullable=True)                 # каждый успешный вход
    last_active = Column(DateTime, nullable=True)                # heartbeat
    created_at = Column(DateTime, nullable=False, default=utcnow)
