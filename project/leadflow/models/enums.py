# leadflow/models/enums.py

import enum


class Role(str, enum.Enum):
    """Роли пользователей. Закрытый набор, не иерархия."""
    SUPER_ADMIN = "super-admin"
    SUB_ADMIN = "sub-admin"
    SUPPORT_AGENT = "support-agent"


class LeadStatus(str, enum.Enum):
    NEW = "New"
    CONTACTED = "Contacted"
    QUALIFIED = "Qualified"
    LOST = "Lost"
    WON = "Won"


class ActivityAction(str, enum.Enum):
    """Коды действий для журнала активности."""
    LOGIN = "LOGIN"
    LOGIN_GOOGLE = "LOGIN_GOOGLE"
    REGISTER = "REGISTER"
    REGISTER_GOOGLE = "REGISTER_GOOGLE"
    CREATE_LEAD = "CREATE_LEAD"
    UPDATE_LEAD = "UPDATE_LEAD"
    DELETE_LEAD = "DELETE_LEAD"
    ADD_NOTE = "ADD_NOTE"
    DELETE_NOTE = "DELETE_NOTE"
    IMPORT_LEADS = "IMPORT_LEADS"
    EXPORT_LEADS = "EXPORT_LEADS"
    UPDATE_PROFILE = "UPDATE_PROFILE"
    CREATE_USER = "CREATE_USER"
    UPDATE_USER = "UPDATE_USER"
    DELETE_USER = "DELETE_USER"
