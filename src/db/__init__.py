"""Database module for automation state, ledger and audit persistence."""

from src.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from src.db.models import (
    ActionSource,
    ActionStatus,
    ActionType,
    AgentLog,
    AutomationSettings,
    LogStatus,
    MailThread,
    ShopConnection,
    ThreadAction,
)

__all__ = [
    # Models
    "ShopConnection",
    "AutomationSettings",
    "MailThread",
    "ThreadAction",
    "AgentLog",
    # Enums
    "ActionType",
    "ActionStatus",
    "ActionSource",
    "LogStatus",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
