"""
Database Package for the Uptime Engine

Provides database connectivity, models, and repository patterns
for data persistence using SQLAlchemy with async support.
"""

from database.models import (
    Base,
    Server,
    UptimeRecord,
    SiteSetting,
)

from database.manager import (
    DatabaseManager,
    BaseRepository,
    ServerRepository,
    UptimeRecordRepository,
    SiteSettingRepository,
)

__all__ = [
    # Models
    "Base",
    "Server",
    "UptimeRecord",
    "SiteSetting",

    # Manager
    "DatabaseManager",

    # Repositories
    "BaseRepository",
    "ServerRepository",
    "UptimeRecordRepository",
    "SiteSettingRepository",
]
