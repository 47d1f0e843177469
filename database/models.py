"""
============================================================================
UPTIME ENGINE - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for the server roster, the uptime time series, and
stored site settings.

The failure counter and the notified flag live on the ``servers`` row so
that the at-most-one-alert-per-outage guarantee survives process restarts.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Index,
    CheckConstraint, func
)
from sqlalchemy.orm import declarative_base, relationship

from config.constants import GameType, ServerStatus
from utils.helpers import TimeHelper


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=TimeHelper.get_utc_now,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=TimeHelper.get_utc_now,
        onupdate=TimeHelper.get_utc_now,
        server_default=func.now(),
    )


# ============================================================================
# SERVER MODEL
# ============================================================================

class Server(Base, TimestampMixin):
    """
    A monitored game server.

    Roster fields (name, address, port, game_type, maintenance_mode) are
    owned by the admin surface. Status, player counts, the failure counter
    and the notified flag are written only by the uptime engine.
    """
    __tablename__ = "servers"

    id = Column(Integer, primary_key=True)

    # Roster
    name = Column(String(255), nullable=False)
    address = Column(String(255), nullable=False)
    port = Column(Integer, nullable=False, default=25565)
    game_type = Column(String(50), nullable=False, default=GameType.MINECRAFT.value)

    # Maintenance mode removes the server from uptime cycles
    maintenance_mode = Column(Boolean, nullable=False, default=False)
    maintenance_message = Column(Text, nullable=True)

    # Engine-owned state
    status = Column(String(50), nullable=False, default=ServerStatus.OFFLINE.value)
    players_online = Column(Integer, nullable=False, default=0)
    players_max = Column(Integer, nullable=False, default=0)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    offline_notified = Column(Boolean, nullable=False, default=False)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)

    uptime_records = relationship(
        "UptimeRecord",
        back_populates="server",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("consecutive_failures >= 0", name="ck_servers_failures_non_negative"),
        CheckConstraint("port > 0 AND port < 65536", name="ck_servers_port_range"),
    )

    @property
    def game(self) -> GameType:
        return GameType.parse(self.game_type)

    @property
    def is_online(self) -> bool:
        return self.status == ServerStatus.ONLINE.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert server to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "port": self.port,
            "game_type": self.game_type,
            "maintenance_mode": self.maintenance_mode,
            "status": self.status,
            "players_online": self.players_online,
            "players_max": self.players_max,
            "consecutive_failures": self.consecutive_failures,
            "offline_notified": self.offline_notified,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
        }

    def __repr__(self) -> str:
        return f"<Server id={self.id} name={self.name!r} {self.address}:{self.port}>"


# ============================================================================
# UPTIME RECORD MODEL
# ============================================================================

class UptimeRecord(Base):
    """
    Append-only uptime sample: one row per check per server.

    Never updated in place; removed only by retention pruning.
    """
    __tablename__ = "server_uptime_records"

    id = Column(Integer, primary_key=True)
    server_id = Column(
        Integer,
        ForeignKey("servers.id", ondelete="CASCADE"),
        nullable=False,
    )
    online = Column(Boolean, nullable=False)
    players_online = Column(Integer, nullable=True, default=0)
    players_max = Column(Integer, nullable=True, default=0)
    response_time_ms = Column(Integer, nullable=True)
    checked_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=TimeHelper.get_utc_now,
        server_default=func.now(),
    )

    server = relationship("Server", back_populates="uptime_records")

    __table_args__ = (
        Index("idx_uptime_server_checked", "server_id", "checked_at"),
        Index("idx_uptime_checked", "checked_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "server_id": self.server_id,
            "online": self.online,
            "players_online": self.players_online,
            "players_max": self.players_max,
            "response_time_ms": self.response_time_ms,
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
        }


# ============================================================================
# SITE SETTING MODEL
# ============================================================================

class SiteSetting(Base, TimestampMixin):
    """Key/value configuration stored by the admin surface."""
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True)
    key = Column(String(255), nullable=False, unique=True)
    value = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SiteSetting key={self.key!r}>"
