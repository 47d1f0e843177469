"""
============================================================================
UPTIME ENGINE - DATABASE MANAGER
============================================================================
Async engine, session management, and the repositories used by the uptime
engine.

Repositories operate on a caller-supplied session and let errors
propagate: a persistence failure must abort the whole uptime cycle rather
than be reported as an empty roster.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional

from sqlalchemy import delete, event, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from config.settings import DatabaseSettings
from database.models import Base, Server, SiteSetting, UptimeRecord
from exceptions import DatabaseConnectionError, DatabaseQueryError
from utils.logger import get_logger


logger = get_logger("Database")


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Database manager handling engine creation, table creation, and
    transactional sessions.
    """

    def __init__(self, settings: DatabaseSettings, url: Optional[str] = None):
        """
        Initialize database manager.

        Args:
            settings: Database settings section
            url: Explicit database URL (overrides the one built from settings)
        """
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        self.database_url = url or settings.url

        logger.info(f"DatabaseManager created with URL: {self._mask_password(self.database_url)}")

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @staticmethod
    def _mask_password(url: str) -> str:
        """
        Mask password in database URL for logging.

        Args:
            url: Database URL

        Returns:
            Masked URL
        """
        if "://" not in url:
            return url

        protocol, rest = url.split("://", 1)
        if "@" not in rest:
            return url

        credentials, host_part = rest.split("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:****@{host_part}"

        return url

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        """Engine options: NullPool for SQLite, a sized QueuePool otherwise."""
        kwargs: Dict[str, Any] = {"echo": self.settings.echo}

        if self.is_sqlite:
            kwargs["poolclass"] = NullPool
        else:
            kwargs["pool_size"] = self.settings.pool_size
            kwargs["max_overflow"] = self.settings.max_overflow
            kwargs["pool_timeout"] = self.settings.pool_timeout
            kwargs["pool_recycle"] = self.settings.pool_recycle
            kwargs["pool_pre_ping"] = True

        return kwargs

    async def initialize(self) -> None:
        """
        Initialize database engine and session factory.
        Creates all tables if they don't exist.

        Raises:
            DatabaseConnectionError: If the engine cannot be created or reached
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            try:
                self.engine = create_async_engine(self.database_url, **self._get_engine_kwargs())
                self._register_event_listeners()

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

                await self.create_tables()

                self._is_initialized = True
                logger.info("Database initialized successfully")

            except SQLAlchemyError as e:
                logger.error(f"Failed to initialize database: {e}")
                raise DatabaseConnectionError(
                    message=f"Failed to initialize database: {e}",
                    host=None if self.is_sqlite else self.settings.host,
                    port=None if self.is_sqlite else self.settings.port,
                    database=self.settings.name,
                    cause=e,
                ) from e

    def _register_event_listeners(self) -> None:
        """Register SQLAlchemy event listeners for connection management."""

        is_sqlite = self.is_sqlite

        @event.listens_for(self.engine.sync_engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            """Handle new database connections."""
            if is_sqlite:
                # SQLite ignores ON DELETE CASCADE unless asked
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
            logger.debug("New database connection established")

    async def create_tables(self) -> None:
        """Create all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready")

    async def drop_tables(self) -> None:
        """
        Drop all database tables.
        WARNING: This will delete all data!
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("All database tables dropped")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        Commits on success and rolls back on failure. SQLAlchemy errors are
        re-raised as ``DatabaseQueryError``.

        Example:
            async with db_manager.session() as session:
                server = await session.get(Server, server_id)
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise DatabaseQueryError(message=str(e), cause=e) from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (DatabaseConnectionError, DatabaseQueryError) as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def get_database_info(self) -> Dict[str, Any]:
        """
        Get row counts for the engine's tables.

        Returns:
            Dictionary with database info
        """
        async with self.session() as session:
            server_count = await session.scalar(select(func.count(Server.id)))
            record_count = await session.scalar(select(func.count(UptimeRecord.id)))

        return {
            "status": "connected",
            "database_url": self._mask_password(self.database_url),
            "servers": server_count or 0,
            "uptime_records": record_count or 0,
        }

    async def close(self) -> None:
        """
        Close database connections and cleanup resources.
        """
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")
        self.engine = None
        self.session_factory = None
        self._is_initialized = False


# ============================================================================
# DATABASE REPOSITORY BASE CLASS
# ============================================================================

class BaseRepository:
    """
    Base repository class bound to an open session.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository.

        Args:
            session: Session owned by the caller's transaction
        """
        self.session = session
        self.logger = get_logger(self.__class__.__name__)

    async def add(self, instance: Any) -> Any:
        """Add an instance and flush so generated keys are populated."""
        self.session.add(instance)
        await self.session.flush()
        return instance


# ============================================================================
# SERVER REPOSITORY
# ============================================================================

class ServerRepository(BaseRepository):
    """Repository for Server roster operations."""

    async def list_all(self) -> List[Server]:
        """Return the full roster, maintenance servers included."""
        result = await self.session.execute(select(Server).order_by(Server.id))
        return list(result.scalars().all())

    async def get(self, server_id: int) -> Optional[Server]:
        return await self.session.get(Server, server_id)


# ============================================================================
# UPTIME RECORD REPOSITORY
# ============================================================================

class UptimeRecordRepository(BaseRepository):
    """Repository for the append-only uptime time series."""

    async def add_many(self, records: Iterable[UptimeRecord]) -> int:
        """Insert *records*; returns how many were added."""
        records = list(records)
        if records:
            self.session.add_all(records)
            await self.session.flush()
        return len(records)

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete every record checked before *cutoff*; returns the row count."""
        result = await self.session.execute(
            delete(UptimeRecord).where(UptimeRecord.checked_at < cutoff)
        )
        return result.rowcount or 0

    async def count(self, server_id: Optional[int] = None) -> int:
        query = select(func.count(UptimeRecord.id))
        if server_id is not None:
            query = query.where(UptimeRecord.server_id == server_id)
        return await self.session.scalar(query) or 0

    async def list_for_server(self, server_id: int, limit: int = 100) -> List[UptimeRecord]:
        """Most recent records for a server, newest first."""
        result = await self.session.execute(
            select(UptimeRecord)
            .where(UptimeRecord.server_id == server_id)
            .order_by(UptimeRecord.checked_at.desc(), UptimeRecord.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


# ============================================================================
# SITE SETTING REPOSITORY
# ============================================================================

class SiteSettingRepository(BaseRepository):
    """Repository for key/value site settings."""

    async def get_value(self, key: str) -> Optional[str]:
        """Return the stored value for *key*; blank values count as unset."""
        value = await self.session.scalar(
            select(SiteSetting.value).where(SiteSetting.key == key)
        )
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    async def get_values(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        keys = list(keys)
        result = await self.session.execute(
            select(SiteSetting.key, SiteSetting.value).where(SiteSetting.key.in_(keys))
        )
        stored = {row.key: row.value for row in result}
        return {
            key: (str(stored[key]).strip() or None) if stored.get(key) is not None else None
            for key in keys
        }

    async def set_value(self, key: str, value: Optional[str]) -> SiteSetting:
        setting = await self.session.scalar(select(SiteSetting).where(SiteSetting.key == key))
        if setting is None:
            setting = SiteSetting(key=key, value=value)
            self.session.add(setting)
        else:
            setting.value = value
        await self.session.flush()
        return setting
