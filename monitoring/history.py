"""
============================================================================
UPTIME ENGINE - HISTORY STORE
============================================================================
Append-only time series of check results with a fixed retention window.

One ``UptimeRecord`` is written per active server per cycle; records older
than the retention window are deleted at the end of every cycle. Rows are
never updated in place.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database.manager import UptimeRecordRepository
from database.models import UptimeRecord
from monitoring.orchestrator import CheckResult
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("HistoryStore")


class HistoryStore:
    """Writes and prunes uptime records inside the caller's transaction."""

    def __init__(self, retention_days: int = 90):
        self.retention_days = retention_days

    @staticmethod
    def to_record(result: CheckResult, checked_at: datetime) -> UptimeRecord:
        return UptimeRecord(
            server_id=result.server_id,
            online=result.online,
            players_online=result.players_online,
            players_max=result.players_max,
            response_time_ms=result.latency_ms,
            checked_at=checked_at,
        )

    async def append(self, session: AsyncSession, results: Iterable[CheckResult], checked_at: datetime) -> int:
        """Insert one record per result; returns how many were written."""
        repo = UptimeRecordRepository(session)
        written = await repo.add_many(self.to_record(result, checked_at) for result in results)
        logger.debug(f"[History] Appended {written} uptime records")
        return written

    def cutoff(self, now: Optional[datetime] = None) -> datetime:
        return TimeHelper.days_ago(self.retention_days, now)

    async def prune(self, session: AsyncSession, now: Optional[datetime] = None) -> int:
        """Delete records older than the retention window; returns the row count."""
        cutoff = self.cutoff(now)
        deleted = await UptimeRecordRepository(session).delete_older_than(cutoff)
        if deleted:
            logger.info(f"[History] Pruned {deleted} records older than {TimeHelper.format_datetime(cutoff)}")
        return deleted
