"""
============================================================================
UPTIME ENGINE - TRIGGER ENDPOINT
============================================================================
aiohttp server through which an external scheduler starts uptime cycles.

Routes
------
    GET  /                  → 200 "OK"        (liveness)
    GET  /health            → 200 JSON        (last cycle, scheduler jobs)
    GET|POST /api/cron/uptime                 (runs one cycle)

Authorization
-------------
The shared secret is read from the ``cron_secret`` site setting, then from
the ``CRON_SECRET`` environment variable. A caller may present it as
``Authorization: Bearer <secret>``, ``x-cron-secret: <secret>`` or
``?secret=<secret>``. Requests carrying the scheduler platform header
(``x-vercel-cron`` by default) are accepted without a secret. When no
secret is configured at all, requests are accepted and a warning is
logged.

Status codes
------------
    200  cycle ran
    401  secret missing or wrong, nothing probed
    409  a cycle is already running, nothing probed
    500  persistence failure

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import hmac
import time
from typing import Any, Dict, Iterable, Optional

from aiohttp import web

from config.constants import SiteSettingKeys
from config.settings import Settings
from database.manager import DatabaseManager, SiteSettingRepository
from exceptions import CycleInProgressError, DatabaseException, InitializationError
from monitoring.engine import UptimeEngine
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("Trigger")


# ============================================================================
# AUTHORIZATION HELPERS
# ============================================================================

def presented_secrets(request: web.Request) -> Iterable[str]:
    """Yield every secret the caller supplied, in header/query precedence order."""
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        yield authorization[7:].strip()

    header_secret = request.headers.get("x-cron-secret")
    if header_secret:
        yield header_secret.strip()

    query_secret = request.query.get("secret")
    if query_secret:
        yield query_secret


def is_authorized(request: web.Request, secret: Optional[str], scheduler_header: str) -> bool:
    """
    Decide whether *request* may start a cycle.

    Args:
        request: Incoming request
        secret: Configured shared secret, or None when unset
        scheduler_header: Header name that marks platform scheduler calls
    """
    if not secret:
        logger.warning("[Trigger] No cron secret configured; accepting unauthenticated request")
        return True

    if scheduler_header and scheduler_header in request.headers:
        return True

    expected = secret.encode("utf-8")
    return any(
        hmac.compare_digest(candidate.encode("utf-8"), expected)
        for candidate in presented_secrets(request)
    )


# ============================================================================
# TRIGGER SERVER
# ============================================================================

class TriggerServer:
    """
    HTTP front door of the uptime engine.

    Attributes
    ----------
    app : aiohttp.web.Application
    scheduler : Scheduler | None
        Optional in-process scheduler whose job stats appear on /health.
    """

    def __init__(
        self,
        settings: Settings,
        engine: UptimeEngine,
        db_manager: DatabaseManager,
        scheduler: Any = None,
    ):
        self.settings = settings
        self.engine = engine
        self.db_manager = db_manager
        self.scheduler = scheduler

        self._host = settings.trigger.host
        self._port = settings.trigger.port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = time.time()
        self._request_count: int = 0

        self.app = web.Application()
        self.app.router.add_get("/", self._handle_root)
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_route("GET", settings.trigger.path, self._handle_trigger)
        self.app.router.add_route("POST", settings.trigger.path, self._handle_trigger)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Bind and start serving.

        Raises:
            InitializationError: If the listening socket cannot be bound
        """
        self._start_time = time.time()
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        try:
            await self._site.start()
        except OSError as e:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            raise InitializationError(
                f"Cannot bind {self._host}:{self._port}: {e}", component="TriggerServer", cause=e
            ) from e
        logger.info(f"✓ TriggerServer listening on {self._host}:{self._port}{self.settings.trigger.path}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ TriggerServer stopped")

    # ------------------------------------------------------------------
    # SECRET RESOLUTION
    # ------------------------------------------------------------------

    async def resolve_cron_secret(self) -> Optional[str]:
        """Stored ``cron_secret`` site setting first, then the environment."""
        async with self.db_manager.session() as session:
            stored = await SiteSettingRepository(session).get_value(SiteSettingKeys.CRON_SECRET)
        if stored:
            return stored

        env_secret = self.settings.trigger.cron_secret
        if env_secret and env_secret.get_secret_value().strip():
            return env_secret.get_secret_value().strip()
        return None

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_root(self, request: web.Request) -> web.Response:
        """GET / - simple liveness probe."""
        self._request_count += 1
        return web.Response(text="OK", status=200)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health - engine and scheduler diagnostics."""
        self._request_count += 1
        uptime_seconds = int(time.time() - self._start_time)

        health: Dict[str, Any] = {
            "status": "healthy",
            "app": self.settings.app_name,
            "version": self.settings.app_version,
            "uptime_seconds": uptime_seconds,
            "uptime_human": TimeHelper.seconds_to_human_readable(uptime_seconds),
            "requests_served": self._request_count,
            "timestamp": TimeHelper.get_utc_now().isoformat(),
            "engine": self.engine.get_stats(),
            "scheduler": self.scheduler.get_job_stats() if self.scheduler else None,
        }
        return web.json_response(health, status=200)

    async def _handle_trigger(self, request: web.Request) -> web.Response:
        """GET|POST cron path - authorize, then run one cycle."""
        self._request_count += 1

        try:
            secret = await self.resolve_cron_secret()
        except DatabaseException as e:
            logger.error(f"[Trigger] Cannot read cron secret: {e.message}")
            return web.json_response({"success": False, "error": "Database error"}, status=500)

        if not is_authorized(request, secret, self.settings.trigger.scheduler_header):
            logger.warning(f"[Trigger] Unauthorized trigger from {request.remote}")
            return web.json_response({"success": False, "error": "Unauthorized"}, status=401)

        try:
            summary = await self.engine.run_cycle()
        except CycleInProgressError as e:
            return web.json_response({"success": False, "error": e.message}, status=409)
        except DatabaseException as e:
            logger.opt(exception=True).error(f"[Trigger] Uptime cycle aborted: {e.message}")
            return web.json_response(
                {"success": False, "error": "Database error", "details": e.message},
                status=500,
            )

        return web.json_response(summary.to_response(), status=200)
