"""
============================================================================
UPTIME ENGINE - MAIN APPLICATION
============================================================================
Process entry point that wires every layer of the engine together:

    Layer 1 - Core & Database
        • Settings (pydantic-settings)
        • SQLAlchemy async engine + models
        • DatabaseManager + repositories
        • Logging (loguru)

    Layer 2 - Monitoring
        • UptimeEngine        - probe → track → record → escalate
        • EscalationDispatcher - Discord DMs to the alert role

    Layer 3 - Surfaces
        • TriggerServer       - aiohttp cron endpoint + /health
        • Scheduler           - optional in-process periodic trigger

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if needed)
3.  Build UptimeEngine
4.  Start TriggerServer
5.  Start Scheduler (only when TRIGGER_SCHEDULER_ENABLED)

Shutdown Order (reverse)
-------------------------
On SIGINT or SIGTERM:
    stop scheduler → stop trigger server → close DB → exit

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import signal
import sys
from typing import Optional

from config.settings import Settings, get_settings
from database.manager import DatabaseManager
from exceptions import InitializationError
from monitoring.engine import UptimeEngine
from monitoring.scheduler import Scheduler
from monitoring.trigger import TriggerServer
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class UptimeEngineApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.engine: Optional[UptimeEngine] = None
        self.trigger_server: Optional[TriggerServer] = None
        self.scheduler: Optional[Scheduler] = None

        # --- lifecycle ---
        self._stop_event = asyncio.Event()

    def _print_banner(self) -> None:
        trigger = self.settings.trigger
        banner = f"""
╔══════════════════════════════════════════════════════════════════════════╗
║   🎮  {self.settings.app_name.upper()}  v{self.settings.app_version}
║   Environment : {self.settings.environment.value}
║   Database    : {self.settings.database.type.value}
║   Trigger     : http://{trigger.host}:{trigger.port}{trigger.path}
║   Scheduler   : {"every " + str(trigger.scheduler_interval) + "s" if trigger.scheduler_enabled else "external"}
╚══════════════════════════════════════════════════════════════════════════╝
"""
        logger.info(banner)

    # ==================================================================
    # PHASE 1 - DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        """Initialize the database manager and verify connectivity."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.initialize()

            if not await self.db_manager.check_connection():
                logger.error("  ✗ Database connection check failed")
                return False

            db_info = await self.db_manager.get_database_info()
            logger.info(
                f"  ✓ Connected to {self.settings.database.type.value}: "
                f"servers={db_info.get('servers', 0)}, "
                f"uptime_records={db_info.get('uptime_records', 0)}"
            )
            return True

        except Exception as e:
            logger.opt(exception=True).error(f"  ✗ Database init failed: {e}")
            return False

    # ==================================================================
    # PHASE 2 - MONITORING
    # ==================================================================

    async def _init_monitoring(self) -> bool:
        """Build the uptime engine and, when enabled, its scheduler."""
        logger.info("── Phase 2: Monitoring ───────────────────────────")
        try:
            self.engine = UptimeEngine(self.settings, self.db_manager)

            if self.settings.trigger.scheduler_enabled:
                self.scheduler = Scheduler()
                self.scheduler.register_job(
                    "uptime_cycle",
                    interval_seconds=self.settings.trigger.scheduler_interval,
                    coroutine_factory=self.engine.run_cycle,
                )

            logger.info("  ✓ UptimeEngine created")
            return True

        except Exception as e:
            logger.opt(exception=True).error(f"  ✗ Monitoring init failed: {e}")
            return False

    # ==================================================================
    # PHASE 3 - TRIGGER ENDPOINT
    # ==================================================================

    async def _init_trigger(self) -> bool:
        logger.info("── Phase 3: Trigger Endpoint ─────────────────────")
        try:
            self.trigger_server = TriggerServer(
                self.settings, self.engine, self.db_manager, scheduler=self.scheduler
            )
            await self.trigger_server.start()
            return True

        except InitializationError as e:
            logger.error(f"  ✗ {e.log_format()}")
            self.trigger_server = None
            return False

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any phase fails.
        """
        self._print_banner()

        if not await self._init_database():
            return False

        if not await self._init_monitoring():
            return False

        if not await self._init_trigger():
            return False

        if self.scheduler:
            await self.scheduler.start()

        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order.
        Each step is wrapped so a failure in one subsystem doesn't prevent
        the others from cleaning up.
        """
        logger.info("  SHUTTING DOWN …")

        # 1. Stop scheduler (cancels a running cycle)
        if self.scheduler:
            try:
                await self.scheduler.stop()
            except Exception as e:
                logger.error(f"  ✗ Scheduler stop error: {e}")

        # 2. Stop trigger server
        if self.trigger_server:
            try:
                await self.trigger_server.stop()
            except Exception as e:
                logger.error(f"  ✗ TriggerServer stop error: {e}")

        # 3. Close database connections
        if self.db_manager:
            try:
                await self.db_manager.close()
            except Exception as e:
                logger.error(f"  ✗ Database close error: {e}")

        logger.info("  ✓ SHUTDOWN COMPLETE")

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Block until a stop is requested."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: UptimeEngineApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so that the engine shuts down
    gracefully even when killed by the OS.
    """
    loop = asyncio.get_running_loop()

    def _handle_signal() -> None:
        logger.info("  ⚡ Signal received, initiating graceful shutdown")
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except (NotImplementedError, RuntimeError):
            # Not supported on Windows; KeyboardInterrupt still applies
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main() -> int:
    """
    Async main: creates the app, starts it, and runs until shutdown.
    """
    settings = get_settings()
    setup_logging(settings.logging)

    app = UptimeEngineApplication(settings)
    _install_signal_handlers(app)

    if not await app.startup():
        logger.error("  ✗ Startup failed, exiting")
        await app.shutdown()
        return 1

    try:
        await app.run()
    finally:
        await app.shutdown()
    return 0


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("  ⚡ KeyboardInterrupt received")


if __name__ == "__main__":
    run()
