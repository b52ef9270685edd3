"""Maintenance - Main Application Entry Point.

Orchestrates the service following the build order:
1. Configuration loading
2. Observability (metrics)
3. Storage backend (file or Redis)
4. Config + whitelist documents (ensure defaults, load, migrate)
5. State, engine, whitelist, service
6. End-timer recovery
7. Update check (background, never awaited by the core)

Rules:
- A document that cannot be loaded aborts startup
- The countdown tick is the only periodic writer of transition state
"""

import asyncio
import json
import logging
import logging.config
import signal
from typing import Optional


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(log_level: str = "INFO", log_format: str = "text"):
    """Setup structured logging.

    Two modes are supported:
    - ``json``  -- machine-parseable JSON-ish format
    - ``text``  -- human-readable format (default)

    Args:
        log_level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: ``"json"`` or ``"text"``.
    """
    if log_format == "json":
        formatter = {
            "class": "logging.Formatter",
            "format": json.dumps({
                "time": "%(asctime)s",
                "level": "%(levelname)s",
                "module": "%(name)s",
                "message": "%(message)s",
            }),
        }
    else:
        formatter = {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        }

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }
    logging.config.dictConfig(config)


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application orchestrator
# ---------------------------------------------------------------------------

class MaintenanceApplication:
    """Main application orchestrator.

    Usage::

        app = MaintenanceApplication()
        await app.initialize()
        await app.run()        # blocks until shutdown signal
        await app.shutdown()
    """

    def __init__(self, settings=None, platform=None):
        self._settings = settings
        self._platform = platform
        self._redis = None
        self._metrics = None
        self._service = None
        self._update_checker = None
        self._tasks: list = []
        self.shutdown_event = asyncio.Event()

    @property
    def service(self):
        return self._service

    # ------------------------------------------------------------------
    # Initialisation (strict order)
    # ------------------------------------------------------------------

    async def initialize(self):
        """Initialize all components in dependency order.

        Raises ``ConfigLoadError`` when either document cannot be loaded.
        """
        # ---- 1. Load configuration ----------------------------------------
        from maintenance.config.settings import get_settings

        if self._settings is None:
            self._settings = get_settings()
        setup_logging(self._settings.log_level, self._settings.log_format)

        logger.info("=" * 60)
        logger.info("Maintenance %s - Starting up", self._settings.version)
        logger.info("=" * 60)
        logger.info("Instance: %s", self._settings.instance_id)
        logger.info("Storage backend: %s", self._settings.storage_backend)

        # ---- 2. Initialize observability (metrics) -------------------------
        if self._settings.metrics_enabled:
            from maintenance.observability.metrics import MetricsCollector

            self._metrics = MetricsCollector(self._settings.prometheus_port)
            self._metrics.start_server()
            self._metrics.set_build_info(
                self._settings.version,
                self._settings.instance_id,
                self._settings.platform_name,
            )

        # ---- 3. Storage backend --------------------------------------------
        if self._settings.storage_backend == "redis":
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(
                self._settings.redis_url,
                decode_responses=True,
            )
            await self._redis.ping()
            logger.info("Redis connected at %s", self._settings.redis_url)

        from maintenance.config.backends import create_backend
        from maintenance.config.defaults import DEFAULT_CONFIG, DEFAULT_WHITELIST
        from maintenance.config.store import ConfigStore

        config_store = ConfigStore(
            create_backend(self._settings, "config", self._redis),
            name="config",
        )
        whitelist_store = ConfigStore(
            create_backend(self._settings, "whitelist", self._redis),
            name="whitelist",
            migrations=(),
        )

        # ---- 4. Documents --------------------------------------------------
        await config_store.ensure_exists(DEFAULT_CONFIG)
        await whitelist_store.ensure_exists(DEFAULT_WHITELIST)
        await config_store.load()
        await config_store.migrate()

        # ---- 5. Core ---------------------------------------------------------
        from maintenance.core.whitelist import AccessControlList
        from maintenance.platform.standalone import StandalonePlatform
        from maintenance.service import MaintenanceService, describe

        whitelist = AccessControlList(whitelist_store)
        await whitelist.load()

        if self._platform is None:
            self._platform = StandalonePlatform(max_players=self._settings.max_players)

        self._service = MaintenanceService.create(
            config_store,
            whitelist,
            self._platform,
            metrics=self._metrics,
            tick_interval_seconds=self._settings.tick_interval_seconds,
        )

        # ---- 6. End-timer recovery -------------------------------------------
        await self._service.continue_last_end_timer()

        # ---- 7. Update check -------------------------------------------------
        if self._settings.update_checks:
            from maintenance.network.update_checker import UpdateChecker

            self._update_checker = UpdateChecker(
                self._settings.version,
                self._settings.update_url,
                timeout_seconds=self._settings.http_timeout_seconds,
            )
            self._tasks.append(("update_check", self._update_checker.start()))

        logger.info("Service initialized: %s", describe(self._service))

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def run(self):
        """Start the countdown tick and block until shutdown signal."""
        self._tasks.append(("tick", self._service.start_ticking()))
        logger.info("Maintenance service running (maintenance=%s)", self._service.is_maintenance())
        await self.shutdown_event.wait()

    async def upload_dump(self):
        """Upload a diagnostic dump; returns the paste key or None."""
        from maintenance.network.dump import DumpUploader

        uploader = DumpUploader(
            self._settings.dump_url,
            user_agent=f"Maintenance/{self._settings.version}",
            timeout_seconds=self._settings.http_timeout_seconds,
        )
        dump = self._service.build_dump(self._settings.version, self._settings.instance_id)
        try:
            key = await uploader.start(dump)
        finally:
            await uploader.close()
        if key:
            logger.info("Dump uploaded: %s/%s", self._settings.dump_url.rsplit("/", 1)[0], key)
        return key

    # ------------------------------------------------------------------
    # Graceful shutdown
    # ------------------------------------------------------------------

    async def shutdown(self):
        """Graceful shutdown in reverse order."""
        logger.info("Shutting down maintenance service...")

        # 1. Cancel background tasks
        for name, task in reversed(self._tasks):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            logger.info("Stopped %s", name)
        self._tasks.clear()

        # 2. Close HTTP session
        if self._update_checker:
            try:
                await self._update_checker.close()
            except Exception as exc:
                logger.error("Error closing update checker: %s", exc)

        # 3. Close Redis connection
        if self._redis:
            try:
                await self._redis.aclose()
            except Exception as exc:
                logger.error("Error closing Redis: %s", exc)

        logger.info("Maintenance shutdown complete")


# ---------------------------------------------------------------------------
# Async entry point
# ---------------------------------------------------------------------------

async def main(settings: Optional[object] = None):
    """Main async entry point."""
    app = MaintenanceApplication(settings)

    # Register OS signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        app.shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.initialize()
        await app.run()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as exc:
        logger.critical("Fatal error: %s", exc, exc_info=True)
    finally:
        await app.shutdown()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
