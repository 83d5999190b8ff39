# ============================================================================
# WORKER MAIN ENTRY POINT
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Worker process entry point
# PURPOSE: Run queue consumers with an aiohttp health server alongside
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Main Entry Point

One process consumes one or more queues (all four by default). Scaling a
single queue means starting more processes with WORKER_QUEUES set; the
claim query keeps them from working the same job twice.

Probes:
    /livez    200 while the process is up, 503 once it has failed
    /readyz   200 only while the consumers are polling
    /health   same as /livez with per-queue stats

Usage:
    python -m worker.main        (or the workflow-worker script)

Environment Variables:
    WORKER_ID, WORKER_QUEUES, JOB_STORE, HEALTH_PORT, SHUTDOWN_TIMEOUT
    QUEUE_<NAME>_MAX_WORKERS, JOB_TIMEOUT_SECONDS, JOB_MAX_ATTEMPTS
    LOG_LEVEL, LOG_FORMAT, DATABASE_URL or POSTGRES_*
"""

import asyncio
import sys
from typing import Optional

from aiohttp import web

from core.config import get_defaults
from core.logging import configure_logging, get_logger
from handlers import build_registry
from repositories import close_pool, open_store
from worker.consumer import JobConsumer, install_signal_handlers
from worker.contracts import WorkerConfig
from worker.executor import JobExecutor
from __version__ import __version__, BUILD_DATE

logger = get_logger(__name__)


class WorkerProcess:
    """Lifecycle state of the worker process, read by the health probes."""

    def __init__(self, config: WorkerConfig):
        self.config = config
        self.consumer: Optional[JobConsumer] = None
        self.healthy = True
        self.status = "starting"

    def fail(self, status: str) -> None:
        self.healthy = False
        self.status = status[:120]

    @property
    def ready(self) -> bool:
        return self.healthy and self.consumer is not None and self.consumer.is_running

    def snapshot(self) -> dict:
        data = {
            "status": "healthy" if self.healthy else "unhealthy",
            "worker_status": self.status,
            "version": __version__,
            "build_date": BUILD_DATE,
            "worker_id": self.config.worker_id,
            "queues": self.config.queues,
            "store": self.config.store_backend,
            "consuming": self.ready,
        }
        if self.consumer is not None:
            data["stats"] = self.consumer.stats()
        return data

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(self.snapshot(), status=200 if self.healthy else 503)

    async def handle_ready(self, request: web.Request) -> web.Response:
        ready = self.ready
        return web.json_response(
            {"ready": ready, "worker_status": self.status},
            status=200 if ready else 503,
        )

    def health_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.handle_health)
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/livez", self.handle_health)
        app.router.add_get("/readyz", self.handle_ready)
        return app

    async def start_health_server(self) -> web.AppRunner:
        runner = web.AppRunner(self.health_app())
        await runner.setup()
        await web.TCPSite(runner, "0.0.0.0", self.config.health_port).start()
        logger.info(f"Health server listening on :{self.config.health_port}")
        return runner

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> int:
        """Consume until SIGTERM/SIGINT. Returns the process exit code."""
        config = self.config
        logger.info(
            f"Job worker v{__version__} starting: id={config.worker_id} "
            f"queues={config.queues} store={config.store_backend}"
        )
        health_runner = await self.start_health_server()

        try:
            store = await open_store(config.store_backend)
        except Exception as e:
            logger.exception(f"Could not open job store: {e}")
            self.fail("no_job_store")
            await health_runner.cleanup()
            return 1

        registry = build_registry(store)
        unserved = [queue for queue in config.queues if queue not in registry.queues()]
        if unserved:
            logger.warning(f"No workers registered for queues: {unserved}")
        logger.info(f"Registered {len(registry)} job kinds")

        defaults = get_defaults()
        executor = JobExecutor(store, registry, config.worker_id, defaults)
        self.consumer = JobConsumer(config, store, executor, defaults)
        install_signal_handlers(self.consumer)

        self.status = "running"
        exit_code = 0
        try:
            await self.consumer.run()
            self.status = "stopped"
        except Exception as e:
            logger.exception(f"Worker failed: {e}")
            self.fail(f"error: {e}")
            exit_code = 1
        finally:
            await store.close()
            await close_pool()
            await health_runner.cleanup()

        logger.info(f"Job worker {config.worker_id} stopped")
        return exit_code


def run() -> None:
    """Synchronous entry point."""
    configure_logging()
    sys.exit(asyncio.run(WorkerProcess(WorkerConfig.from_env()).run()))


if __name__ == "__main__":
    run()
