# ============================================================================
# WORKFLOW ORCHESTRATOR - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - FastAPI application entry point
# PURPOSE: HTTP API over the workflow services, optional in-process worker
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Orchestrator Main Application

The API process submits metabase and workstation workflows and reports on
them. It never works jobs itself unless RUN_WORKER=true, in which case a
JobConsumer for every queue shares the API's job store. That mode is meant
for local development against JOB_STORE=memory.

Environment:
    JOB_STORE               postgres (default) | memory
    AUTO_BOOTSTRAP_SCHEMA   true to create the jobs table on startup
    RUN_WORKER              true to consume jobs in this process
    CORS_ORIGINS            comma separated, default "*"

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from __version__ import __version__, BUILD_DATE, EPOCH
from api.routes import router, set_services
from core.config import get_defaults
from core.contracts import QueueName
from core.logging import configure_logging, get_logger
from core.schema import PydanticToSQL
from handlers import build_registry
from repositories import SCHEMA, JobStore, close_pool, get_pool, open_store
from services import MetabaseQueue, WorkstationQueue
from worker import JobConsumer, JobExecutor, WorkerConfig

configure_logging()
logger = get_logger(__name__)


def _flag(name: str) -> bool:
    return os.environ.get(name, "").lower() == "true"


@dataclass
class ApiSettings:
    job_store: str = "postgres"
    bootstrap_schema: bool = False
    run_worker: bool = False
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "ApiSettings":
        origins = os.environ.get("CORS_ORIGINS", "*")
        return cls(
            job_store=os.environ.get("JOB_STORE", "postgres").lower(),
            bootstrap_schema=_flag("AUTO_BOOTSTRAP_SCHEMA"),
            run_worker=_flag("RUN_WORKER"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


async def bootstrap_schema() -> None:
    """Create the schema, job_state enum, jobs table and indexes if missing."""
    pool = await get_pool()
    async with pool.connection() as conn:
        count = await PydanticToSQL(schema_name=SCHEMA).execute(conn)
    logger.info(f"Schema {SCHEMA} bootstrapped ({count} statements)")


async def _start_in_process_worker(store: JobStore) -> JobConsumer:
    config = WorkerConfig.from_env()
    defaults = get_defaults()
    executor = JobExecutor(store, build_registry(store), config.worker_id, defaults)
    consumer = JobConsumer(config, store, executor, defaults)
    await consumer.start()
    logger.info(f"In-process worker {config.worker_id} consuming {config.queues}")
    return consumer


def create_app(settings: Optional[ApiSettings] = None) -> FastAPI:
    settings = settings or ApiSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting Workflow Orchestrator v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")

        if settings.job_store == "postgres" and settings.bootstrap_schema:
            await bootstrap_schema()

        store = await open_store(settings.job_store)
        defaults = get_defaults()
        set_services(
            store=store,
            metabase_queue=MetabaseQueue(store, defaults),
            workstation_queue=WorkstationQueue(store, defaults),
            store_backend=settings.job_store,
        )
        app.state.consumer = await _start_in_process_worker(store) if settings.run_worker else None

        yield

        logger.info("Shutting down Workflow Orchestrator...")
        if app.state.consumer is not None:
            await app.state.consumer.stop()
        await store.close()
        await close_pool()

    app = FastAPI(
        title="Workflow Orchestrator",
        description="Durable multi-step metabase and workstation workflows on a transactional job store",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "service": "Workflow Orchestrator",
            "version": __version__,
            "epoch": EPOCH,
            "build_date": BUILD_DATE,
            "job_store": settings.job_store,
            "in_process_worker": settings.run_worker,
            "queues": [q.value for q in QueueName],
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        reload=_flag("RELOAD"),
    )
