# ============================================================================
# STEP WORKER / REGISTRY TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Tests - Worker registration and step execution
# PURPOSE: Verify build_registry wiring and worker -> capability calls
# CREATED: 19 OCT 2026
# ============================================================================
"""
Step Worker Tests

Covers:
1. Every job kind has exactly one worker, on the queue it is submitted to
2. Registry lookups and duplicate registration
3. Workers decode args, call their capability, then complete the job
4. A capability failure leaves the job running for the executor to fail

Run with:
    pytest tests/test_step_workers.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.contracts import JobState, QueueName
from core.models import ARGS_BY_KIND, JobListParams
from handlers import (
    DuplicateWorkerError,
    WorkerNotFoundError,
    WorkerRegistry,
    build_registry,
)
from handlers.metabase import EnsureServiceAccountWorker, PreflightCheckWorker
from handlers.workstations import DisconnectWorker
from repositories import MemoryJobStore
from services import MetabaseQueue, RestrictedMetabaseWorkflowOpts, WorkstationQueue


async def _claim_one(store, queue):
    jobs = await store.fetch_available(queue, 1, "w-test")
    assert len(jobs) == 1
    return jobs[0]


# ============================================================================
# REGISTRY
# ============================================================================

class TestRegistry:
    """WorkerRegistry and build_registry."""

    def test_all_kinds_registered(self):
        registry = build_registry(MemoryJobStore())

        assert len(registry) == len(ARGS_BY_KIND)
        assert registry.missing(list(ARGS_BY_KIND)) == []
        assert set(registry.queues()) == {q.value for q in QueueName}

    def test_kinds_per_queue(self):
        registry = build_registry(MemoryJobStore())

        assert set(registry.kinds(QueueName.WORKSTATION_CONNECTIVITY.value)) == {
            "workstation_connect",
            "workstation_disconnect",
            "workstation_notify",
        }
        assert registry.kinds(QueueName.METABASE_RESYNC.value) == ["metabase_resync_all_users_job"]
        assert len(registry.kinds(QueueName.METABASE.value)) == 10

    def test_duplicate_registration(self):
        store = MemoryJobStore()
        registry = WorkerRegistry()
        registry.register(PreflightCheckWorker(store, AsyncMock()))

        with pytest.raises(DuplicateWorkerError):
            registry.register(PreflightCheckWorker(store, AsyncMock()))

    def test_unknown_kind(self):
        registry = WorkerRegistry()

        assert registry.get("nope") is None
        assert "nope" not in registry
        with pytest.raises(WorkerNotFoundError) as exc_info:
            registry.get_or_raise("nope")
        assert exc_info.value.kind == "nope"

    def test_list_workers_metadata(self):
        registry = WorkerRegistry()
        registry.register(DisconnectWorker(MemoryJobStore(), AsyncMock()))

        (info,) = registry.list_workers()
        assert info["kind"] == "workstation_disconnect"
        assert info["queue"] == "workstation_connectivity"
        assert info["worker"] == "DisconnectWorker"


# ============================================================================
# WORKERS
# ============================================================================

class TestWorkers:
    """Workers call their capability and complete the job."""

    def test_preflight_completes_job(self):
        store = MemoryJobStore()
        capability = AsyncMock()
        worker = PreflightCheckWorker(store, capability)

        async def run():
            await MetabaseQueue(store).create_open_metabase_workflow("ds-1")
            job = await _claim_one(store, "metabase")
            await worker.work(job)
            return await store.get(job.id)

        job = asyncio.run(run())
        capability.preflight_check.assert_awaited_once_with("ds-1")
        assert job.state == JobState.COMPLETED

    def test_service_account_args(self):
        store = MemoryJobStore()
        capability = AsyncMock()
        worker = EnsureServiceAccountWorker(store, capability)
        opts = RestrictedMetabaseWorkflowOpts(
            dataset_id="ds-1",
            permission_group_name="g",
            collection_name="c",
            account_id="mb-sa",
            project_id="analytics",
            display_name="Metabase SA",
            description="svc",
            role="r",
            member="m",
        )

        async def run():
            await MetabaseQueue(store).create_restricted_metabase_workflow(opts)
            jobs = await store.list(JobListParams().kinds(worker.kind))
            await worker.run(jobs[0].decode_args(worker.args_cls))

        asyncio.run(run())
        capability.ensure_service_account.assert_awaited_once_with(
            "ds-1", "mb-sa", "analytics", "Metabase SA", "svc"
        )

    def test_capability_failure_leaves_job_running(self):
        store = MemoryJobStore()
        capability = AsyncMock()
        capability.preflight_check.side_effect = RuntimeError("metabase unreachable")
        worker = PreflightCheckWorker(store, capability)

        async def run():
            await MetabaseQueue(store).create_open_metabase_workflow("ds-1")
            job = await _claim_one(store, "metabase")
            with pytest.raises(RuntimeError):
                await worker.work(job)
            return await store.get(job.id)

        assert asyncio.run(run()).state == JobState.RUNNING

    def test_connectivity_workers(self):
        store = MemoryJobStore()
        capability = AsyncMock()
        registry = build_registry(store, connectivity=capability)
        queue = QueueName.WORKSTATION_CONNECTIVITY.value

        async def run():
            await WorkstationQueue(store).create_connectivity_workflow("u1", "r1", ["h1"])
            for _ in range(3):
                job = await _claim_one(store, queue)
                await registry.get_or_raise(job.kind).work(job)

        asyncio.run(run())
        capability.connect_host.assert_awaited_once_with("u1", "h1")
        capability.disconnect_hosts.assert_awaited_once_with("u1", keep=["h1"])
        capability.notify.assert_awaited_once_with("u1", "r1", ["h1"])

    def test_workstation_workers(self):
        store = MemoryJobStore()
        capability = AsyncMock()
        registry = build_registry(store, workstation=capability)

        async def run():
            await WorkstationQueue(store).create_workstation_start_job("u1")
            job = await _claim_one(store, QueueName.WORKSTATION.value)
            await registry.get_or_raise(job.kind).work(job)

        asyncio.run(run())
        capability.start_workstation.assert_awaited_once_with("u1")

    def test_default_capabilities_complete(self):
        store = MemoryJobStore()
        registry = build_registry(store)

        async def run():
            await MetabaseQueue(store).create_resync_all_users_job()
            job = await _claim_one(store, QueueName.METABASE_RESYNC.value)
            await registry.get_or_raise(job.kind).work(job)
            return await store.get(job.id)

        assert asyncio.run(run()).state == JobState.COMPLETED
