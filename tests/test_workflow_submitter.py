# ============================================================================
# WORKFLOW SUBMISSION TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Tests - Atomic multi-step submission and duplicate detection
# PURPOSE: Verify MetabaseQueue / WorkstationQueue create_* operations
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Submission Tests

Covers:
1. Restricted / open metabase pipelines queue every step with metadata
2. Resubmission while in flight -> duplicate handle, nothing inserted
3. A failing insert rolls back the whole workflow
4. Connectivity workflow shape (connect per host, disconnect, notify)
5. Single-job workflows (delete, resync, workstation, start)

Run with:
    pytest tests/test_workflow_submitter.py -v
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core.contracts import JobState, JobStatus
from core.errors import CODE_TRANSACTIONAL_QUEUE, DatabaseError
from core.models import JobListParams, MetabaseVerifyBigqueryDatabaseJob
from repositories import MemoryJobStore
from services import (
    MetabaseQueue,
    RestrictedMetabaseWorkflowOpts,
    WorkstationJobOpts,
    WorkstationQueue,
)
from services.metabase_queue import OPEN_STEPS, RESTRICTED_STEPS


# ============================================================================
# HELPERS
# ============================================================================

class _FailingStore(MemoryJobStore):
    """Raises a database error when inserting one kind."""

    def __init__(self, fail_kind: str):
        super().__init__()
        self.fail_kind = fail_kind

    def _insert_one(self, tx, spec, now):
        if spec.args.kind == self.fail_kind:
            raise DatabaseError(
                "memory_job_store.insert_many_tx",
                "connection reset",
                code=CODE_TRANSACTIONAL_QUEUE,
            )
        return super()._insert_one(tx, spec, now)


def _make_restricted_opts(dataset_id="ds-1"):
    return RestrictedMetabaseWorkflowOpts(
        dataset_id=dataset_id,
        permission_group_name=f"{dataset_id}-readers",
        collection_name=f"Collection {dataset_id}",
        account_id="mb-sa",
        project_id="analytics",
        display_name="Metabase SA",
        role="roles/bigquery.dataViewer",
        member="serviceAccount:mb-sa@analytics.iam.gserviceaccount.com",
    )


def _make_workstation_opts(ident="u1", machine_type="n2-standard-4"):
    return WorkstationJobOpts(
        ident=ident,
        name="Ada",
        email="ada@example.org",
        machine_type=machine_type,
        container_image="img:1",
    )


async def _all_jobs(store):
    return sorted(await store.list(JobListParams()), key=lambda job: job.id)


# ============================================================================
# METABASE
# ============================================================================

class TestMetabaseSubmit:
    """create_restricted / create_open."""

    def test_restricted_queues_nine_steps(self):
        store = MemoryJobStore()
        queue = MetabaseQueue(store)

        async def run():
            handle = await queue.create_restricted_metabase_workflow(_make_restricted_opts())
            return handle, await _all_jobs(store)

        handle, jobs = asyncio.run(run())
        assert handle.duplicate is False
        assert [h.kind for h in handle.jobs] == [cls.kind for _, cls in RESTRICTED_STEPS]
        assert all(h.state == JobStatus.RUNNING for h in handle.jobs)
        assert len(jobs) == 9
        assert all(job.queue == "metabase" for job in jobs)
        assert all(job.metadata == {"datasetID": "ds-1", "workflow": "restricted"} for job in jobs)

    def test_restricted_step_payloads(self):
        store = MemoryJobStore()
        queue = MetabaseQueue(store)

        async def run():
            await queue.create_restricted_metabase_workflow(_make_restricted_opts())
            return await _all_jobs(store)

        jobs = {job.kind: job for job in asyncio.run(run())}
        assert jobs["metabase_create_permission_group_job"].args == {
            "dataset_id": "ds-1",
            "permission_group_name": "ds-1-readers",
        }
        assert jobs["metabase_ensure_service_account_job"].args["description"] == ""
        assert jobs["metabase_add_project_iam_policy_binding_job"].args["role"] == "roles/bigquery.dataViewer"

    def test_duplicate_restricted_submission(self):
        store = MemoryJobStore()
        queue = MetabaseQueue(store)

        async def run():
            first = await queue.create_restricted_metabase_workflow(_make_restricted_opts())
            second = await queue.create_restricted_metabase_workflow(_make_restricted_opts())
            return first, second, await _all_jobs(store)

        first, second, jobs = asyncio.run(run())
        assert second.duplicate is True
        assert len(second.jobs) == 9
        assert all(h.duplicate for h in second.jobs)
        assert [h.id for h in second.jobs] == [h.id for h in first.jobs]
        assert len(jobs) == 9

    def test_other_dataset_is_not_duplicate(self):
        store = MemoryJobStore()
        queue = MetabaseQueue(store)

        async def run():
            await queue.create_open_metabase_workflow("ds-1")
            return await queue.create_open_metabase_workflow("ds-2")

        assert asyncio.run(run()).duplicate is False

    def test_partial_overlap_inserts_nothing(self):
        """An open pipeline in flight blocks a restricted one for the same dataset."""
        store = MemoryJobStore()
        queue = MetabaseQueue(store)

        async def run():
            await queue.create_open_metabase_workflow("ds-1")
            handle = await queue.create_restricted_metabase_workflow(_make_restricted_opts("ds-1"))
            return handle, await _all_jobs(store)

        handle, jobs = asyncio.run(run())
        assert handle.duplicate is True
        assert [h.kind for h in handle.jobs] == [cls.kind for _, cls in OPEN_STEPS]
        assert len(jobs) == 4

    def test_resubmission_after_completion(self):
        store = MemoryJobStore()
        queue = MetabaseQueue(store)

        async def run():
            first = await queue.create_open_metabase_workflow("ds-1")
            for header in first.jobs:
                await store.complete(header.id)
            return await queue.create_open_metabase_workflow("ds-1")

        assert asyncio.run(run()).duplicate is False

    def test_failed_insert_rolls_back_workflow(self):
        store = _FailingStore(MetabaseVerifyBigqueryDatabaseJob.kind)
        queue = MetabaseQueue(store)

        async def run():
            with pytest.raises(DatabaseError) as exc_info:
                await queue.create_restricted_metabase_workflow(_make_restricted_opts())
            return exc_info.value, await _all_jobs(store)

        err, jobs = asyncio.run(run())
        assert err.op == "metabase_queue.create_restricted_metabase_workflow"
        assert err.code == CODE_TRANSACTIONAL_QUEUE
        assert jobs == []

    def test_rollback_does_not_block_resubmission(self):
        store = _FailingStore(MetabaseVerifyBigqueryDatabaseJob.kind)
        queue = MetabaseQueue(store)

        async def run():
            with pytest.raises(DatabaseError):
                await queue.create_open_metabase_workflow("ds-1")
            store.fail_kind = ""
            return await queue.create_open_metabase_workflow("ds-1")

        handle = asyncio.run(run())
        assert handle.duplicate is False
        assert len(handle.jobs) == 4


class TestMetabaseSingleJobs:
    """Delete and resync."""

    def test_delete_job(self):
        store = MemoryJobStore()
        queue = MetabaseQueue(store)

        async def run():
            handle = await queue.create_metabase_delete_job("ds-1")
            return handle, await _all_jobs(store)

        handle, jobs = asyncio.run(run())
        assert [h.kind for h in handle.jobs] == ["metabase_delete_bigquery_database_job"]
        assert jobs[0].sequence_key is None
        assert jobs[0].metadata == {"datasetID": "ds-1"}

    def test_resync_on_own_queue(self):
        store = MemoryJobStore()
        queue = MetabaseQueue(store)

        async def run():
            first = await queue.create_resync_all_users_job()
            second = await queue.create_resync_all_users_job()
            return first, second, await _all_jobs(store)

        first, second, jobs = asyncio.run(run())
        assert first.duplicate is False
        assert second.duplicate is True
        assert len(jobs) == 1
        assert jobs[0].queue == "metabase_resync"
        assert jobs[0].metadata == {}


# ============================================================================
# WORKSTATION
# ============================================================================

class TestWorkstationSubmit:
    """Workstation, start and connectivity workflows."""

    def test_workstation_job(self):
        store = MemoryJobStore()
        queue = WorkstationQueue(store)

        async def run():
            first = await queue.create_workstation_job(_make_workstation_opts())
            # Different configuration, same ident: still one job in flight
            second = await queue.create_workstation_job(_make_workstation_opts(machine_type="large"))
            return first, second, await _all_jobs(store)

        first, second, jobs = asyncio.run(run())
        assert first.duplicate is False
        assert second.duplicate is True
        assert len(jobs) == 1
        assert jobs[0].metadata == {"ident": "u1"}
        assert jobs[0].args["machine_type"] == "n2-standard-4"

    def test_start_job(self):
        store = MemoryJobStore()
        queue = WorkstationQueue(store)

        async def run():
            await queue.create_workstation_start_job("u1")
            return await queue.create_workstation_start_job("u2")

        assert asyncio.run(run()).duplicate is False

    def test_connectivity_shape(self):
        store = MemoryJobStore()
        queue = WorkstationQueue(store)

        async def run():
            handle = await queue.create_connectivity_workflow("u1", "r1", ["h1", "h2", "h1"])
            return handle, await _all_jobs(store)

        handle, jobs = asyncio.run(run())
        assert [job.kind for job in jobs] == [
            "workstation_connect",
            "workstation_connect",
            "workstation_disconnect",
            "workstation_notify",
        ]
        assert [job.args.get("host") for job in jobs[:2]] == ["h1", "h2"]
        assert jobs[2].args["hosts"] == ["h1", "h2"]
        assert jobs[3].args == {"ident": "u1", "request_id": "r1", "hosts": ["h1", "h2"]}
        assert all(job.queue == "workstation_connectivity" for job in jobs)
        assert len(handle.jobs) == 4

    def test_connectivity_without_hosts(self):
        store = MemoryJobStore()
        queue = WorkstationQueue(store)

        async def run():
            await queue.create_connectivity_workflow("u1", "r1", [])
            return await _all_jobs(store)

        jobs = asyncio.run(run())
        assert [job.kind for job in jobs] == ["workstation_disconnect", "workstation_notify"]

    def test_overlapping_connectivity_queues_new_hosts(self):
        store = MemoryJobStore()
        queue = WorkstationQueue(store)

        async def run():
            first = await queue.create_connectivity_workflow("u1", "r1", ["h1", "h2"])
            handle = await queue.create_connectivity_workflow("u1", "r2", ["h1", "h3"])
            return first, handle, await _all_jobs(store), await queue.get_connectivity_workflow("u1")

        first, handle, jobs, status = asyncio.run(run())
        assert handle.duplicate is False
        assert [(h.kind, h.duplicate) for h in handle.jobs] == [
            ("workstation_connect", True),
            ("workstation_connect", False),
            ("workstation_disconnect", False),
            ("workstation_notify", False),
        ]
        # h1 is served by the connect already in flight from r1
        assert handle.jobs[0].id == first.jobs[0].id
        assert len(jobs) == 7
        new_jobs = jobs[4:]
        assert [job.kind for job in new_jobs] == [
            "workstation_connect",
            "workstation_disconnect",
            "workstation_notify",
        ]
        assert new_jobs[0].args["host"] == "h3"
        assert new_jobs[1].args["hosts"] == ["h1", "h3"]
        assert new_jobs[2].args == {"ident": "u1", "request_id": "r2", "hosts": ["h1", "h3"]}

        assert status.request_id == "r2"
        assert [(c.args["host"], c.id) for c in status.connect] == [
            ("h1", first.jobs[0].id),
            ("h3", new_jobs[0].id),
        ]
        assert status.missing == []

    def test_identical_connectivity_is_duplicate(self):
        store = MemoryJobStore()
        queue = WorkstationQueue(store)

        async def run():
            first = await queue.create_connectivity_workflow("u1", "r1", ["h1", "h2"])
            handle = await queue.create_connectivity_workflow("u1", "r1", ["h1", "h2"])
            return first, handle, await _all_jobs(store)

        first, handle, jobs = asyncio.run(run())
        assert handle.duplicate is True
        assert all(h.duplicate for h in handle.jobs)
        assert [h.id for h in handle.jobs] == [h.id for h in first.jobs]
        assert len(jobs) == 4

    def test_window_rollover_allows_resubmission(self):
        class Clock:
            now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

            def __call__(self):
                return self.now

        clock = Clock()
        store = MemoryJobStore(clock=clock)
        queue = WorkstationQueue(store)

        async def run():
            await queue.create_workstation_start_job("u1")
            clock.now += timedelta(minutes=15)
            handle = await queue.create_workstation_start_job("u1")
            return handle, await _all_jobs(store)

        handle, jobs = asyncio.run(run())
        assert handle.duplicate is False
        assert len(jobs) == 2
        assert all(job.state == JobState.AVAILABLE for job in jobs)
