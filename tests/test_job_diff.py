# ============================================================================
# JOB HISTORY DIFF TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Tests - Audited field diffs between workstation runs
# PURPOSE: Verify job_difference / diff_history and the history reader
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job History Diff Tests

Run with:
    pytest tests/test_job_diff.py -v
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

from core.contracts import JobStatus
from core.models import Diff, WorkstationJobRecord
from repositories import MemoryJobStore
from services import WorkstationJobOpts, WorkstationQueue
from services.job_diff import diff_history, job_difference


def _make_record(job_id, machine_type="small", container_image="img:1"):
    return WorkstationJobRecord(
        id=job_id,
        kind="workstation_job",
        start_time=datetime(2026, 10, 19, 12, job_id, tzinfo=timezone.utc),
        state=JobStatus.COMPLETED,
        ident="u1",
        name="Ada",
        email="ada@example.org",
        machine_type=machine_type,
        container_image=container_image,
    )


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

class TestJobDifference:

    def test_changed_fields(self):
        older = _make_record(1, machine_type="small", container_image="img:1")
        newer = _make_record(2, machine_type="large", container_image="img:2")

        assert job_difference(older, newer) == {
            "machine_type": Diff(added=["large"], removed=["small"]),
            "container_image": Diff(added=["img:2"], removed=["img:1"]),
        }

    def test_no_change(self):
        assert job_difference(_make_record(1), _make_record(2)) == {}

    def test_unaudited_fields_ignored(self):
        older = _make_record(1)
        newer = _make_record(2).model_copy(update={"email": "other@example.org"})
        assert job_difference(older, newer) == {}


class TestDiffHistory:

    def test_each_run_diffs_against_previous(self):
        records = [
            _make_record(3, machine_type="xl"),
            _make_record(2, machine_type="large"),
            _make_record(1, machine_type="small"),
        ]
        result = diff_history(records)

        assert result[0].diff == {"machine_type": Diff(added=["xl"], removed=["large"])}
        assert result[1].diff == {"machine_type": Diff(added=["large"], removed=["small"])}
        assert result[2].diff == {}

    def test_inputs_untouched(self):
        records = [_make_record(2, machine_type="large"), _make_record(1)]
        diff_history(records)
        assert records[0].diff == {}

    def test_single_record_skips_diff(self):
        with patch("services.job_diff.job_difference") as mock_diff:
            result = diff_history([_make_record(1)])
            empty = diff_history([])

        mock_diff.assert_not_called()
        assert len(result) == 1
        assert result[0].diff == {}
        assert empty == []


# ============================================================================
# HISTORY READER
# ============================================================================

class TestWorkstationHistory:
    """get_workstation_jobs attaches diffs."""

    def test_history_with_diff(self):
        store = MemoryJobStore()
        queue = WorkstationQueue(store)

        def opts(machine_type):
            return WorkstationJobOpts(
                ident="u1",
                name="Ada",
                email="ada@example.org",
                machine_type=machine_type,
                container_image="img:1",
            )

        async def run():
            first = await queue.create_workstation_job(opts("small"))
            await store.complete(first.jobs[0].id)
            await queue.create_workstation_job(opts("large"))
            return await queue.get_workstation_jobs("u1")

        records = asyncio.run(run())
        assert [r.machine_type for r in records] == ["large", "small"]
        assert records[0].diff == {"machine_type": Diff(added=["large"], removed=["small"])}
        assert records[1].diff == {}
        assert records[0].state == JobStatus.RUNNING
        assert records[1].state == JobStatus.COMPLETED

    def test_empty_history(self):
        queue = WorkstationQueue(MemoryJobStore())
        assert asyncio.run(queue.get_workstation_jobs("u1")) == []

    def test_history_limit(self):
        store = MemoryJobStore()
        queue = WorkstationQueue(store)

        async def run():
            for machine_type in ("a", "b", "c"):
                handle = await queue.create_workstation_job(WorkstationJobOpts(
                    ident="u1", name="Ada", email="ada@example.org",
                    machine_type=machine_type, container_image="img:1",
                ))
                await store.complete(handle.jobs[0].id)
            return await queue.get_workstation_jobs("u1", limit=2)

        records = asyncio.run(run())
        assert [r.machine_type for r in records] == ["c", "b"]
        assert records[0].diff == {"machine_type": Diff(added=["c"], removed=["b"])}
        # The oldest returned run has nothing to diff against
        assert records[1].diff == {}
