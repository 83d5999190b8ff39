# ============================================================================
# IN-MEMORY JOB STORE TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Tests - Transactions, dedup, claiming, failure transitions
# PURPOSE: Verify the JobStore contract against MemoryJobStore
# CREATED: 19 OCT 2026
# ============================================================================
"""
In-Memory Job Store Tests

Covers:
1. Transactions are all-or-nothing (rollback leaves no jobs)
2. Unique keys dedup in-flight jobs only, within the window
3. list() filters and ordering; get() of an unknown id
4. complete_tx is idempotent
5. fetch_available honours schedule and sequence ordering
6. record_failure -> retryable / discarded
7. cancel() and rescue_stuck()

Run with:
    pytest tests/test_memory_job_store.py -v
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core.config import Defaults, JobDefaults
from core.contracts import JobState
from core.errors import DatabaseError, NotExistError
from core.models import (
    InsertOpts,
    JobListParams,
    JobSpec,
    UniqueOpts,
    WorkstationConnectJob,
    WorkstationDisconnectJob,
    WorkstationNotifyJob,
    WorkstationStartJob,
)
from repositories import MemoryJobStore
from services import MetabaseQueue


# ============================================================================
# HELPERS
# ============================================================================

class _Clock:
    """Settable clock for the store."""

    def __init__(self):
        self.now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _make_spec(args, queue="workstation", window=timedelta(minutes=15), max_attempts=5, metadata=None):
    return JobSpec(
        args=args,
        opts=InsertOpts(
            queue=queue,
            max_attempts=max_attempts,
            unique_opts=UniqueOpts(by_period=window) if window else None,
            metadata=metadata or {},
        ),
    )


def _connectivity_specs(ident="u1", hosts=("h1", "h2")):
    queue = "workstation_connectivity"
    specs = [_make_spec(WorkstationConnectJob(ident=ident, host=h), queue) for h in hosts]
    specs.append(_make_spec(WorkstationDisconnectJob(ident=ident, hosts=list(hosts)), queue))
    specs.append(_make_spec(
        WorkstationNotifyJob(ident=ident, request_id="r1", hosts=list(hosts)), queue
    ))
    return specs


# ============================================================================
# TRANSACTIONS
# ============================================================================

class TestTransactions:
    """Atomic insert batches."""

    def test_insert_assigns_increasing_ids(self):
        store = MemoryJobStore()
        results = asyncio.run(store.insert_many([
            _make_spec(WorkstationStartJob(ident="u1")),
            _make_spec(WorkstationStartJob(ident="u2")),
        ]))

        assert [r.job.id for r in results] == [1, 2]
        assert not any(r.duplicate for r in results)

    def test_rollback_discards_batch(self):
        store = MemoryJobStore()

        async def run():
            with pytest.raises(RuntimeError):
                async with store.transaction() as tx:
                    await store.insert_many_tx(tx, [_make_spec(WorkstationStartJob(ident="u1"))])
                    raise RuntimeError("abort")
            return await store.list(JobListParams())

        assert asyncio.run(run()) == []

    def test_concurrent_commit_of_same_key_fails(self):
        store = MemoryJobStore()
        spec = _make_spec(WorkstationStartJob(ident="u1"))

        async def run():
            with pytest.raises(DatabaseError):
                async with store.transaction() as outer:
                    await store.insert_many_tx(outer, [spec])
                    async with store.transaction() as inner:
                        await store.insert_many_tx(inner, [spec])
            return await store.list(JobListParams())

        jobs = asyncio.run(run())
        assert len(jobs) == 1

    def test_staged_jobs_are_visible_in_same_transaction(self):
        store = MemoryJobStore()
        spec = _make_spec(WorkstationStartJob(ident="u1"))

        async def run():
            async with store.transaction() as tx:
                first = await store.insert_many_tx(tx, [spec])
                second = await store.insert_many_tx(tx, [spec])
            return first, second

        first, second = asyncio.run(run())
        assert not first[0].duplicate
        assert second[0].duplicate
        assert second[0].job.id == first[0].job.id


# ============================================================================
# UNIQUENESS
# ============================================================================

class TestUniqueness:
    """Dedup on unique key while in flight."""

    def test_duplicate_while_in_flight(self):
        store = MemoryJobStore()
        spec = _make_spec(WorkstationStartJob(ident="u1"))

        async def run():
            first = await store.insert_many([spec])
            second = await store.insert_many([spec])
            return first[0], second[0], await store.list(JobListParams())

        first, second, jobs = asyncio.run(run())
        assert second.duplicate
        assert second.job.id == first.job.id
        assert len(jobs) == 1

    def test_not_duplicate_after_completion(self):
        store = MemoryJobStore()
        spec = _make_spec(WorkstationStartJob(ident="u1"))

        async def run():
            first = await store.insert_many([spec])
            await store.complete(first[0].job.id)
            second = await store.insert_many([spec])
            return first[0], second[0]

        first, second = asyncio.run(run())
        assert not second.duplicate
        assert second.job.id != first.job.id

    def test_not_duplicate_after_window_rolls_over(self):
        clock = _Clock()
        store = MemoryJobStore(clock=clock)
        spec = _make_spec(WorkstationStartJob(ident="u1"), window=timedelta(minutes=15))

        async def run():
            await store.insert_many([spec])
            clock.advance(minutes=15)
            return await store.insert_many([spec])

        assert not asyncio.run(run())[0].duplicate

    def test_no_unique_opts_never_duplicates(self):
        store = MemoryJobStore()
        spec = _make_spec(WorkstationStartJob(ident="u1"), window=None)

        async def run():
            await store.insert_many([spec])
            return await store.insert_many([spec])

        assert not asyncio.run(run())[0].duplicate


# ============================================================================
# READS
# ============================================================================

class TestReads:
    """list() and get()."""

    def test_list_newest_first_with_filters(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([
                _make_spec(WorkstationStartJob(ident="u1"), metadata={"ident": "u1"}),
                _make_spec(WorkstationStartJob(ident="u2"), metadata={"ident": "u2"}),
                _make_spec(WorkstationConnectJob(ident="u1", host="h1"),
                           queue="workstation_connectivity", metadata={"ident": "u1"}),
            ])
            by_ident = await store.list(JobListParams().metadata({"ident": "u1"}))
            by_kind = await store.list(JobListParams().kinds("workstation_start"))
            latest = await store.list(JobListParams().kinds("workstation_start").first(1))
            by_queue = await store.list(JobListParams().queues("workstation_connectivity"))
            return by_ident, by_kind, latest, by_queue

        by_ident, by_kind, latest, by_queue = asyncio.run(run())
        assert [j.id for j in by_ident] == [3, 1]
        assert [j.id for j in by_kind] == [2, 1]
        assert [j.id for j in latest] == [2]
        assert [j.id for j in by_queue] == [3]

    def test_list_empty(self):
        store = MemoryJobStore()
        assert asyncio.run(store.list(JobListParams().kinds("nothing"))) == []

    def test_get_unknown_raises(self):
        store = MemoryJobStore()
        with pytest.raises(NotExistError):
            asyncio.run(store.get(42))

    def test_list_returns_copies(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"))])
            jobs = await store.list(JobListParams())
            jobs[0].state = JobState.CANCELLED
            return await store.get(1)

        assert asyncio.run(run()).state == JobState.AVAILABLE


# ============================================================================
# COMPLETION
# ============================================================================

class TestComplete:
    """Idempotent completion."""

    def test_complete_twice(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"))])
            first = await store.complete(1)
            second = await store.complete(1)
            return first, second

        first, second = asyncio.run(run())
        assert first.changed is True
        assert second.changed is False
        assert second.job.state == JobState.COMPLETED
        assert second.job.finalized_at == first.job.finalized_at

    def test_complete_unknown_raises(self):
        store = MemoryJobStore()
        with pytest.raises(NotExistError):
            asyncio.run(store.complete(7))

    def test_complete_cancelled_is_noop(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"))])
            await store.cancel(1)
            return await store.complete(1)

        result = asyncio.run(run())
        assert result.changed is False
        assert result.job.state == JobState.CANCELLED

    def test_completion_rolls_back_with_transaction(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"))])
            with pytest.raises(RuntimeError):
                async with store.transaction() as tx:
                    await store.complete_tx(tx, 1)
                    raise RuntimeError("abort")
            return await store.get(1)

        assert asyncio.run(run()).state == JobState.AVAILABLE


# ============================================================================
# CLAIMING
# ============================================================================

class TestFetchAvailable:
    """Claim eligibility."""

    def test_claim_marks_running(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"))])
            claimed = await store.fetch_available("workstation", 10, "w-1")
            again = await store.fetch_available("workstation", 10, "w-1")
            return claimed, again

        claimed, again = asyncio.run(run())
        assert len(claimed) == 1
        assert claimed[0].state == JobState.RUNNING
        assert claimed[0].attempt == 1
        assert claimed[0].attempted_by == "w-1"
        assert again == []

    def test_respects_limit_and_queue(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([
                _make_spec(WorkstationStartJob(ident=f"u{i}")) for i in range(3)
            ])
            other = await store.fetch_available("metabase", 10, "w-1")
            claimed = await store.fetch_available("workstation", 2, "w-1")
            return other, claimed

        other, claimed = asyncio.run(run())
        assert other == []
        assert [j.id for j in claimed] == [1, 2]

    def test_future_schedule_not_claimed(self):
        clock = _Clock()
        store = MemoryJobStore(clock=clock)
        spec = JobSpec(
            args=WorkstationStartJob(ident="u1"),
            opts=InsertOpts(queue="workstation", scheduled_at=clock.now + timedelta(minutes=5)),
        )

        async def run():
            await store.insert_many([spec])
            early = await store.fetch_available("workstation", 10, "w-1")
            clock.advance(minutes=5)
            later = await store.fetch_available("workstation", 10, "w-1")
            return early, later

        early, later = asyncio.run(run())
        assert early == []
        assert len(later) == 1

    def test_sequence_order_for_connectivity(self):
        """Connects run together, disconnect waits for both, notify waits for disconnect."""
        store = MemoryJobStore()
        queue = "workstation_connectivity"

        async def run():
            await store.insert_many(_connectivity_specs())
            first = await store.fetch_available(queue, 10, "w-1")

            await store.complete(first[0].id)
            blocked = await store.fetch_available(queue, 10, "w-1")

            await store.complete(first[1].id)
            second = await store.fetch_available(queue, 10, "w-1")
            still_blocked = await store.fetch_available(queue, 10, "w-1")

            await store.complete(second[0].id)
            third = await store.fetch_available(queue, 10, "w-1")
            return first, blocked, second, still_blocked, third

        first, blocked, second, still_blocked, third = asyncio.run(run())
        assert [j.kind for j in first] == ["workstation_connect", "workstation_connect"]
        assert blocked == []
        assert [j.kind for j in second] == ["workstation_disconnect"]
        assert still_blocked == []
        assert [j.kind for j in third] == ["workstation_notify"]

    def test_sequences_of_different_subjects_are_independent(self):
        store = MemoryJobStore()
        queue = "workstation_connectivity"

        async def run():
            await store.insert_many(_connectivity_specs(ident="u1", hosts=("h1",)))
            await store.insert_many(_connectivity_specs(ident="u2", hosts=("h1",)))
            return await store.fetch_available(queue, 10, "w-1")

        claimed = asyncio.run(run())
        assert [(j.kind, j.args["ident"]) for j in claimed] == [
            ("workstation_connect", "u1"),
            ("workstation_connect", "u2"),
        ]

    def test_discarded_step_halts_sequence(self):
        store = MemoryJobStore()
        queue = "workstation_connectivity"

        async def run():
            specs = [
                _make_spec(WorkstationConnectJob(ident="u1", host="h1"), queue, max_attempts=1),
                _make_spec(WorkstationDisconnectJob(ident="u1", hosts=["h1"]), queue),
            ]
            await store.insert_many(specs)
            connect = await store.fetch_available(queue, 10, "w-1")
            discarded = await store.record_failure(connect[0].id, "boom", store._clock())
            return discarded, await store.fetch_available(queue, 10, "w-1")

        discarded, claimed = asyncio.run(run())
        assert discarded.state == JobState.DISCARDED
        assert claimed == []

    def test_cancelled_step_halts_sequence(self):
        store = MemoryJobStore()
        queue = "workstation_connectivity"

        async def run():
            results = await store.insert_many(_connectivity_specs(hosts=("h1",)))
            await store.cancel(results[0].job.id)
            return await store.fetch_available(queue, 10, "w-1")

        assert asyncio.run(run()) == []

    def test_halted_metabase_pipeline_stops_after_discarded_preflight(self):
        store = MemoryJobStore()
        metabase = MetabaseQueue(store, Defaults(jobs=JobDefaults(max_attempts=1)))

        async def run():
            await metabase.create_open_metabase_workflow("ds-1")
            preflight = await store.fetch_available("metabase", 10, "w-1")
            await store.record_failure(preflight[0].id, "dataset not found", store._clock())
            return preflight, await store.fetch_available("metabase", 10, "w-1")

        preflight, claimed = asyncio.run(run())
        assert [j.kind for j in preflight] == ["metabase_preflight_check_job"]
        assert claimed == []


# ============================================================================
# FAILURES
# ============================================================================

class TestFailures:
    """record_failure, cancel, rescue."""

    def test_retry_then_discard(self):
        clock = _Clock()
        store = MemoryJobStore(clock=clock)

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"), max_attempts=2)])
            await store.fetch_available("workstation", 1, "w-1")

            retry_at = clock.now + timedelta(seconds=30)
            retried = await store.record_failure(1, "boom", retry_at)
            too_early = await store.fetch_available("workstation", 1, "w-1")

            clock.advance(seconds=30)
            second = await store.fetch_available("workstation", 1, "w-1")
            discarded = await store.record_failure(1, "bang", clock.now)
            return retried, too_early, second, discarded

        retried, too_early, second, discarded = asyncio.run(run())
        assert retried.state == JobState.RETRYABLE
        assert retried.scheduled_at == datetime(2026, 10, 19, 12, 0, 30, tzinfo=timezone.utc)
        assert too_early == []
        assert second[0].attempt == 2
        assert discarded.state == JobState.DISCARDED
        assert discarded.finalized_at is not None
        assert [e.error for e in discarded.errors] == ["boom", "bang"]
        assert [e.attempt for e in discarded.errors] == [1, 2]

    def test_failure_ignored_when_not_running(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"))])
            return await store.record_failure(1, "boom", store._clock())

        job = asyncio.run(run())
        assert job.state == JobState.AVAILABLE
        assert job.errors == []

    def test_cancel_available_job(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"))])
            return await store.cancel(1)

        job = asyncio.run(run())
        assert job.state == JobState.CANCELLED
        assert job.finalized_at is not None

    def test_cancel_running_job_is_noop(self):
        store = MemoryJobStore()

        async def run():
            await store.insert_many([_make_spec(WorkstationStartJob(ident="u1"))])
            await store.fetch_available("workstation", 1, "w-1")
            return await store.cancel(1)

        assert asyncio.run(run()).state == JobState.RUNNING

    def test_rescue_stuck(self):
        clock = _Clock()
        store = MemoryJobStore(clock=clock)

        async def run():
            await store.insert_many([
                _make_spec(WorkstationStartJob(ident="u1")),
                _make_spec(WorkstationStartJob(ident="u2")),
            ])
            await store.fetch_available("workstation", 1, "w-1")
            clock.advance(minutes=11)
            await store.fetch_available("workstation", 1, "w-1")
            rescued = await store.rescue_stuck(timedelta(minutes=10))
            return rescued, await store.get(1), await store.get(2)

        rescued, stuck, fresh = asyncio.run(run())
        assert rescued == 1
        assert stuck.state == JobState.RETRYABLE
        assert stuck.errors[0].error.startswith("job rescued")
        assert fresh.state == JobState.RUNNING
