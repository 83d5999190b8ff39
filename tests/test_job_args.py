# ============================================================================
# JOB ARGS / JOB MODEL TESTS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Tests - Kind tags, unique keys, sequence keys, job decoding
# PURPOSE: Verify the payload models that drive dedup and step ordering
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Args Tests

Covers:
1. Tagged fields and unique keys (kind, tagged fields, period bucket)
2. Sequence keys shared across kinds of one subject
3. JobSpec -> Job resolution (state, keys, metadata)
4. Job.decode_args failure modes
5. JobState -> JobStatus mapping
6. Error wrapping keeps the kind

Run with:
    pytest tests/test_job_args.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.contracts import JobState, JobStatus
from core.errors import (
    CODE_DECODING,
    CODE_INVARIANT,
    DatabaseError,
    ErrorKind,
    InternalError,
    NotExistError,
    wrap,
)
from core.models import (
    ARGS_BY_KIND,
    AttemptError,
    InsertOpts,
    Job,
    JobSpec,
    MetabaseCreateBigqueryDatabaseJob,
    MetabaseDeleteBigqueryDatabaseJob,
    MetabasePreflightCheckJob,
    MetabaseResyncAllUsersJob,
    MetabaseVerifyBigqueryDatabaseJob,
    UniqueOpts,
    WorkstationConnectJob,
    WorkstationDisconnectJob,
    WorkstationJob,
    WorkstationNotifyJob,
)
from core.models.args import SEQUENCE, UNIQUE

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _workstation(**overrides):
    fields = {
        "ident": "u1",
        "name": "Ada",
        "email": "ada@example.org",
        "machine_type": "n2-standard-4",
        "container_image": "img:1",
    }
    fields.update(overrides)
    return WorkstationJob(**fields)


# ============================================================================
# UNIQUE KEYS
# ============================================================================

class TestUniqueKey:
    """Dedup key derivation."""

    def test_tagged_fields_in_declaration_order(self):
        assert WorkstationConnectJob.tagged_fields(UNIQUE) == ["ident", "host"]
        assert WorkstationConnectJob.tagged_fields(SEQUENCE) == ["ident"]
        assert WorkstationNotifyJob.tagged_fields(UNIQUE) == ["ident", "request_id"]

    def test_untagged_fields_do_not_change_key(self):
        a = _workstation(machine_type="small")
        b = _workstation(machine_type="large")
        assert a.unique_key(5) == b.unique_key(5)

    def test_tagged_field_changes_key(self):
        assert _workstation(ident="u1").unique_key(5) != _workstation(ident="u2").unique_key(5)

    def test_kind_is_part_of_key(self):
        create = MetabaseCreateBigqueryDatabaseJob(dataset_id="ds")
        verify = MetabaseVerifyBigqueryDatabaseJob(dataset_id="ds")
        assert create.unique_key(5) != verify.unique_key(5)

    def test_period_bucket_is_part_of_key(self):
        args = MetabasePreflightCheckJob(dataset_id="ds")
        assert args.unique_key(5) != args.unique_key(6)
        assert args.unique_key(5) == args.unique_key(5)

    def test_no_tagged_fields_uses_whole_payload(self):
        args = MetabaseResyncAllUsersJob()
        assert args.unique_values() == {}
        assert args.unique_key(1) == MetabaseResyncAllUsersJob().unique_key(1)

    def test_bucket_from_window(self):
        opts = UniqueOpts(by_period=timedelta(minutes=10))
        now = datetime.fromtimestamp(3001, tz=timezone.utc)
        assert opts.bucket(now) == 5
        assert UniqueOpts().bucket(now) is None


# ============================================================================
# SEQUENCE KEYS
# ============================================================================

class TestSequenceKey:
    """Ordering key derivation."""

    def test_connectivity_kinds_share_sequence(self):
        connect = WorkstationConnectJob(ident="u1", host="h1")
        disconnect = WorkstationDisconnectJob(ident="u1", hosts=["h1"])
        notify = WorkstationNotifyJob(ident="u1", request_id="r1", hosts=["h1"])

        assert connect.sequence_key() == '{"ident":"u1"}'
        assert connect.sequence_key() == disconnect.sequence_key() == notify.sequence_key()

    def test_different_ident_different_sequence(self):
        a = WorkstationConnectJob(ident="u1", host="h1")
        b = WorkstationConnectJob(ident="u2", host="h1")
        assert a.sequence_key() != b.sequence_key()

    def test_metabase_steps_share_sequence_per_dataset(self):
        preflight = MetabasePreflightCheckJob(dataset_id="ds")
        database = MetabaseCreateBigqueryDatabaseJob(dataset_id="ds")
        assert preflight.sequence_key() == database.sequence_key() == '{"dataset_id":"ds"}'

    def test_unsequenced_kinds(self):
        assert _workstation().sequence_key() is None
        assert MetabaseDeleteBigqueryDatabaseJob(dataset_id="ds").sequence_key() is None

    def test_every_kind_is_registered(self):
        assert len(ARGS_BY_KIND) == 16
        assert ARGS_BY_KIND["workstation_connect"] is WorkstationConnectJob


# ============================================================================
# JOB SPEC
# ============================================================================

class TestJobSpec:
    """JobSpec.to_job resolution."""

    def test_available_job_with_keys(self):
        spec = JobSpec(
            args=WorkstationConnectJob(ident="u1", host="h1"),
            opts=InsertOpts(
                queue="workstation_connectivity",
                unique_opts=UniqueOpts(by_period=timedelta(minutes=15)),
                metadata={"ident": "u1"},
            ),
        )
        job = spec.to_job(NOW)

        assert job.state == JobState.AVAILABLE
        assert job.kind == "workstation_connect"
        assert job.args == {"ident": "u1", "host": "h1"}
        assert job.metadata == {"ident": "u1"}
        assert job.unique_key is not None
        assert job.sequence_key == '{"ident":"u1"}'
        assert job.scheduled_at == NOW

    def test_no_unique_opts_no_key(self):
        spec = JobSpec(args=_workstation(), opts=InsertOpts(queue="workstation"))
        assert spec.to_job(NOW).unique_key is None

    def test_future_schedule_is_scheduled(self):
        spec = JobSpec(
            args=_workstation(),
            opts=InsertOpts(queue="workstation", scheduled_at=NOW + timedelta(minutes=1)),
        )
        assert spec.to_job(NOW).state == JobState.SCHEDULED

    def test_pending(self):
        spec = JobSpec(args=_workstation(), opts=InsertOpts(queue="workstation", pending=True))
        assert spec.to_job(NOW).state == JobState.PENDING


# ============================================================================
# JOB MODEL
# ============================================================================

class TestJobDecode:
    """Job.decode_args and error_messages."""

    def test_decode(self):
        job = Job(id=1, kind="workstation_connect", queue="q", args={"ident": "u1", "host": "h1"})
        args = job.decode_args(WorkstationConnectJob)
        assert args.host == "h1"

    def test_kind_mismatch(self):
        job = Job(id=1, kind="workstation_notify", queue="q", args={"ident": "u1", "host": "h1"})
        with pytest.raises(InternalError) as exc_info:
            job.decode_args(WorkstationConnectJob)
        assert exc_info.value.code == CODE_DECODING

    def test_bad_payload(self):
        job = Job(id=1, kind="workstation_connect", queue="q", args={"ident": "u1"})
        with pytest.raises(InternalError) as exc_info:
            job.decode_args(WorkstationConnectJob)
        assert exc_info.value.code == CODE_DECODING
        assert exc_info.value.op == "job.decode_args"

    def test_error_messages_deduplicated(self):
        job = Job(
            id=1, kind="k", queue="q",
            errors=[
                AttemptError(attempt=1, error="boom"),
                AttemptError(attempt=2, error="boom"),
                AttemptError(attempt=3, error="bang"),
            ],
        )
        assert job.error_messages() == ["boom", "bang"]


class TestJobStatus:
    """Surfaced status mapping."""

    @pytest.mark.parametrize("state, status", [
        (JobState.AVAILABLE, JobStatus.RUNNING),
        (JobState.RUNNING, JobStatus.RUNNING),
        (JobState.RETRYABLE, JobStatus.RUNNING),
        (JobState.COMPLETED, JobStatus.COMPLETED),
        (JobState.DISCARDED, JobStatus.FAILED),
        (JobState.CANCELLED, JobStatus.FAILED),
        (JobState.SCHEDULED, JobStatus.PENDING),
        (JobState.PENDING, JobStatus.PENDING),
    ])
    def test_mapping(self, state, status):
        assert JobStatus.from_job_state(state) == status


# ============================================================================
# ERRORS
# ============================================================================

class TestErrors:
    """Error taxonomy."""

    def test_wrap_keeps_kind_and_code(self):
        inner = InternalError("job.decode_args", "bad", code=CODE_DECODING)
        outer = wrap("metabase_queue.get_open_metabase_workflow", inner)

        assert isinstance(outer, InternalError)
        assert outer.kind == ErrorKind.INTERNAL
        assert outer.code == CODE_DECODING
        assert outer.op == "metabase_queue.get_open_metabase_workflow"

    def test_to_dict(self):
        err = NotExistError("op", "missing")
        assert err.to_dict() == {"kind": "not_exist", "op": "op", "code": None, "message": "missing"}

    def test_wrap_database(self):
        outer = wrap("svc.op", DatabaseError("store.op", "down", code=CODE_INVARIANT))
        assert isinstance(outer, DatabaseError)
        assert "store.op: down" in outer.message
