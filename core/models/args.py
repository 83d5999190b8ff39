# ============================================================================
# JOB ARGUMENT SCHEMA
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core model - Typed payload per step kind
# PURPOSE: Kind tags, uniqueness fields and sequence keys for every step
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Argument Schema

Every step kind has one args model. The model carries:
- kind: the string tag that selects the worker and filters listings
- fields: the serialized payload stored in the job's args column
- unique tags: which fields form the dedup key (all fields if none)
- sequence tags + SequenceOpts: which fields form the ordering key

Fields are tagged with the `unique` and `sequence` markers through
pydantic's json_schema_extra:

    class WorkstationStartJob(JobArgs):
        kind: ClassVar[str] = "workstation_start"
        ident: str = tagged(UNIQUE)
"""

import hashlib
import json
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, Field


# ============================================================================
# TAGGING
# ============================================================================

UNIQUE = "unique"
SEQUENCE = "sequence"


def tagged(*tags: str, **kwargs: Any) -> Any:
    """Declare a field carrying uniqueness/sequence tags."""
    return Field(json_schema_extra={tag: True for tag in tags}, **kwargs)


class SequenceOpts(BaseModel):
    """
    Sequencing configuration for a kind.

    exclude_kind leaves the kind out of the sequence key so that
    different kinds on the same subject share one sequence.
    """
    by_args: bool = True
    exclude_kind: bool = False


# ============================================================================
# BASE
# ============================================================================

class JobArgs(BaseModel):
    """Base class for step payloads."""

    kind: ClassVar[str] = ""
    sequence_opts: ClassVar[Optional[SequenceOpts]] = None

    @classmethod
    def tagged_fields(cls, tag: str) -> List[str]:
        """Names of fields carrying a given tag, in declaration order."""
        names = []
        for name, info in cls.model_fields.items():
            extra = info.json_schema_extra
            if isinstance(extra, dict) and extra.get(tag):
                names.append(name)
        return names

    def to_payload(self) -> Dict[str, Any]:
        """Serialized payload as stored in the args column."""
        return self.model_dump(mode="json")

    def unique_values(self) -> Dict[str, Any]:
        """Payload subset that identifies a logical step for dedup."""
        payload = self.to_payload()
        names = self.tagged_fields(UNIQUE)
        if not names:
            return payload
        return {name: payload[name] for name in names}

    def unique_key(self, bucket: Optional[int] = None) -> str:
        """
        Dedup key: sha256 over kind, unique fields and period bucket.

        Args:
            bucket: Period bucket (epoch seconds // window seconds), if any

        Returns:
            Hex digest
        """
        material = {"kind": self.kind, "args": self.unique_values()}
        if bucket is not None:
            material["period"] = bucket
        encoded = json.dumps(material, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

    def sequence_key(self) -> Optional[str]:
        """Ordering key, or None when this kind is not sequenced."""
        opts = self.sequence_opts
        if opts is None:
            return None

        payload = self.to_payload()
        parts: Dict[str, Any] = {}
        if opts.by_args:
            parts = {name: payload[name] for name in self.tagged_fields(SEQUENCE)}

        encoded = json.dumps(parts, sort_keys=True, separators=(",", ":"))
        if opts.exclude_kind:
            return encoded
        return f"{self.kind}:{encoded}"


_DATASET_SEQUENCE = SequenceOpts(by_args=True, exclude_kind=True)


# ============================================================================
# METABASE STEPS
# ============================================================================

class MetabasePreflightCheckJob(JobArgs):
    kind: ClassVar[str] = "metabase_preflight_check_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)


class MetabaseCreatePermissionGroupJob(JobArgs):
    kind: ClassVar[str] = "metabase_create_permission_group_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)
    permission_group_name: str


class MetabaseCreateRestrictedCollectionJob(JobArgs):
    kind: ClassVar[str] = "metabase_create_restricted_collection_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)
    collection_name: str


class MetabaseEnsureServiceAccountJob(JobArgs):
    kind: ClassVar[str] = "metabase_ensure_service_account_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)
    account_id: str
    project_id: str
    display_name: str
    description: str


class MetabaseCreateServiceAccountKeyJob(JobArgs):
    kind: ClassVar[str] = "metabase_create_service_account_key_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)


class MetabaseAddProjectIAMPolicyBindingJob(JobArgs):
    kind: ClassVar[str] = "metabase_add_project_iam_policy_binding_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)
    project_id: str
    role: str
    member: str


class MetabaseCreateBigqueryDatabaseJob(JobArgs):
    kind: ClassVar[str] = "metabase_create_bigquery_database_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)


class MetabaseVerifyBigqueryDatabaseJob(JobArgs):
    kind: ClassVar[str] = "metabase_verify_bigquery_database_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)


class MetabaseFinalizeBigqueryDatabaseJob(JobArgs):
    kind: ClassVar[str] = "metabase_finalize_bigquery_database_job"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _DATASET_SEQUENCE

    dataset_id: str = tagged(SEQUENCE, UNIQUE)


class MetabaseDeleteBigqueryDatabaseJob(JobArgs):
    """Tears down the database; not part of the provisioning sequence."""
    kind: ClassVar[str] = "metabase_delete_bigquery_database_job"

    dataset_id: str = tagged(UNIQUE)


class MetabaseResyncAllUsersJob(JobArgs):
    """Resynchronizes permission group membership for every user."""
    kind: ClassVar[str] = "metabase_resync_all_users_job"


# ============================================================================
# WORKSTATION STEPS
# ============================================================================

class WorkstationJob(JobArgs):
    kind: ClassVar[str] = "workstation_job"

    ident: str = tagged(UNIQUE)
    name: str
    email: str
    machine_type: str
    container_image: str


class WorkstationStartJob(JobArgs):
    kind: ClassVar[str] = "workstation_start"

    ident: str = tagged(UNIQUE)


_IDENT_SEQUENCE = SequenceOpts(by_args=True, exclude_kind=True)


class WorkstationConnectJob(JobArgs):
    """Opens connectivity from the workstation to one host."""
    kind: ClassVar[str] = "workstation_connect"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _IDENT_SEQUENCE

    ident: str = tagged(SEQUENCE, UNIQUE)
    host: str = tagged(UNIQUE)


class WorkstationDisconnectJob(JobArgs):
    """Closes connectivity to every host not in the list."""
    kind: ClassVar[str] = "workstation_disconnect"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _IDENT_SEQUENCE

    ident: str = tagged(SEQUENCE, UNIQUE)
    hosts: List[str] = tagged(UNIQUE)


class WorkstationNotifyJob(JobArgs):
    """Tells the requester that connectivity has been applied."""
    kind: ClassVar[str] = "workstation_notify"
    sequence_opts: ClassVar[Optional[SequenceOpts]] = _IDENT_SEQUENCE

    ident: str = tagged(SEQUENCE, UNIQUE)
    request_id: str = tagged(UNIQUE)
    hosts: List[str]


# ============================================================================
# KIND LOOKUP
# ============================================================================

ALL_ARGS: List[Type[JobArgs]] = [
    MetabasePreflightCheckJob,
    MetabaseCreatePermissionGroupJob,
    MetabaseCreateRestrictedCollectionJob,
    MetabaseEnsureServiceAccountJob,
    MetabaseCreateServiceAccountKeyJob,
    MetabaseAddProjectIAMPolicyBindingJob,
    MetabaseCreateBigqueryDatabaseJob,
    MetabaseVerifyBigqueryDatabaseJob,
    MetabaseFinalizeBigqueryDatabaseJob,
    MetabaseDeleteBigqueryDatabaseJob,
    MetabaseResyncAllUsersJob,
    WorkstationJob,
    WorkstationStartJob,
    WorkstationConnectJob,
    WorkstationDisconnectJob,
    WorkstationNotifyJob,
]

ARGS_BY_KIND: Dict[str, Type[JobArgs]] = {cls.kind: cls for cls in ALL_ARGS}


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "UNIQUE",
    "SEQUENCE",
    "tagged",
    "SequenceOpts",
    "JobArgs",
    "MetabasePreflightCheckJob",
    "MetabaseCreatePermissionGroupJob",
    "MetabaseCreateRestrictedCollectionJob",
    "MetabaseEnsureServiceAccountJob",
    "MetabaseCreateServiceAccountKeyJob",
    "MetabaseAddProjectIAMPolicyBindingJob",
    "MetabaseCreateBigqueryDatabaseJob",
    "MetabaseVerifyBigqueryDatabaseJob",
    "MetabaseFinalizeBigqueryDatabaseJob",
    "MetabaseDeleteBigqueryDatabaseJob",
    "MetabaseResyncAllUsersJob",
    "WorkstationJob",
    "WorkstationStartJob",
    "WorkstationConnectJob",
    "WorkstationDisconnectJob",
    "WorkstationNotifyJob",
    "ALL_ARGS",
    "ARGS_BY_KIND",
]
