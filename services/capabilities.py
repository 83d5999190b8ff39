# ============================================================================
# DOMAIN CAPABILITIES
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Service - Narrow interfaces to provisioning systems
# PURPOSE: Operations step workers call; every one must be safe to retry
# CREATED: 19 OCT 2026
# ============================================================================
"""
Domain Capabilities

Step workers never talk to external systems directly. They call one of
these capability interfaces, which a deployment wires to the real
analytics, cloud IAM and network services.

Contract for implementers:
  - Every operation is "ensure" style: calling it again after a partial
    or complete earlier run must succeed without creating duplicates.
  - Raise on failure. The job store owns retry and backoff.

The Logging* implementations only log. They back local runs and tests.
"""

from abc import ABC, abstractmethod
from typing import List

from core.logging import get_logger

logger = get_logger(__name__)


# ============================================================================
# METABASE
# ============================================================================

class MetabaseCapability(ABC):
    """Provisioning of per-dataset analytics databases."""

    @abstractmethod
    async def preflight_check(self, dataset_id: str) -> None:
        """Fail if the dataset cannot be provisioned."""

    @abstractmethod
    async def ensure_permission_group(self, dataset_id: str, name: str) -> None:
        pass

    @abstractmethod
    async def ensure_collection(self, dataset_id: str, name: str) -> None:
        pass

    @abstractmethod
    async def ensure_service_account(
        self,
        dataset_id: str,
        account_id: str,
        project_id: str,
        display_name: str,
        description: str,
    ) -> None:
        pass

    @abstractmethod
    async def ensure_service_account_key(self, dataset_id: str) -> None:
        """Create a key unless the dataset already holds a valid one."""

    @abstractmethod
    async def ensure_project_iam_binding(self, dataset_id: str, project_id: str, role: str, member: str) -> None:
        pass

    @abstractmethod
    async def ensure_database(self, dataset_id: str) -> None:
        pass

    @abstractmethod
    async def verify_database(self, dataset_id: str) -> None:
        """Fail until the database is queryable."""

    @abstractmethod
    async def finalize_database(self, dataset_id: str) -> None:
        pass

    @abstractmethod
    async def delete_database(self, dataset_id: str) -> None:
        """Remove the database and everything provisioned for it; no-op if gone."""

    @abstractmethod
    async def resync_all_users(self) -> None:
        """Reconcile permission group membership for every user."""


class LoggingMetabaseCapability(MetabaseCapability):
    """MetabaseCapability that only logs."""

    async def preflight_check(self, dataset_id: str) -> None:
        logger.info(f"preflight check for dataset {dataset_id}")

    async def ensure_permission_group(self, dataset_id: str, name: str) -> None:
        logger.info(f"ensure permission group {name} for dataset {dataset_id}")

    async def ensure_collection(self, dataset_id: str, name: str) -> None:
        logger.info(f"ensure collection {name} for dataset {dataset_id}")

    async def ensure_service_account(
        self,
        dataset_id: str,
        account_id: str,
        project_id: str,
        display_name: str,
        description: str,
    ) -> None:
        logger.info(f"ensure service account {account_id} in {project_id} for dataset {dataset_id}")

    async def ensure_service_account_key(self, dataset_id: str) -> None:
        logger.info(f"ensure service account key for dataset {dataset_id}")

    async def ensure_project_iam_binding(self, dataset_id: str, project_id: str, role: str, member: str) -> None:
        logger.info(f"ensure {role} for {member} in {project_id} (dataset {dataset_id})")

    async def ensure_database(self, dataset_id: str) -> None:
        logger.info(f"ensure database for dataset {dataset_id}")

    async def verify_database(self, dataset_id: str) -> None:
        logger.info(f"verify database for dataset {dataset_id}")

    async def finalize_database(self, dataset_id: str) -> None:
        logger.info(f"finalize database for dataset {dataset_id}")

    async def delete_database(self, dataset_id: str) -> None:
        logger.info(f"delete database for dataset {dataset_id}")

    async def resync_all_users(self) -> None:
        logger.info("resync all users")


# ============================================================================
# WORKSTATIONS
# ============================================================================

class WorkstationCapability(ABC):
    """Lifecycle of per-user virtual workstations."""

    @abstractmethod
    async def ensure_workstation(
        self,
        ident: str,
        name: str,
        email: str,
        machine_type: str,
        container_image: str,
    ) -> None:
        """Create or update the workstation to match the given configuration."""

    @abstractmethod
    async def start_workstation(self, ident: str) -> None:
        """Start the workstation; no-op if already running."""


class ConnectivityCapability(ABC):
    """Network allow-listing from a workstation to external hosts."""

    @abstractmethod
    async def connect_host(self, ident: str, host: str) -> None:
        """Allow traffic to one host; no-op if already allowed."""

    @abstractmethod
    async def disconnect_hosts(self, ident: str, keep: List[str]) -> None:
        """Remove every allowed host not in `keep`."""

    @abstractmethod
    async def notify(self, ident: str, request_id: str, hosts: List[str]) -> None:
        pass


class LoggingWorkstationCapability(WorkstationCapability, ConnectivityCapability):
    """Workstation and connectivity capabilities that only log."""

    async def ensure_workstation(
        self,
        ident: str,
        name: str,
        email: str,
        machine_type: str,
        container_image: str,
    ) -> None:
        logger.info(f"ensure workstation for {ident}: {machine_type}, {container_image}")

    async def start_workstation(self, ident: str) -> None:
        logger.info(f"start workstation for {ident}")

    async def connect_host(self, ident: str, host: str) -> None:
        logger.info(f"connect {ident} to {host}")

    async def disconnect_hosts(self, ident: str, keep: List[str]) -> None:
        logger.info(f"disconnect {ident} from hosts other than {keep}")

    async def notify(self, ident: str, request_id: str, hosts: List[str]) -> None:
        logger.info(f"notify {ident} about request {request_id} ({len(hosts)} hosts)")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "MetabaseCapability",
    "LoggingMetabaseCapability",
    "WorkstationCapability",
    "ConnectivityCapability",
    "LoggingWorkstationCapability",
]
