"""
Scanner tasks: one per deployment change found by a scan.

Each task knows how to build its management operation and how to record
the outcome in the registry and the marker files.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional

from .management import ContentStore
from .markers import (
    MarkerType,
    marker_mtime,
    marker_path,
    remove_marker,
    write_marker,
)
from .models import DeploymentMarker, Operation
from .registry import DeploymentRegistry

logger = logging.getLogger(__name__)


class TaskKind(Enum):
    """The fixed set of task variants."""
    DEPLOY = "deploy"
    REPLACE = "replace"
    REDEPLOY = "redeploy"
    UNDEPLOY = "undeploy"


class ScannerTask(ABC):
    """Base class for scanner tasks."""

    kind: TaskKind

    def __init__(self, deployment_name: str, registry: DeploymentRegistry):
        self.deployment_name = deployment_name
        self._registry = registry

    @abstractmethod
    def build_operation(self) -> Operation:
        """Build the management operation realizing this change."""
        pass

    @abstractmethod
    def on_success(self) -> None:
        pass

    @abstractmethod
    def on_failure(self, failure_description: Optional[str]) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.deployment_name!r})"


class ContentAddingTask(ScannerTask):
    """
    Base for tasks that upload the artifact before touching the deployment.
    
    A failed upload is logged and the operation is built with an empty hash;
    the management facility then rejects it and the failure ends up in the
    ``.faileddeploy`` marker like any other.
    """

    def __init__(
        self,
        deployment_name: str,
        deployment_file: Path,
        registry: DeploymentRegistry,
        content_store: ContentStore,
    ):
        super().__init__(deployment_name, registry)
        self.deployment_file = deployment_file
        self._content_store = content_store

    def build_operation(self) -> Operation:
        content_hash = b""
        try:
            with open(self.deployment_file, "rb") as stream:
                content_hash = self._content_store.add_deployment_content(
                    self.deployment_name, stream
                )
        except OSError as e:
            logger.error(
                f"Failed to add content to deployment repository for [{self.deployment_name}]: {e}"
            )
        return self.operation_for_content(content_hash)

    @abstractmethod
    def operation_for_content(self, content_hash: bytes) -> Operation:
        pass

    def _marker(self, marker_type: MarkerType) -> Path:
        return marker_path(self.deployment_file, marker_type)

    def on_success(self) -> None:
        do_deploy = self._marker(MarkerType.DO_DEPLOY)
        if not remove_marker(do_deploy):
            logger.error(f"Failed to delete deployment marker file {do_deploy}")
        
        remove_marker(self._marker(MarkerType.FAILED_DEPLOY))
        
        deployed = self._marker(MarkerType.DEPLOYED)
        write_marker(deployed, self.deployment_file.name)
        self._registry.put(self.deployment_name, DeploymentMarker(marker_mtime(deployed)))
        logger.info(f"Deployed {self.deployment_name}")

    def on_failure(self, failure_description: Optional[str]) -> None:
        remove_marker(self._marker(MarkerType.DO_DEPLOY))
        remove_marker(self._marker(MarkerType.DEPLOYED))
        
        failed = self._marker(MarkerType.FAILED_DEPLOY)
        write_marker(failed, failure_description or "")
        logger.warning(f"Deployment of {self.deployment_name} failed: {failure_description}")


class DeployTask(ContentAddingTask):
    """Add new content and deploy it in one atomic step."""

    kind = TaskKind.DEPLOY

    def operation_for_content(self, content_hash: bytes) -> Operation:
        add = Operation.for_deployment("add", self.deployment_name, hash=content_hash)
        deploy = Operation.for_deployment("deploy", self.deployment_name)
        return Operation.composite([add, deploy])


class ReplaceTask(ContentAddingTask):
    """Replace the content of an already registered deployment."""

    kind = TaskKind.REPLACE

    def operation_for_content(self, content_hash: bytes) -> Operation:
        return Operation(
            "full-replace-deployment",
            params={"name": self.deployment_name, "hash": content_hash},
        )


class RedeployTask(ScannerTask):
    """Redeploy unchanged content after its ``.deployed`` marker was touched."""

    kind = TaskKind.REDEPLOY

    def __init__(self, deployment_name: str, marker_last_modified: int, registry: DeploymentRegistry):
        super().__init__(deployment_name, registry)
        self.marker_last_modified = marker_last_modified

    def build_operation(self) -> Operation:
        return Operation.for_deployment("redeploy", self.deployment_name)

    def on_success(self) -> None:
        self._registry.put(self.deployment_name, DeploymentMarker(self.marker_last_modified))
        logger.info(f"Redeployed {self.deployment_name}")

    def on_failure(self, failure_description: Optional[str]) -> None:
        # Registry keeps the old mtime, so the next scan retries
        logger.error(f"Redeploy of {self.deployment_name} failed: {failure_description}")


class UndeployTask(ScannerTask):
    """Undeploy and remove a deployment whose markers disappeared."""

    kind = TaskKind.UNDEPLOY

    def build_operation(self) -> Operation:
        undeploy = Operation.for_deployment("undeploy", self.deployment_name)
        remove = Operation.for_deployment("remove", self.deployment_name)
        return Operation.composite([undeploy, remove])

    def on_success(self) -> None:
        self._registry.remove(self.deployment_name)
        logger.info(f"Undeployed {self.deployment_name}")

    def on_failure(self, failure_description: Optional[str]) -> None:
        # Entry stays registered, so the next scan retries
        logger.error(f"Undeploy of {self.deployment_name} failed: {failure_description}")
