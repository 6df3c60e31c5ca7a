"""
Deployment Scanner Package

Watches a deployment directory for marker files and drives a management
facility to deploy, replace, redeploy and undeploy content accordingly.

Features:
- Marker protocol: .dodeploy, .deployed, .faileddeploy
- Registry of deployed content rebuilt from markers on startup
- Batched composite submission with retry of cancelled steps
- Single-flight scans on a periodic or one-shot schedule
- Optional filesystem-event triggered scans
- HTTP JSON management client
"""

from .models import (
    DeploymentMarker,
    OutcomeType,
    StepResult,
    Operation,
    ScanReport,
)

from .config import ScannerConfig, validate_deployment_dir

from .exceptions import (
    ScannerError,
    ScannerConfigError,
    ManagementError,
    ContentStoreError,
)

from .markers import (
    ARCHIVE_EXTENSIONS,
    MarkerType,
    Marker,
    classify,
    is_archive_directory,
    marker_path,
)
from .registry import DeploymentRegistry
from .management import ExecutionFacility, ContentStore, HttpManagementClient
from .tasks import (
    TaskKind,
    ScannerTask,
    ContentAddingTask,
    DeployTask,
    ReplaceTask,
    RedeployTask,
    UndeployTask,
)
from .walker import DirectoryWalker
from .scheduler import ScanScheduler, ScheduledScan
from .trigger import MarkerEventTrigger, MarkerEventHandler
from .scanner import DeploymentScanner, ScannerState


__all__ = [
    # Models
    "DeploymentMarker",
    "OutcomeType",
    "StepResult",
    "Operation",
    "ScanReport",
    # Config
    "ScannerConfig",
    "validate_deployment_dir",
    # Exceptions
    "ScannerError",
    "ScannerConfigError",
    "ManagementError",
    "ContentStoreError",
    # Marker protocol
    "ARCHIVE_EXTENSIONS",
    "MarkerType",
    "Marker",
    "classify",
    "is_archive_directory",
    "marker_path",
    # Components
    "DeploymentRegistry",
    "ExecutionFacility",
    "ContentStore",
    "HttpManagementClient",
    "TaskKind",
    "ScannerTask",
    "ContentAddingTask",
    "DeployTask",
    "ReplaceTask",
    "RedeployTask",
    "UndeployTask",
    "DirectoryWalker",
    "ScanScheduler",
    "ScheduledScan",
    "MarkerEventTrigger",
    "MarkerEventHandler",
    # Main service
    "DeploymentScanner",
    "ScannerState",
]

__version__ = "0.1.0"
