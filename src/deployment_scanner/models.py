"""Data models for the deployment scanner package."""

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


COMPOSITE = "composite"


@dataclass
class DeploymentMarker:
    """
    A deployment the scanner knows to be deployed.
    
    Attributes:
        last_modified: mtime (ns) of the ``.deployed`` marker at the last reconciliation
    """
    last_modified: int


class OutcomeType(Enum):
    """Outcome of a single step of a management operation."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StepResult:
    """
    Result of one step of a composite operation.
    
    Attributes:
        outcome: success, failed or cancelled
        failure_description: Human-readable failure text for failed steps
    """
    outcome: OutcomeType
    failure_description: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.outcome == OutcomeType.SUCCESS

    @property
    def is_cancelled(self) -> bool:
        return self.outcome == OutcomeType.CANCELLED

    @classmethod
    def success(cls) -> "StepResult":
        return cls(OutcomeType.SUCCESS)

    @classmethod
    def failed(cls, description: str) -> "StepResult":
        return cls(OutcomeType.FAILED, description)

    @classmethod
    def cancelled(cls) -> "StepResult":
        return cls(OutcomeType.CANCELLED)

    @classmethod
    def from_dict(cls, data: dict) -> "StepResult":
        """Create from a management response node."""
        raw = str(data.get("outcome", "")).lower()
        try:
            outcome = OutcomeType(raw)
        except ValueError:
            outcome = OutcomeType.FAILED
        description = data.get("failure-description")
        if description is not None and not isinstance(description, str):
            description = str(description)
        if outcome == OutcomeType.FAILED and not description:
            description = f"Operation outcome was '{raw or 'undefined'}'"
        return cls(outcome, description)


@dataclass
class Operation:
    """
    A management operation.
    
    Attributes:
        name: Operation name (add, deploy, full-replace-deployment, composite, ...)
        address: Resource address as (type, value) pairs; empty for the root
        params: Operation parameters
        steps: Child operations, for composites
    """
    name: str
    address: List[Tuple[str, str]] = field(default_factory=list)
    params: Dict[str, Any] = field(default_factory=dict)
    steps: List["Operation"] = field(default_factory=list)

    @classmethod
    def composite(cls, steps: List["Operation"]) -> "Operation":
        """Wrap steps into a single atomic composite operation."""
        return cls(COMPOSITE, steps=list(steps))

    @classmethod
    def for_deployment(cls, name: str, deployment_name: str, **params) -> "Operation":
        return cls(name, address=[("deployment", deployment_name)], params=params)

    @property
    def is_composite(self) -> bool:
        return self.name == COMPOSITE

    def to_dict(self) -> dict:
        """Convert to a management JSON request."""
        data: Dict[str, Any] = {
            "operation": self.name,
            "address": [{key: value} for key, value in self.address],
        }
        for key, value in self.params.items():
            data[key] = _encode_value(value)
        if self.is_composite:
            data["steps"] = [step.to_dict() for step in self.steps]
        return data


def _encode_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return {"BYTES_VALUE": base64.b64encode(bytes(value)).decode("ascii")}
    return value


@dataclass
class ScanReport:
    """
    Summary of one scan pass.
    
    Attributes:
        task_count: Tasks found by the walk
        succeeded: Tasks resolved as success
        failed: Tasks resolved as failure
        retried: Step resubmissions caused by cancellation
        rounds: Number of composite operations submitted
    """
    task_count: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    rounds: int = 0
