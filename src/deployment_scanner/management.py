"""
Management collaborators: the execution facility and the content store.

The scanner only depends on the two abstract interfaces. ``HttpManagementClient``
implements both against an HTTP JSON management endpoint.
"""

import base64
import logging
from abc import ABC, abstractmethod
from typing import BinaryIO, List, Optional, Set

import httpx

from .exceptions import ContentStoreError, ManagementError
from .models import Operation, OutcomeType, StepResult

logger = logging.getLogger(__name__)


class ExecutionFacility(ABC):
    """Executes management operations."""

    @abstractmethod
    def execute(self, operation: Operation) -> List[StepResult]:
        """
        Execute an operation.
        
        Args:
            operation: A composite operation, or a single step
            
        Returns:
            One result per top-level step, in request order
            
        Raises:
            ManagementError: If the facility cannot be reached
        """
        pass

    @abstractmethod
    def read_deployment_names(self) -> Set[str]:
        """Return the names of all currently registered deployments."""
        pass


class ContentStore(ABC):
    """Stores deployment content and identifies it by hash."""

    @abstractmethod
    def add_deployment_content(self, name: str, stream: BinaryIO) -> bytes:
        """
        Store the bytes of a deployment.
        
        Args:
            name: Deployment name
            stream: Binary stream with the content
            
        Returns:
            Opaque content hash
            
        Raises:
            OSError: If the content cannot be read or stored
        """
        pass


def parse_step_results(response: dict, operation: Operation) -> List[StepResult]:
    """
    Map a management response onto per-step results.
    
    Args:
        response: Decoded JSON response
        operation: The operation that produced it
        
    Returns:
        One StepResult per top-level step of ``operation``
    """
    if not operation.is_composite:
        return [StepResult.from_dict(response)]
    
    top_description = response.get("failure-description")
    if top_description is not None:
        top_description = str(top_description)
    result = response.get("result")
    count = len(operation.steps)
    
    if not isinstance(result, dict) or not any(key.startswith("step-") for key in result):
        if str(response.get("outcome", "")).lower() == OutcomeType.SUCCESS.value:
            return [StepResult.success() for _ in range(count)]
        description = top_description or "Composite operation failed without step results"
        return [StepResult.failed(description) for _ in range(count)]
    
    results = []
    for i in range(count):
        node = result.get(f"step-{i + 1}")
        if not isinstance(node, dict):
            results.append(StepResult.failed(top_description or f"No result for step {i + 1}"))
            continue
        step = StepResult.from_dict(node)
        if node.get("rolled-back") and step.is_success:
            step = StepResult.failed(top_description or "Operation was rolled back")
        elif step.outcome == OutcomeType.FAILED and node.get("failure-description") is None and top_description:
            step = StepResult.failed(top_description)
        results.append(step)
    return results


class HttpManagementClient(ExecutionFacility, ContentStore):
    """
    Client for an HTTP JSON management endpoint.
    
    Operations are posted to ``/management``; deployment content is uploaded
    to ``/management/add-content`` and identified by the returned hash.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:9990",
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.
        
        Args:
            base_url: Management endpoint base URL
            username: Management user (enables digest auth)
            password: Management password
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = base_url.rstrip("/")
        auth = httpx.DigestAuth(username, password or "") if username else None
        self._client = httpx.Client(
            base_url=self._base_url,
            auth=auth,
            timeout=timeout,
            transport=transport,
        )
        logger.debug(f"HttpManagementClient init: url={self._base_url}, auth={'[SET]' if auth else '[NOT SET]'}")

    @property
    def base_url(self) -> str:
        return self._base_url

    def _post_operation(self, operation: Operation) -> dict:
        try:
            response = self._client.post("/management", json=operation.to_dict())
        except httpx.HTTPError as e:
            raise ManagementError(f"Management request '{operation.name}' failed: {e}")
        
        if response.status_code in (401, 403):
            raise ManagementError(
                f"Management authentication failed (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        
        # Failed outcomes come back as HTTP 500 with a JSON body
        try:
            data = response.json()
        except ValueError:
            raise ManagementError(
                f"Unexpected management response (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        if not isinstance(data, dict):
            raise ManagementError("Management response is not a JSON object")
        return data

    def execute(self, operation: Operation) -> List[StepResult]:
        data = self._post_operation(operation)
        return parse_step_results(data, operation)

    def read_deployment_names(self) -> Set[str]:
        operation = Operation("read-children-names", params={"child-type": "deployment"})
        data = self._post_operation(operation)
        
        if str(data.get("outcome", "")).lower() != OutcomeType.SUCCESS.value:
            raise ManagementError(
                f"Cannot read deployment names: {data.get('failure-description')}"
            )
        return {str(name) for name in data.get("result") or []}

    def add_deployment_content(self, name: str, stream: BinaryIO) -> bytes:
        try:
            response = self._client.post(
                "/management/add-content",
                files={"file": (name, stream, "application/octet-stream")},
            )
        except httpx.HTTPError as e:
            raise ContentStoreError(f"Upload of {name} failed: {e}")
        
        try:
            data = response.json()
        except ValueError:
            raise ContentStoreError(f"Upload of {name} failed (HTTP {response.status_code})")
        if not isinstance(data, dict):
            raise ContentStoreError(f"Upload of {name} returned a response that is not a JSON object")
        
        if str(data.get("outcome", "")).lower() != OutcomeType.SUCCESS.value:
            raise ContentStoreError(
                f"Upload of {name} failed: {data.get('failure-description')}"
            )
        
        result = data.get("result")
        if isinstance(result, dict) and "BYTES_VALUE" in result:
            return base64.b64decode(result["BYTES_VALUE"])
        raise ContentStoreError(f"Upload of {name} returned no content hash")

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
