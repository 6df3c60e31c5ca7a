"""Shared fixtures: an in-memory management facility and a manual scheduler."""

import hashlib
from pathlib import Path
from typing import List, Optional, Set, Tuple

import pytest

from src.deployment_scanner.config import ScannerConfig
from src.deployment_scanner.management import ContentStore, ExecutionFacility
from src.deployment_scanner.models import Operation, StepResult
from src.deployment_scanner.scanner import DeploymentScanner
from src.deployment_scanner.scheduler import ScheduledScan


class FakeManagement(ExecutionFacility, ContentStore):
    """
    In-memory management facility.
    
    Scripted responses are consumed one per execute() call; without a
    script every step succeeds. Successful steps update ``deployments``.
    """

    def __init__(self, deployments=None):
        self.deployments: Set[str] = set(deployments or [])
        self.executed: List[Operation] = []
        self.uploads: List[Tuple[str, bytes]] = []
        self.responses: List[List[StepResult]] = []
        self.upload_error: Optional[Exception] = None
        self.execute_hook = None

    def execute(self, operation: Operation) -> List[StepResult]:
        self.executed.append(operation)
        if self.execute_hook is not None:
            self.execute_hook(operation)
        if self.responses:
            results = self.responses.pop(0)
        else:
            results = [StepResult.success() for _ in operation.steps]
        for step, result in zip(operation.steps, results):
            if result.is_success:
                self._apply(step)
        return results

    def _apply(self, operation: Operation) -> None:
        for step in operation.steps or [operation]:
            if step.name == "add":
                self.deployments.add(step.address[0][1])
            elif step.name == "remove":
                self.deployments.discard(step.address[0][1])
            elif step.name == "full-replace-deployment":
                self.deployments.add(step.params["name"])

    def read_deployment_names(self) -> Set[str]:
        return set(self.deployments)

    def add_deployment_content(self, name, stream) -> bytes:
        if self.upload_error is not None:
            raise self.upload_error
        data = stream.read()
        self.uploads.append((name, data))
        return hashlib.sha1(data).digest()


class ManualScheduler:
    """Records schedules; tests run them explicitly."""

    def __init__(self):
        self.scheduled: List[Tuple[ScheduledScan, object]] = []
        self.shut_down = False

    def schedule_with_fixed_delay(self, fn, interval_ms, initial_delay_ms=0):
        handle = ScheduledScan(fn, initial_delay_ms, interval_ms)
        self.scheduled.append((handle, fn))
        return handle

    def schedule_once(self, fn, delay_ms=0):
        handle = ScheduledScan(fn, delay_ms)
        self.scheduled.append((handle, fn))
        return handle

    def active(self) -> List[ScheduledScan]:
        return [handle for handle, _ in self.scheduled if not handle.cancelled]

    def run_pending(self) -> int:
        count = 0
        for handle, fn in list(self.scheduled):
            if not handle.cancelled:
                fn()
                count += 1
        return count

    def shutdown(self, wait=False, timeout=5.0):
        self.shut_down = True
        for handle, _ in self.scheduled:
            handle.cancel()


@pytest.fixture
def deploy_dir(tmp_path) -> Path:
    path = tmp_path / "deployments"
    path.mkdir()
    return path


@pytest.fixture
def management() -> FakeManagement:
    return FakeManagement()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def make_scanner(deploy_dir, management, scheduler):
    """Factory for a started scanner on the manual scheduler."""
    created = []

    def factory(start: bool = True, **config_kwargs) -> DeploymentScanner:
        config = ScannerConfig(deployment_dir=deploy_dir, **config_kwargs)
        scanner = DeploymentScanner(config, management, management, scheduler=scheduler)
        if start:
            scanner.start_scanner()
        created.append(scanner)
        return scanner

    yield factory

    for scanner in created:
        scanner.close()


def _add_artifact(directory: Path, name: str, content: bytes = b"content", do_deploy: bool = True) -> Path:
    """Create an artifact and, optionally, its .dodeploy marker."""
    artifact = directory / name
    artifact.write_bytes(content)
    if do_deploy:
        (directory / f"{name}.dodeploy").write_text("")
    return artifact


@pytest.fixture
def add_artifact():
    return _add_artifact
