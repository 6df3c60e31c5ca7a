"""Configuration for the deployment scanner package."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .exceptions import ScannerConfigError


ENV_PREFIX = "DEPLOYMENT_SCANNER_"


@dataclass
class ScannerConfig:
    """
    Configuration options for the deployment scanner.
    
    Attributes:
        deployment_dir: Directory watched for deployment content and markers
        scan_interval_ms: Delay between scans; 0 or negative runs a single scan
        scan_enabled: Whether the scanner starts scanning on startup
        ignore_patterns: Glob patterns for paths the walker should skip
        max_retry_rounds: Resubmission rounds for cancelled steps (None is unbounded)
        watch_events: Also trigger scans from filesystem events on marker files
        management_url: Base URL of the HTTP management endpoint
        management_username: Management user (digest auth)
        management_password: Management password (digest auth)
        request_timeout_seconds: Timeout for management requests
        trigger_debounce_ms: Delay before an event-triggered scan runs
    """
    deployment_dir: Path = field(default_factory=lambda: Path("deployments"))
    scan_interval_ms: int = 5000
    scan_enabled: bool = True
    ignore_patterns: List[str] = field(default_factory=list)
    max_retry_rounds: Optional[int] = None
    watch_events: bool = False
    management_url: str = "http://localhost:9990"
    management_username: Optional[str] = None
    management_password: Optional[str] = None
    request_timeout_seconds: float = 30.0
    trigger_debounce_ms: int = 100

    def __post_init__(self):
        if isinstance(self.deployment_dir, str):
            self.deployment_dir = Path(self.deployment_dir)
        if self.max_retry_rounds is not None and self.max_retry_rounds < 1:
            raise ScannerConfigError(
                f"max_retry_rounds must be at least 1: {self.max_retry_rounds}"
            )

    def should_ignore(self, path: Path) -> bool:
        """
        Check if a path should be ignored based on ignore patterns.
        
        Args:
            path: Path to check
            
        Returns:
            True if the path should be ignored
        """
        path_str = str(path)
        name = path.name
        
        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(name, pattern):
                return True
            if fnmatch.fnmatch(path_str, f"*/{pattern}"):
                return True
        
        return False

    def include(self, path: Path) -> bool:
        """Walker filter: True for paths that should be scanned."""
        return not self.should_ignore(path)

    @classmethod
    def from_env(cls, **overrides) -> "ScannerConfig":
        """
        Build a configuration from DEPLOYMENT_SCANNER_* environment variables.
        
        Keyword overrides that are not None take precedence over the environment.
        """
        env = os.environ
        values = {}
        
        if env.get(f"{ENV_PREFIX}DIR"):
            values["deployment_dir"] = Path(env[f"{ENV_PREFIX}DIR"])
        if env.get(f"{ENV_PREFIX}INTERVAL_MS"):
            values["scan_interval_ms"] = int(env[f"{ENV_PREFIX}INTERVAL_MS"])
        if env.get(f"{ENV_PREFIX}ENABLED"):
            values["scan_enabled"] = _parse_bool(env[f"{ENV_PREFIX}ENABLED"])
        if env.get(f"{ENV_PREFIX}IGNORE"):
            values["ignore_patterns"] = [
                p.strip() for p in env[f"{ENV_PREFIX}IGNORE"].split(",") if p.strip()
            ]
        if env.get(f"{ENV_PREFIX}MAX_RETRY_ROUNDS"):
            values["max_retry_rounds"] = int(env[f"{ENV_PREFIX}MAX_RETRY_ROUNDS"])
        if env.get(f"{ENV_PREFIX}WATCH_EVENTS"):
            values["watch_events"] = _parse_bool(env[f"{ENV_PREFIX}WATCH_EVENTS"])
        if env.get(f"{ENV_PREFIX}MANAGEMENT_URL"):
            values["management_url"] = env[f"{ENV_PREFIX}MANAGEMENT_URL"]
        if env.get(f"{ENV_PREFIX}MANAGEMENT_USER"):
            values["management_username"] = env[f"{ENV_PREFIX}MANAGEMENT_USER"]
        if env.get(f"{ENV_PREFIX}MANAGEMENT_PASSWORD"):
            values["management_password"] = env[f"{ENV_PREFIX}MANAGEMENT_PASSWORD"]
        if env.get(f"{ENV_PREFIX}TIMEOUT"):
            values["request_timeout_seconds"] = float(env[f"{ENV_PREFIX}TIMEOUT"])
        
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def validate_deployment_dir(path: Optional[Path]) -> Path:
    """
    Check that the deployment directory can be scanned and written to.
    
    Args:
        path: Directory to validate
        
    Returns:
        The absolute directory path
        
    Raises:
        ScannerConfigError: If the directory is missing, not a directory or not writable
    """
    if path is None:
        raise ScannerConfigError("null deployment dir")
    
    path = Path(path).absolute()
    if not path.exists():
        raise ScannerConfigError(f"{path} does not exist")
    if not path.is_dir():
        raise ScannerConfigError(f"{path} is not a directory")
    if not os.access(path, os.W_OK):
        raise ScannerConfigError(f"{path} is not writable")
    return path
