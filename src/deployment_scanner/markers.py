"""
Marker file vocabulary shared by the registry, the walker and the tasks.

A deployment artifact ``X`` is accompanied by sibling marker files:

- ``X.dodeploy``     operator request to deploy (or replace) ``X``
- ``X.deployed``     written once ``X`` is deployed; its mtime fingerprints the deployed state
- ``X.faileddeploy`` written when the last attempt failed; holds the failure text
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Optional

logger = logging.getLogger(__name__)


ARCHIVE_EXTENSIONS: FrozenSet[str] = frozenset(
    {".jar", ".war", ".ear", ".rar", ".sar", ".beans"}
)


class MarkerType(Enum):
    """Marker suffixes, in the precedence order the walker applies them."""
    DEPLOYED = ".deployed"
    DO_DEPLOY = ".dodeploy"
    FAILED_DEPLOY = ".faileddeploy"

    @property
    def suffix(self) -> str:
        return self.value


@dataclass(frozen=True)
class Marker:
    """A classified marker filename."""
    marker_type: MarkerType
    deployment_name: str


def classify(filename: str) -> Optional[Marker]:
    """
    Classify a filename by its marker suffix.
    
    Args:
        filename: Bare file name (no directory part)
        
    Returns:
        The marker with the suffix stripped from the name, or None
    """
    for marker_type in MarkerType:
        suffix = marker_type.suffix
        if filename.endswith(suffix):
            return Marker(marker_type, filename[: -len(suffix)])
    return None


def is_archive_directory(name: str) -> bool:
    """True if the final dotted extension of ``name`` is an archive extension."""
    idx = name.rfind(".")
    if idx == -1:
        return False
    return name[idx:] in ARCHIVE_EXTENSIONS


def should_recurse(path: Path) -> bool:
    """True for directories that are containers rather than exploded archives."""
    return path.is_dir() and not is_archive_directory(path.name)


def marker_path(artifact: Path, marker_type: MarkerType) -> Path:
    """Path of the given marker for a deployment artifact."""
    return artifact.parent / (artifact.name + marker_type.suffix)


def remove_marker(path: Path) -> bool:
    """
    Delete a marker file.
    
    Returns:
        True if the marker is gone afterwards (including when it never existed)
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning(f"Cannot remove marker file {path}: {e}")
        return False
    return True


def write_marker(path: Path, content: str) -> bool:
    """Create or overwrite a marker file with the given text."""
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.error(f"Caught exception writing marker file {path}: {e}")
        return False
    return True


def marker_mtime(path: Path) -> int:
    """Modification time of a marker in nanoseconds, or 0 if it cannot be read."""
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return 0


def include_all(path: Path) -> bool:
    """Default file filter: every path is considered."""
    return True
