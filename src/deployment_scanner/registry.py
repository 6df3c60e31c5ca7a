"""In-memory registry of content the scanner has deployed."""

import logging
from pathlib import Path
from typing import AbstractSet, Callable, Dict, FrozenSet, Optional

from .markers import MarkerType, classify, include_all, marker_mtime, remove_marker, should_recurse
from .models import DeploymentMarker

logger = logging.getLogger(__name__)


class DeploymentRegistry:
    """
    Map from deployment name to the marker state recorded at deployment.
    
    Not thread-safe. Every mutation happens from task outcome handlers,
    which only run while the scanner holds its scan lock.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._deployed: Dict[str, DeploymentMarker] = {}

    def load(
        self,
        root: Path,
        registered_names: AbstractSet[str],
        file_filter: Optional[Callable[[Path], bool]] = None,
    ) -> int:
        """
        Rebuild the registry from the ``.deployed`` markers under ``root``.
        
        Markers for deployments the management facility does not know about
        are orphans left from an earlier run and are deleted.
        
        Args:
            root: Deployment directory
            registered_names: Deployments currently registered remotely
            file_filter: Predicate selecting paths to consider; paths it
                rejects are neither loaded nor deleted (default: all)
            
        Returns:
            Number of deployments recorded
        """
        self._load_directory(root, registered_names, file_filter or include_all)
        logger.debug(f"Loaded {len(self._deployed)} deployment(s) from {root}")
        return len(self._deployed)

    def _load_directory(
        self,
        directory: Path,
        registered_names: AbstractSet[str],
        file_filter: Callable[[Path], bool],
    ) -> None:
        try:
            children = sorted(p for p in directory.iterdir() if file_filter(p))
        except OSError as e:
            logger.warning(f"Cannot list deployment directory {directory}: {e}")
            return
        
        for child in children:
            if should_recurse(child):
                self._load_directory(child, registered_names, file_filter)
                continue
            
            marker = classify(child.name)
            if marker is None or marker.marker_type != MarkerType.DEPLOYED:
                continue
            if not child.is_file():
                continue
            
            name = marker.deployment_name
            if name in registered_names:
                self._deployed[name] = DeploymentMarker(marker_mtime(child))
            elif remove_marker(child):
                logger.info(f"Removed extraneous deployment marker file {child}")

    def get(self, name: str) -> Optional[DeploymentMarker]:
        return self._deployed.get(name)

    def put(self, name: str, marker: DeploymentMarker) -> None:
        self._deployed[name] = marker

    def remove(self, name: str) -> Optional[DeploymentMarker]:
        return self._deployed.pop(name, None)

    def names(self) -> FrozenSet[str]:
        """Snapshot of the registered deployment names."""
        return frozenset(self._deployed)

    def __len__(self) -> int:
        return len(self._deployed)

    def __contains__(self, name: str) -> bool:
        return name in self._deployed
