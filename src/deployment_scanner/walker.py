"""Directory walk that turns marker files into scanner tasks."""

import logging
from pathlib import Path
from typing import AbstractSet, Callable, List, Optional, Set

from .management import ContentStore
from .markers import MarkerType, classify, include_all, marker_mtime, remove_marker, should_recurse
from .registry import DeploymentRegistry
from .tasks import DeployTask, RedeployTask, ReplaceTask, ScannerTask

logger = logging.getLogger(__name__)


class DirectoryWalker:
    """
    Walks the deployment tree and classifies marker files into tasks.
    
    Exploded archive directories (``app.war/``) are content, not containers,
    and are never descended into.
    """

    def __init__(
        self,
        registry: DeploymentRegistry,
        content_store: ContentStore,
        file_filter: Optional[Callable[[Path], bool]] = None,
    ):
        """
        Initialize the walker.
        
        Args:
            registry: Registry of deployed content
            content_store: Store used by deploy/replace tasks
            file_filter: Predicate selecting paths to consider (default: all)
        """
        self._registry = registry
        self._content_store = content_store
        self._filter = file_filter or include_all

    def scan_directory(
        self,
        directory: Path,
        registered_deployments: AbstractSet[str],
        to_remove: Set[str],
    ) -> List[ScannerTask]:
        """
        Scan a directory tree for deployment changes.
        
        Args:
            directory: Directory to scan
            registered_deployments: Deployments currently registered remotely
            to_remove: Working copy of the registry names; every name still
                present on disk is discarded from it
                
        Returns:
            Tasks in discovery order
        """
        tasks: List[ScannerTask] = []
        self._scan(directory, tasks, registered_deployments, to_remove)
        return tasks

    def _scan(
        self,
        directory: Path,
        tasks: List[ScannerTask],
        registered_deployments: AbstractSet[str],
        to_remove: Set[str],
    ) -> None:
        try:
            children = sorted(p for p in directory.iterdir() if self._filter(p))
        except OSError as e:
            logger.warning(f"Cannot list directory {directory}: {e}")
            return
        
        for child in children:
            marker = classify(child.name)
            
            if marker is None:
                if should_recurse(child):
                    self._scan(child, tasks, registered_deployments, to_remove)
                continue
            
            name = marker.deployment_name
            
            if marker.marker_type == MarkerType.DEPLOYED:
                to_remove.discard(name)
                recorded = self._registry.get(name)
                if recorded is None:
                    if remove_marker(child):
                        logger.info(f"Removed extraneous deployment marker file {child}")
                    continue
                last_modified = marker_mtime(child)
                if recorded.last_modified != last_modified:
                    tasks.append(RedeployTask(name, last_modified, self._registry))
            
            elif marker.marker_type == MarkerType.DO_DEPLOY:
                to_remove.discard(name)
                deployment_file = directory / name
                if not deployment_file.exists():
                    logger.warning(
                        f"Deployment of '{deployment_file}' requested, but the deployment is not present"
                    )
                    remove_marker(child)
                    continue
                if name in registered_deployments:
                    tasks.append(ReplaceTask(name, deployment_file, self._registry, self._content_store))
                else:
                    tasks.append(DeployTask(name, deployment_file, self._registry, self._content_store))
            
            elif marker.marker_type == MarkerType.FAILED_DEPLOY:
                to_remove.discard(name)
