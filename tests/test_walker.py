"""Tests for the directory walker."""

import os
from pathlib import Path

from src.deployment_scanner.models import DeploymentMarker
from src.deployment_scanner.registry import DeploymentRegistry
from src.deployment_scanner.tasks import (
    DeployTask,
    RedeployTask,
    ReplaceTask,
    TaskKind,
)
from src.deployment_scanner.walker import DirectoryWalker


def _deployed_marker(directory: Path, name: str, mtime_ns: int) -> Path:
    marker = directory / f"{name}.deployed"
    marker.write_text(name)
    os.utime(marker, ns=(mtime_ns, mtime_ns))
    return marker


class TestDirectoryWalker:
    """Tests for DirectoryWalker.scan_directory()."""

    def test_empty_directory(self, tmp_path, management):
        walker = DirectoryWalker(DeploymentRegistry(), management)
        to_remove = set()
        assert walker.scan_directory(tmp_path, set(), to_remove) == []

    def test_dodeploy_yields_deploy_task(self, tmp_path, management, add_artifact):
        artifact = add_artifact(tmp_path, "app.war")
        walker = DirectoryWalker(DeploymentRegistry(), management)
        
        tasks = walker.scan_directory(tmp_path, set(), set())
        
        assert len(tasks) == 1
        assert isinstance(tasks[0], DeployTask)
        assert tasks[0].kind == TaskKind.DEPLOY
        assert tasks[0].deployment_name == "app.war"
        assert tasks[0].deployment_file == artifact

    def test_dodeploy_for_registered_yields_replace_task(self, tmp_path, management, add_artifact):
        add_artifact(tmp_path, "app.war")
        walker = DirectoryWalker(DeploymentRegistry(), management)
        
        tasks = walker.scan_directory(tmp_path, {"app.war"}, set())
        
        assert len(tasks) == 1
        assert isinstance(tasks[0], ReplaceTask)

    def test_dodeploy_without_artifact_is_removed(self, tmp_path, management):
        stray = tmp_path / "missing.war.dodeploy"
        stray.write_text("")
        walker = DirectoryWalker(DeploymentRegistry(), management)
        
        tasks = walker.scan_directory(tmp_path, set(), set())
        
        assert tasks == []
        assert not stray.exists()

    def test_dodeploy_keeps_name_out_of_removal(self, tmp_path, management, add_artifact):
        add_artifact(tmp_path, "app.war")
        registry = DeploymentRegistry()
        registry.put("app.war", DeploymentMarker(1))
        to_remove = {"app.war"}
        
        DirectoryWalker(registry, management).scan_directory(tmp_path, {"app.war"}, to_remove)
        
        assert to_remove == set()

    def test_unchanged_deployed_marker_yields_nothing(self, tmp_path, management):
        _deployed_marker(tmp_path, "app.war", 1_000_000_000)
        registry = DeploymentRegistry()
        registry.put("app.war", DeploymentMarker(1_000_000_000))
        to_remove = {"app.war"}
        
        tasks = DirectoryWalker(registry, management).scan_directory(tmp_path, {"app.war"}, to_remove)
        
        assert tasks == []
        assert to_remove == set()

    def test_touched_deployed_marker_yields_redeploy(self, tmp_path, management):
        _deployed_marker(tmp_path, "app.war", 2_000_000_000)
        registry = DeploymentRegistry()
        registry.put("app.war", DeploymentMarker(1_000_000_000))
        
        tasks = DirectoryWalker(registry, management).scan_directory(tmp_path, {"app.war"}, {"app.war"})
        
        assert len(tasks) == 1
        assert isinstance(tasks[0], RedeployTask)
        assert tasks[0].marker_last_modified == 2_000_000_000

    def test_orphan_deployed_marker_is_removed(self, tmp_path, management):
        orphan = _deployed_marker(tmp_path, "old.war", 1_000_000_000)
        
        tasks = DirectoryWalker(DeploymentRegistry(), management).scan_directory(tmp_path, set(), set())
        
        assert tasks == []
        assert not orphan.exists()

    def test_faileddeploy_keeps_name_without_task(self, tmp_path, management):
        (tmp_path / "bad.war").write_bytes(b"x")
        (tmp_path / "bad.war.faileddeploy").write_text("boom")
        registry = DeploymentRegistry()
        registry.put("bad.war", DeploymentMarker(1))
        to_remove = {"bad.war"}
        
        tasks = DirectoryWalker(registry, management).scan_directory(tmp_path, set(), to_remove)
        
        assert tasks == []
        assert to_remove == set()

    def test_missing_markers_stay_in_to_remove(self, tmp_path, management):
        registry = DeploymentRegistry()
        registry.put("gone.war", DeploymentMarker(1))
        to_remove = {"gone.war"}
        
        DirectoryWalker(registry, management).scan_directory(tmp_path, {"gone.war"}, to_remove)
        
        assert to_remove == {"gone.war"}

    def test_recurses_into_subdirectories(self, tmp_path, management, add_artifact):
        sub = tmp_path / "apps"
        sub.mkdir()
        artifact = add_artifact(sub, "svc.jar")
        
        tasks = DirectoryWalker(DeploymentRegistry(), management).scan_directory(tmp_path, set(), set())
        
        assert [t.deployment_file for t in tasks] == [artifact]

    def test_does_not_recurse_into_archive_directories(self, tmp_path, management, add_artifact):
        exploded = tmp_path / "app.war"
        exploded.mkdir()
        add_artifact(exploded, "inner.jar")
        
        tasks = DirectoryWalker(DeploymentRegistry(), management).scan_directory(tmp_path, set(), set())
        
        assert tasks == []

    def test_exploded_archive_can_be_deployed(self, tmp_path, management):
        (tmp_path / "app.war").mkdir()
        (tmp_path / "app.war.dodeploy").write_text("")
        
        tasks = DirectoryWalker(DeploymentRegistry(), management).scan_directory(tmp_path, set(), set())
        
        assert len(tasks) == 1
        assert tasks[0].kind == TaskKind.DEPLOY

    def test_tasks_in_sorted_order(self, tmp_path, management, add_artifact):
        for name in ("c.war", "a.war", "b.war"):
            add_artifact(tmp_path, name)
        
        tasks = DirectoryWalker(DeploymentRegistry(), management).scan_directory(tmp_path, set(), set())
        
        assert [t.deployment_name for t in tasks] == ["a.war", "b.war", "c.war"]

    def test_filter_excludes_paths(self, tmp_path, management, add_artifact):
        add_artifact(tmp_path, ".hidden.war")
        add_artifact(tmp_path, "app.war")
        walker = DirectoryWalker(
            DeploymentRegistry(),
            management,
            file_filter=lambda p: not p.name.startswith("."),
        )
        
        tasks = walker.scan_directory(tmp_path, set(), set())
        
        assert [t.deployment_name for t in tasks] == ["app.war"]

    def test_plain_files_are_ignored(self, tmp_path, management):
        (tmp_path / "app.war").write_bytes(b"x")
        (tmp_path / "notes.txt").write_text("hello")
        
        tasks = DirectoryWalker(DeploymentRegistry(), management).scan_directory(tmp_path, set(), set())
        
        assert tasks == []
