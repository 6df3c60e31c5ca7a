"""Tests for the marker event trigger."""

import threading
import time

from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from src.deployment_scanner.trigger import MarkerEventHandler, MarkerEventTrigger


class TestMarkerEventHandler:
    """Tests for MarkerEventHandler filtering."""

    def _handler(self):
        calls = []
        return MarkerEventHandler(lambda: calls.append(1)), calls

    def test_marker_created(self):
        handler, calls = self._handler()
        handler.dispatch(FileCreatedEvent("/deploy/app.war.dodeploy"))
        assert calls == [1]

    def test_marker_deleted(self):
        handler, calls = self._handler()
        handler.dispatch(FileDeletedEvent("/deploy/app.war.deployed"))
        assert calls == [1]

    def test_marker_modified(self):
        handler, calls = self._handler()
        handler.dispatch(FileModifiedEvent("/deploy/sub/app.war.deployed"))
        assert calls == [1]

    def test_non_marker_ignored(self):
        handler, calls = self._handler()
        handler.dispatch(FileCreatedEvent("/deploy/app.war"))
        handler.dispatch(FileModifiedEvent("/deploy/notes.txt"))
        assert calls == []

    def test_directory_event_ignored(self):
        handler, calls = self._handler()
        handler.dispatch(DirCreatedEvent("/deploy/app.war.dodeploy"))
        assert calls == []

    def test_move_onto_marker(self):
        handler, calls = self._handler()
        handler.dispatch(FileMovedEvent("/deploy/.tmp123", "/deploy/app.war.dodeploy"))
        assert calls == [1]

    def test_move_away_from_marker(self):
        handler, calls = self._handler()
        handler.dispatch(FileMovedEvent("/deploy/app.war.deployed", "/deploy/app.war.bak"))
        assert calls == [1]

    def test_bytes_path(self):
        handler, calls = self._handler()
        handler.dispatch(FileCreatedEvent(b"/deploy/app.war.dodeploy"))
        assert calls == [1]


class TestMarkerEventTrigger:
    """Tests for MarkerEventTrigger lifecycle."""

    def test_start_stop(self, tmp_path):
        trigger = MarkerEventTrigger(tmp_path, lambda: None)
        
        assert trigger.start() is True
        assert trigger.is_running
        assert trigger.start() is False
        
        assert trigger.stop() is True
        assert not trigger.is_running
        assert trigger.stop() is False

    def test_detects_marker_creation(self, tmp_path):
        fired = threading.Event()
        trigger = MarkerEventTrigger(tmp_path, fired.set)
        trigger.start()
        
        # Give observer time to start
        time.sleep(0.2)
        
        (tmp_path / "app.war.dodeploy").write_text("")
        
        try:
            assert fired.wait(timeout=5)
        finally:
            trigger.stop()


class TestScannerTrigger:
    """Event-triggered scans through the scanner."""

    def test_marker_event_requests_scan(self, deploy_dir, management, scheduler, make_scanner, add_artifact):
        scanner = make_scanner(watch_events=True)
        time.sleep(0.2)
        
        add_artifact(deploy_dir, "app.war")
        
        deadline = time.time() + 5
        while time.time() < deadline and len(scheduler.scheduled) < 2:
            time.sleep(0.05)
        
        assert len(scheduler.scheduled) >= 2
        scheduler.run_pending()
        assert (deploy_dir / "app.war.deployed").exists()
        
        scanner.stop_scanner()
