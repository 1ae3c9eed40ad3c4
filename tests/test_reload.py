from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from flatconf import Config
from flatconf.errors import NoSourceLoadedError, SourceParseError, WatchSetupError
from flatconf.reload import ReloadCoordinator, State, WatchStart, WatchState
from flatconf.watcher import PollingChangeSource


class FakeChangeSource:
    """Change source fed by the test: put a list of paths, an exception, or None."""

    def __init__(self) -> None:
        self.events: queue.Queue = queue.Queue()
        self.closed = threading.Event()

    def read(self, timeout: float):
        try:
            item = self.events.get(timeout=timeout)
        except queue.Empty:
            return []
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed.set()


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_reload_before_open():
    coordinator = ReloadCoordinator(watch=False)
    assert coordinator.state is State.UNLOADED
    with pytest.raises(NoSourceLoadedError):
        coordinator.reload()


def test_reload_picks_up_changes(write):
    path = write("app.conf", "a = 1\n")
    coordinator = ReloadCoordinator(watch=False)
    assert coordinator.open(path) is None
    assert coordinator.state is State.LOADED
    path.write_text("a = 2\n")
    assert coordinator.reload() is None
    assert coordinator.snapshot()["a"] == "2"
    coordinator.close()


def test_failed_reload_keeps_snapshot(write):
    path = write("app.json", '{"a": 1}')
    coordinator = ReloadCoordinator(watch=False)
    coordinator.open(path)
    before = coordinator.snapshot()
    path.write_text("{broken")
    with pytest.raises(SourceParseError):
        coordinator.reload()
    assert coordinator.snapshot() is before
    assert coordinator.state is State.LOADED
    coordinator.close()


def test_snapshot_is_read_only(write):
    coordinator = ReloadCoordinator(watch=False)
    coordinator.open(write("app.conf", "a = 1\n"))
    with pytest.raises(TypeError):
        coordinator.snapshot()["a"] = "2"  # type: ignore[index]
    coordinator.close()


def test_callback_runs_off_thread(cfg, write):
    cfg.open(write("app.conf", "a = 1\n"))
    seen = []
    cfg.set_on_reload(lambda: seen.append(threading.current_thread().name))
    future = cfg.reload()
    assert future is not None
    future.result(timeout=5)
    assert len(seen) == 1
    assert seen[0] != threading.current_thread().name


def test_callbacks_are_queued_not_overlapping(cfg, write):
    cfg.open(write("app.conf", "a = 1\n"))
    active = []
    overlaps = []
    lock = threading.Lock()

    def slow():
        with lock:
            active.append(1)
            if len(active) > 1:
                overlaps.append(1)
        time.sleep(0.02)
        with lock:
            active.pop()

    cfg.set_on_reload(slow)
    futures = [cfg.reload() for _ in range(5)]
    for future in futures:
        future.result(timeout=5)
    assert overlaps == []


def test_callback_error_is_logged(cfg, write, caplog):
    cfg.open(write("app.conf", "a = 1\n"))

    def boom():
        raise RuntimeError("boom")

    cfg.set_on_reload(boom)
    with caplog.at_level(logging.ERROR, logger="flatconf.reload"):
        cfg.reload().result(timeout=5)
    assert "reload callback failed" in caplog.text
    assert cfg.get_string("a") == "1"


def test_supplied_callback_executor_is_used(write):
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mine")
    config = Config(watch=False, callback_executor=executor)
    config.open(write("app.conf", "a = 1\n"))
    names = []
    config.set_on_reload(lambda: names.append(threading.current_thread().name))
    config.reload().result(timeout=5)
    config.close()
    assert names[0].startswith("mine")
    # still usable: close() does not shut down executors it does not own
    assert executor.submit(lambda: 1).result(timeout=5) == 1
    executor.shutdown()


def test_watch_reloads_on_change_event(write):
    source = FakeChangeSource()
    path = write("app.conf", "a = 1\n")
    config = Config(change_source_factory=lambda paths, interval: source)
    reloaded = threading.Event()
    config.set_on_reload(reloaded.set)
    assert config.open(path) is WatchStart.STARTED
    assert config.stats().watching

    path.write_text("a = 2\n")
    source.events.put([path])
    assert reloaded.wait(5)
    assert config.get_int("a") == 2
    config.close()
    assert source.closed.wait(5)


def test_watch_survives_source_errors(write, caplog):
    source = FakeChangeSource()
    path = write("app.conf", "a = 1\n")
    config = Config(poll_interval=0.01, change_source_factory=lambda paths, interval: source)
    reloaded = threading.Event()
    config.set_on_reload(reloaded.set)
    with caplog.at_level(logging.ERROR, logger="flatconf.reload"):
        config.open(path)
        source.events.put(OSError("read failed"))
        path.write_text("a = 3\n")
        source.events.put([path])
        assert reloaded.wait(5)
    assert "watcher error" in caplog.text
    assert config.get_int("a") == 3
    config.close()


def test_watch_survives_reload_errors(write, caplog):
    source = FakeChangeSource()
    path = write("app.json", '{"a": 1}')
    config = Config(change_source_factory=lambda paths, interval: source)
    reloaded = threading.Event()
    config.set_on_reload(reloaded.set)
    with caplog.at_level(logging.ERROR, logger="flatconf.reload"):
        config.open(path)
        path.write_text("{broken")
        source.events.put([path])
        assert _wait_for(lambda: "config reload failed" in caplog.text)
    assert config.get_int("a") == 1

    path.write_text('{"a": 2}')
    source.events.put([path])
    assert reloaded.wait(5)
    assert config.get_int("a") == 2
    config.close()


def test_watch_exits_when_source_closes(write):
    source = FakeChangeSource()
    coordinator = ReloadCoordinator(change_source_factory=lambda paths, interval: source)
    coordinator.open(write("app.conf", "a = 1\n"))
    source.events.put(None)
    assert _wait_for(lambda: coordinator.watch_state is WatchState.STOPPED)
    assert source.closed.is_set()
    coordinator.close()


def test_start_watch_only_once(write):
    source = FakeChangeSource()
    calls = []

    def factory(paths, interval):
        calls.append(paths)
        return source

    coordinator = ReloadCoordinator(change_source_factory=factory)
    path = write("app.conf", "a = 1\n")
    assert coordinator.open(path) is WatchStart.STARTED
    assert coordinator.open(path) is WatchStart.ALREADY_STARTED
    assert coordinator.start_watch() is WatchStart.ALREADY_STARTED
    assert len(calls) == 1
    coordinator.close()


def test_watch_setup_failure_keeps_store(write):
    def factory(paths, interval):
        raise RuntimeError("no watcher for you")

    config = Config(change_source_factory=factory)
    with pytest.raises(WatchSetupError):
        config.open(write("app.conf", "a = 1\n"))
    assert config.get_int("a") == 1
    assert config.stats().watching is False
    config.close()


def test_polling_watch_end_to_end(write):
    path = write("app.conf", "a = 1\n")
    config = Config(change_source_factory=lambda paths, interval: PollingChangeSource(paths, 0.02))
    reloaded = threading.Event()
    config.set_on_reload(reloaded.set)
    config.open(path)
    path.write_text("a = 22\n")
    assert reloaded.wait(5)
    assert config.get_int("a") == 22
    config.close()


def test_polling_source_missing_file(tmp_path):
    with pytest.raises(WatchSetupError):
        PollingChangeSource([tmp_path / "missing.conf"])


def test_polling_source_read_after_close(write):
    source = PollingChangeSource([write("app.conf", "a = 1\n")], 0.01)
    assert source.read(0.02) == []
    source.close()
    assert source.read(0.02) is None


def test_close_is_idempotent_and_final(write):
    source = FakeChangeSource()
    coordinator = ReloadCoordinator(change_source_factory=lambda paths, interval: source)
    path = write("app.conf", "a = 1\n")
    coordinator.open(path)
    coordinator.close()
    coordinator.close()
    assert coordinator.watch_state is WatchState.STOPPED
    assert source.closed.wait(5)
    assert coordinator.start_watch() is WatchStart.ALREADY_STARTED
    assert coordinator.snapshot()["a"] == "1"


def test_close_without_open():
    ReloadCoordinator().close()


def test_reload_after_close_schedules_no_callback(write):
    path = write("app.conf", "a = 1\n")
    coordinator = ReloadCoordinator(watch=False)
    coordinator.open(path)
    calls = []
    coordinator.set_on_reload(lambda: calls.append(1))
    coordinator.reload().result(timeout=5)
    coordinator.close()

    path.write_text("a = 2\n")
    assert coordinator.reload() is None
    assert coordinator.snapshot()["a"] == "2"
    assert calls == [1]
    assert coordinator._executor is None
