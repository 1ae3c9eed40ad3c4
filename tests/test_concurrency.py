from __future__ import annotations

import json
import threading

from flatconf import Config
from flatconf.locks import RWLock


def _generation(n: int) -> str:
    return json.dumps({"gen": {f"k{i}": n for i in range(20)}})


def test_readers_never_see_a_mixed_snapshot(write):
    path = write("app.json", _generation(0))
    config = Config(watch=False)
    config.open(path)

    stop = threading.Event()
    errors: list[str] = []

    def reader():
        while not stop.is_set():
            doc = config.reconstruct()
            values = set(doc["gen"].values())
            if len(values) != 1 or len(doc["gen"]) != 20:
                errors.append(repr(doc))
                return

    def reloader(offset: int):
        for n in range(1, 16):
            write(f"next{offset}.json", _generation(n * 10 + offset)).replace(path)
            config.reload()

    readers = [threading.Thread(target=reader) for _ in range(6)]
    reloaders = [threading.Thread(target=reloader, args=(i,)) for i in range(3)]
    for t in readers + reloaders:
        t.start()
    for t in reloaders:
        t.join()
    stop.set()
    for t in readers:
        t.join()
    config.close()

    assert errors == []


def test_rwlock_writer_excludes_readers():
    lock = RWLock()
    state = {"value": 0}
    seen: list[int] = []

    def writer():
        for _ in range(200):
            with lock.write():
                state["value"] += 1
                odd = state["value"]
                state["value"] += 1
                assert state["value"] == odd + 1

    def reader():
        for _ in range(200):
            with lock.read():
                seen.append(state["value"] % 2)

    threads = [threading.Thread(target=writer) for _ in range(2)]
    threads += [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert set(seen) <= {0}
    assert state["value"] == 800


def test_rwlock_allows_concurrent_readers():
    lock = RWLock()
    inside = threading.Barrier(3, timeout=5)

    def reader():
        with lock.read():
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert not inside.broken
