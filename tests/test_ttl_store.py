# flake8: noqa
import threading

from ldt_gateway.commons.ttl_store import InMemoryTTLStore


class FakeClock:
    def __init__(self):
        self.t = 1000.0

    def __call__(self):
        return self.t


def test_set_get_and_expiry():
    clock = FakeClock()
    store = InMemoryTTLStore(clock=clock)
    store.set("k", "v", ttl=10)
    assert store.get("k") == "v"
    clock.t += 10
    assert store.get("k") is None
    assert len(store) == 0


def test_add_if_absent_is_first_writer_wins():
    clock = FakeClock()
    store = InMemoryTTLStore(clock=clock)
    assert store.add_if_absent("k", 1, ttl=5)
    assert not store.add_if_absent("k", 2, ttl=5)
    assert store.get("k") == 1
    clock.t += 6
    assert store.add_if_absent("k", 3, ttl=5)
    assert store.get("k") == 3


def test_delete():
    store = InMemoryTTLStore()
    store.set("k", "v", ttl=60)
    store.delete("k")
    store.delete("missing")
    assert store.get("k") is None


def test_add_if_absent_under_threads():
    store = InMemoryTTLStore()
    barrier = threading.Barrier(20)
    wins = []

    def worker(i):
        barrier.wait()
        if store.add_if_absent("replay", i, ttl=60):
            wins.append(i)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(wins) == 1
    assert store.get("replay") == wins[0]
