import threading

import pytest

from etcd_mutex import Condition, ConditionFailed, LockRecord, MemoryStore

SESSION = 1111
OTHER = 2222


def record(holder_id, last_write=100, value=None):
    return LockRecord("lock", holder_id, last_write, value)


def test_missing_record_satisfies_every_condition():
    assert Condition.acquire(SESSION).holds(None)
    assert Condition.release(SESSION).holds(None)


def test_acquire_condition():
    cond = Condition.acquire(SESSION)
    assert cond.holds(record(None))
    assert cond.holds(record(0))
    assert cond.holds(record(SESSION))
    assert not cond.holds(record(OTHER))


def test_acquire_condition_with_expiry():
    cond = Condition.acquire(SESSION, stale_before=100)
    # stale write by someone else
    assert cond.holds(record(OTHER, last_write=99))
    # written exactly at the cutoff is still fresh
    assert not cond.holds(record(OTHER, last_write=100))
    assert not cond.holds(record(OTHER, last_write=150))


def test_release_condition():
    cond = Condition.release(SESSION)
    assert cond.holds(record(SESSION))
    assert not cond.holds(record(0))
    assert not cond.holds(record(None))
    assert not cond.holds(record(OTHER))


def test_memory_store_update_and_get():
    store = MemoryStore()
    assert store.get("lock") is None
    written = store.conditional_update("lock", Condition.acquire(SESSION), SESSION, 10)
    assert written == LockRecord("lock", SESSION, 10, None)
    assert store.get("lock") == written


def test_memory_store_keeps_value_unless_given():
    store = MemoryStore()
    store.conditional_update("lock", Condition.release(SESSION), 0, 1, value="kept")
    store.conditional_update("lock", Condition.acquire(SESSION), SESSION, 2)
    assert store.get("lock").value == "kept"
    store.conditional_update("lock", Condition.release(SESSION), 0, 3, value="new")
    assert store.get("lock") == LockRecord("lock", 0, 3, "new")


def test_memory_store_condition_failed_leaves_record():
    store = MemoryStore()
    store.conditional_update("lock", Condition.acquire(OTHER), OTHER, 5)
    with pytest.raises(ConditionFailed):
        store.conditional_update("lock", Condition.acquire(SESSION), SESSION, 6)
    assert store.get("lock").holder_id == OTHER


def test_memory_store_names_are_independent():
    store = MemoryStore()
    store.conditional_update("a", Condition.acquire(OTHER), OTHER, 5)
    store.conditional_update("b", Condition.acquire(SESSION), SESSION, 5)
    assert store.get("a").holder_id == OTHER
    assert store.get("b").holder_id == SESSION


def test_memory_store_only_one_seizer_wins():
    store = MemoryStore()
    store.conditional_update("lock", Condition.acquire(OTHER), OTHER, 0)
    winners = []
    barrier = threading.Barrier(8)

    def seize(session_id):
        barrier.wait()
        try:
            store.conditional_update("lock", Condition.acquire(session_id, stale_before=50),
                                     session_id, 100)
            winners.append(session_id)
        except ConditionFailed:
            pass

    threads = [threading.Thread(target=seize, args=(i,)) for i in range(1, 9)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert store.get("lock").holder_id == winners[0]
