import pytest

from etcd_mutex import MemoryStore, Mutex


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_mutex(store):
    """Mutexes on the shared in-memory store, each with its own session."""
    def make(name="Lock", **kwargs):
        kwargs.setdefault("timeout", 1.0)
        return Mutex(store, name, **kwargs)
    return make
