"""
Distributed mutex backed by etcd, with a small value handed from one holder to the
next.

    import etcd_mutex

    m = etcd_mutex.connect(name="job42", timeout=10)
    with m:
        m.set_value_int64(m.get_value_int64() + 1)
"""
from .backoff import Backoff  # noqa: F401
from .config import MutexConfig  # noqa: F401
from .errors import (  # noqa: F401
    ConditionFailed,
    ConfigurationError,
    FailedToAcquire,
    InvalidValue,
    MutexError,
    NotHolder,
    StoreError,
)
from .etcd_store import EtcdStore  # noqa: F401
from .mutex import Mutex, connect  # noqa: F401
from .record import LockRecord  # noqa: F401
from .store import Condition, ConditionalStore, MemoryStore  # noqa: F401
