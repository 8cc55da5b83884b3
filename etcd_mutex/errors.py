# errors.py


class MutexError(Exception):
    """Base class for everything this package raises."""


class ConditionFailed(MutexError):
    """
    Raised by a store when the condition of a conditional update does not hold.

    This is the contention signal. Mutex.lock() absorbs it while under its timeout
    and Mutex.unlock() turns it into NotHolder.
    """


class StoreError(MutexError):
    """Transport, provisioning or permission failure from the backing store."""


class NotHolder(MutexError):
    """Unlock was called by a session that does not hold the lock."""


class InvalidValue(MutexError, ValueError):
    """The cached value cannot be read or written in the requested numeric form."""


class FailedToAcquire(MutexError, TimeoutError):
    """The lock stayed contended for longer than the configured timeout."""


class ConfigurationError(MutexError, ValueError):
    pass
