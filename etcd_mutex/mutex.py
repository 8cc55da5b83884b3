# mutex.py

import copy
import logging
import random
import re
import time
from dataclasses import replace

from .backoff import Backoff
from .config import DEFAULT_TIMEOUT, MutexConfig
from .errors import (
    ConditionFailed,
    ConfigurationError,
    FailedToAcquire,
    InvalidValue,
    MutexError,
    NotHolder,
)
from .etcd_store import EtcdStore
from .record import UNLOCKED
from .store import Condition

logger = logging.getLogger(__name__)

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1
UINT64_MAX = (1 << 64) - 1

_INT_LITERAL = re.compile(r"[+-]?[0-9]+")
_UINT_LITERAL = re.compile(r"[0-9]+")


def new_session_id(rng: random.Random) -> int:
    """Random positive 64-bit id; never 0, which means "unlocked"."""
    session_id = 0
    while session_id == UNLOCKED:
        session_id = rng.getrandbits(63)
    return session_id


class Mutex:
    """
    Distributed lock whose state lives in a ConditionalStore, carrying a shared
    string value from one holder to the next.

    Parameters:
        store (ConditionalStore): where the lock record lives
        name (str): lock name
        expiry (float): seconds after the holder's last write when another session
            may seize the lock; 0 disables expiry
        timeout (float): max seconds lock() retries under contention; 0 = no limit
        initial_value (str): cached value until a lock() brings in the stored one
        rng (random.Random): source for the session id and backoff jitter

    Usage:
        with Mutex(store, "counter") as m:
            m.set_value_int64(m.get_value_int64() + 1)

    The value is only read from the store by lock() and only written by unlock();
    the accessors work on the local copy. One instance must not be shared between
    threads; give every thread or process its own.

    Leaving a `with` block unlocks. If the block raised and the unlock also fails
    (say the hold expired and was seized meanwhile), the unlock error is logged and
    the block's exception is the one that propagates.
    """

    def __init__(self, store, name: str = "Lock", expiry: float = 0.0,
                 timeout: float = DEFAULT_TIMEOUT, initial_value: str = "0",
                 rng: random.Random = None, backoff: Backoff = None, clock=time.time_ns):
        if not name:
            raise ConfigurationError("Lock name must not be empty")
        if expiry < 0:
            raise ConfigurationError(f"Expiry must not be negative: {expiry}")
        if timeout < 0:
            raise ConfigurationError(f"Timeout must not be negative: {timeout}")
        self.store = store
        self.name = name
        self.expiry = expiry
        self._timeout = timeout
        self.value = initial_value
        self.rng = rng or random.Random()
        self.session_id = new_session_id(self.rng)
        self.backoff = backoff or Backoff(rng=self.rng)
        self.clock = clock
        self.held = False
        self._check_permanent_block()

    @property
    def may_block_forever(self) -> bool:
        return self._timeout == 0 and self.expiry == 0

    def _check_permanent_block(self):
        if self.may_block_forever:
            logger.warning(
                "Lock '%s' has neither timeout nor expiry: lock() may block forever "
                "if the holder never unlocks", self.name)

    def with_timeout(self, timeout: float) -> "Mutex":
        """
        Copy of this mutex with a different timeout (0 = no limit).

        The copy shares the store and the session id, so it is the same owner.
        """
        if timeout < 0:
            raise ConfigurationError(f"Timeout must not be negative: {timeout}")
        other = copy.copy(self)
        other._timeout = timeout
        other._check_permanent_block()
        return other

    def get_timeout(self) -> float:
        return self._timeout

    def _stale_before(self, now: int):
        if self.expiry > 0:
            return now - int(self.expiry * 1_000_000_000)
        return None

    def lock(self) -> "Mutex":
        """
        Block until this session owns the lock, then load the stored value.

        Raises FailedToAcquire once the timeout has passed while the lock stayed
        taken, and StoreError straight away on store failures.
        """
        start = time.monotonic()
        attempts = 0
        logger.debug("Session %s locking '%s' (timeout=%ss, expiry=%ss)",
                     self.session_id, self.name, self._timeout, self.expiry)
        while True:
            attempts += 1
            now = self.clock()
            condition = Condition.acquire(self.session_id, self._stale_before(now))
            try:
                record = self.store.conditional_update(
                    self.name, condition, holder_id=self.session_id, last_write=now)
            except ConditionFailed:
                elapsed = time.monotonic() - start
                if self._timeout > 0 and elapsed >= self._timeout:
                    logger.error("Timeout acquiring lock '%s' after %.2fs (%d attempts)",
                                 self.name, elapsed, attempts)
                    raise FailedToAcquire(
                        f"Could not lock '{self.name}' within {self._timeout}s") from None
                wait = self.backoff.next_interval()
                logger.debug("Lock '%s' is taken; retrying in %.4fs", self.name, wait)
                time.sleep(wait)
                continue

            if record.value is not None:
                self.value = record.value
            self.held = True
            logger.info("Lock '%s' acquired by session %s after %d attempt(s)",
                        self.name, self.session_id, attempts)
            return self

    def unlock(self) -> None:
        """
        Release the lock and store the cached value.

        Raises NotHolder if another session owns the lock, which includes the case
        where our own hold expired and was taken over.
        """
        condition = Condition.release(self.session_id)
        try:
            self.store.conditional_update(
                self.name, condition, holder_id=UNLOCKED, last_write=self.clock(), value=self.value)
        except ConditionFailed:
            self.held = False
            logger.error("Cannot unlock '%s': not held by session %s", self.name, self.session_id)
            raise NotHolder(f"Session {self.session_id} does not hold lock '{self.name}'") from None
        self.held = False
        logger.info("Lock '%s' released by session %s", self.name, self.session_id)

    def __enter__(self):
        return self.lock()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.unlock()
            return
        # the block's own exception wins over a failed release
        try:
            self.unlock()
        except MutexError as e:
            logger.error("Could not release lock '%s' after %s in the locked block: %s",
                         self.name, exc_type.__name__, e)

    # Value accessors. None of these touch the store or check that the lock is held.

    def get_value_string(self) -> str:
        return self.value

    def set_value_string(self, value: str) -> None:
        self.value = value

    def get_value_int64(self) -> int:
        return self._parse_int(_INT_LITERAL, INT64_MIN, INT64_MAX, "int64")

    def set_value_int64(self, value: int) -> None:
        self._format_int(value, INT64_MIN, INT64_MAX, "int64")

    def get_value_uint64(self) -> int:
        return self._parse_int(_UINT_LITERAL, 0, UINT64_MAX, "uint64")

    def set_value_uint64(self, value: int) -> None:
        self._format_int(value, 0, UINT64_MAX, "uint64")

    def _parse_int(self, pattern, low, high, kind):
        if self.value == "":
            return 0
        if not pattern.fullmatch(self.value):
            raise InvalidValue(f"Value of lock '{self.name}' is not a valid {kind}: {self.value!r}")
        result = int(self.value)
        if not low <= result <= high:
            raise InvalidValue(f"Value of lock '{self.name}' is out of {kind} range: {self.value}")
        return result

    def _format_int(self, value, low, high, kind):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidValue(f"Expected an integer, got {type(value).__name__}")
        if not low <= value <= high:
            raise InvalidValue(f"{value} is out of {kind} range")
        self.value = str(value)

    def lock_and_get_value_string(self) -> str:
        self.lock()
        return self.get_value_string()

    def set_value_string_and_unlock(self, value: str) -> None:
        self.set_value_string(value)
        self.unlock()

    def __repr__(self):
        return f"Mutex(name={self.name!r}, session_id={self.session_id}, held={self.held})"


def connect(config: MutexConfig = None, **overrides) -> Mutex:
    """
    Connect to etcd, wait for the cluster to be ready and return a Mutex.

    Without `config` the settings come from MutexConfig.from_env(**overrides).
    Connection and readiness problems raise StoreError here, not on first use.
    """
    if config is None:
        config = MutexConfig.from_env(**overrides)
    else:
        config = replace(config, **overrides).validate()
    store = EtcdStore.from_config(config)
    store.ensure_ready(config.ready_timeout)
    return Mutex(store, name=config.name, expiry=config.expiry, timeout=config.timeout,
                 initial_value=config.initial_value)