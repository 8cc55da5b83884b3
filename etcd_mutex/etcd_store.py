# etcd_store.py

import logging
import time

import etcd3
import grpc
from etcd3.exceptions import Etcd3Exception

from .errors import ConditionFailed, StoreError
from .record import LockRecord
from .store import UNSET, ConditionalStore

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "/locks/"
READY_POLL_INTERVAL = 0.1

# etcd3 only wraps some gRPC status codes; auth, permission and argument errors
# (and the Authenticate call made while building a client) surface as raw RpcError.
ETCD_ERRORS = (Etcd3Exception, grpc.RpcError)


class EtcdStore(ConditionalStore):
    """
    Lock records kept as JSON values under `prefix + name` in etcd.

    A conditional update reads the key, checks the condition locally and then
    commits with a transaction guarded on the revision it read: create_revision == 0
    if the key was absent, mod_revision == observed otherwise. Losing that compare
    means someone wrote in between, which is reported as ConditionFailed just like
    a false condition.
    """

    def __init__(self, client, prefix: str = DEFAULT_PREFIX):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_config(cls, config) -> "EtcdStore":
        logger.debug("Connecting to etcd at %s:%s", config.host, config.port)
        try:
            client = etcd3.client(
                host=config.host,
                port=config.port,
                ca_cert=config.ca_cert,
                cert_key=config.cert_key,
                cert_cert=config.cert_cert,
                user=config.user,
                password=config.password,
            )
        except ETCD_ERRORS as e:
            raise StoreError(f"Cannot connect to etcd at {config.host}:{config.port}: {_describe(e)}") from e
        return cls(client, prefix=config.prefix)

    def key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _read(self, key):
        try:
            raw, meta = self.client.get(key)
        except ETCD_ERRORS as e:
            raise StoreError(f"Error reading '{key}': {_describe(e)}") from e
        if raw is None:
            return None, None
        return LockRecord.decode(raw), meta

    def get(self, name):
        record, _ = self._read(self.key(name))
        return record

    def conditional_update(self, name, condition, holder_id, last_write, value=UNSET):
        key = self.key(name)
        current, meta = self._read(key)
        if not condition.holds(current):
            logger.debug("Condition failed on '%s' (current holder %s)",
                         key, current.holder_id)
            raise ConditionFailed(name)

        if value is UNSET:
            value = current.value if current else None
        record = LockRecord(name, holder_id, last_write, value)

        txn = self.client.transactions
        if meta is None:
            compare = [txn.create(key) == 0]
        else:
            compare = [txn.mod(key) == meta.mod_revision]
        try:
            committed, _ = self.client.transaction(
                compare=compare,
                success=[txn.put(key, record.encode())],
                failure=[],
            )
        except ETCD_ERRORS as e:
            raise StoreError(f"Error writing '{key}': {_describe(e)}") from e

        if not committed:
            logger.debug("Lost compare-and-swap on '%s'", key)
            raise ConditionFailed(name)
        return record

    def ensure_ready(self, timeout: float = 10.0) -> None:
        """
        Poll the cluster status until it reports a leader.

        Connection errors count as "not ready yet" until `timeout` seconds have
        passed, then StoreError is raised.
        """
        deadline = time.monotonic() + timeout
        while True:
            reason = None
            try:
                status = self.client.status()
                if status.leader is not None:
                    logger.debug("etcd ready (version %s, leader %s)",
                                 status.version, status.leader.id)
                    return
                reason = "no leader elected"
            except ETCD_ERRORS as e:
                reason = _describe(e)

            if time.monotonic() >= deadline:
                raise StoreError(f"etcd not ready after {timeout}s: {reason}")
            logger.debug("Waiting for etcd: %s", reason)
            time.sleep(READY_POLL_INTERVAL)


def _describe(error) -> str:
    if isinstance(error, grpc.RpcError) and callable(getattr(error, "code", None)):
        details = error.details() if callable(getattr(error, "details", None)) else ""
        return f"{error.code()}: {details}"
    return str(error) or type(error).__name__
