# config.py

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


@dataclass(frozen=True)
class MutexConfig:
    """
    Everything needed to build a Mutex against etcd.

    Parameters:
        name (str): lock name
        prefix (str): etcd key prefix holding the lock records
        host, port: etcd endpoint
        expiry (float): seconds after the holder's last write when the lock counts
            as abandoned; 0 disables expiry
        timeout (float): max seconds lock() retries under contention; 0 = no limit
        initial_value (str): cached value before the first successful lock
        user, password, ca_cert, cert_key, cert_cert: etcd credentials / TLS
        ignore_env (bool): do not read ETCD_* environment variables
        ready_timeout (float): max seconds to wait for the cluster at connect time
    """
    name: str = "Lock"
    prefix: str = "/locks/"
    host: str = "127.0.0.1"
    port: int = 2379
    expiry: float = 0.0
    timeout: float = DEFAULT_TIMEOUT
    initial_value: str = "0"
    user: Optional[str] = None
    password: Optional[str] = None
    ca_cert: Optional[str] = None
    cert_key: Optional[str] = None
    cert_cert: Optional[str] = None
    ignore_env: bool = False
    ready_timeout: float = 10.0

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "MutexConfig":
        """
        Build a config from ETCD_* environment variables, then apply `overrides`.

        Credentials are only picked up when both ETCD_USER and ETCD_PASSWORD are
        set. Passing ignore_env=True skips the environment entirely.
        """
        unknown = set(overrides) - {f.name for f in fields(cls)}
        if unknown:
            raise ConfigurationError(f"Unknown config option(s): {', '.join(sorted(unknown))}")

        config = cls()
        if not overrides.get("ignore_env", False):
            env = os.environ if environ is None else environ
            from_env = {}
            if env.get("ETCD_HOST"):
                from_env["host"] = env["ETCD_HOST"]
            if env.get("ETCD_PORT"):
                try:
                    from_env["port"] = int(env["ETCD_PORT"])
                except ValueError:
                    raise ConfigurationError(f"ETCD_PORT is not a number: {env['ETCD_PORT']!r}") from None
            if env.get("ETCD_LOCK_PREFIX"):
                from_env["prefix"] = env["ETCD_LOCK_PREFIX"]
            if env.get("ETCD_USER") and env.get("ETCD_PASSWORD"):
                from_env["user"] = env["ETCD_USER"]
                from_env["password"] = env["ETCD_PASSWORD"]
            for var, attr in (("ETCD_CA_CERT", "ca_cert"),
                              ("ETCD_CERT_KEY", "cert_key"),
                              ("ETCD_CERT_CERT", "cert_cert")):
                if env.get(var):
                    from_env[attr] = env[var]
            if from_env:
                logger.debug("Config from environment: %s", sorted(from_env))
            config = replace(config, **from_env)

        return replace(config, **overrides).validate()

    def validate(self) -> "MutexConfig":
        if not self.name:
            raise ConfigurationError("Lock name must not be empty")
        if not self.prefix.endswith("/"):
            raise ConfigurationError(f"Key prefix must end with '/': {self.prefix!r}")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Port out of range: {self.port}")
        if self.expiry < 0:
            raise ConfigurationError(f"Expiry must not be negative: {self.expiry}")
        if self.timeout < 0:
            raise ConfigurationError(f"Timeout must not be negative: {self.timeout}")
        if self.ready_timeout < 0:
            raise ConfigurationError(f"Ready timeout must not be negative: {self.ready_timeout}")
        if (self.user is None) != (self.password is None):
            raise ConfigurationError("etcd user and password must be given together")
        return self
