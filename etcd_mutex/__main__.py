# __main__.py

import argparse
import logging
import sys

from .config import MutexConfig
from .errors import MutexError
from .log import configure_logging
from .mutex import connect

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="etcd-mutex", description="Inspect and update distributed mutexes stored in etcd.")
    parser.add_argument("--host", help="etcd host (default: $ETCD_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, help="etcd port (default: $ETCD_PORT or 2379)")
    parser.add_argument("--prefix", help="key prefix for lock records (default: /locks/)")
    parser.add_argument("--timeout", type=float, help="seconds to wait for the lock; 0 waits forever")
    parser.add_argument("--expiry", type=float, help="seconds after which a held lock counts as abandoned")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--log-file", help="also write logs to this file")

    sub = parser.add_subparsers(dest="command", required=True)
    show = sub.add_parser("show", help="print the stored lock record without locking")
    show.add_argument("name")
    get = sub.add_parser("get", help="lock, print the value, unlock")
    get.add_argument("name")
    set_ = sub.add_parser("set", help="lock, replace the value, unlock")
    set_.add_argument("name")
    set_.add_argument("value")
    incr = sub.add_parser("incr", help="lock, add to the integer value, unlock")
    incr.add_argument("name")
    incr.add_argument("--by", type=int, default=1)
    return parser


def run(args, out=None) -> None:
    out = out or sys.stdout
    overrides = {"name": args.name}
    for option in ("host", "port", "prefix", "timeout", "expiry"):
        if getattr(args, option) is not None:
            overrides[option] = getattr(args, option)
    mutex = connect(MutexConfig.from_env(**overrides))

    if args.command == "show":
        record = mutex.store.get(mutex.name)
        if record is None:
            print(f"{mutex.name}: never written", file=out)
        else:
            state = f"held by {record.holder_id}" if record.is_locked else "unlocked"
            print(f"{record.name}: {state}, last write {record.last_write}, value {record.value!r}", file=out)
    elif args.command == "get":
        print(mutex.lock_and_get_value_string(), file=out)
        mutex.unlock()
    elif args.command == "set":
        mutex.lock()
        mutex.set_value_string_and_unlock(args.value)
    elif args.command == "incr":
        with mutex:
            mutex.set_value_int64(mutex.get_value_int64() + args.by)
        print(mutex.get_value_string(), file=out)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)
    try:
        run(args)
    except MutexError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
