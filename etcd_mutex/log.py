# log.py

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def configure_logging(level=logging.INFO, log_file: str = None) -> None:
    """
    Send log records to the console and, if `log_file` is given, to that file.

    Meant for applications and the command line; the library itself never adds
    handlers.
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
