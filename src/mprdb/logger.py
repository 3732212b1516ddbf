import json
import logging
import os
import sys
import time

LOG_LEVEL_ENV = "MPRDB_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"

_ROOT = "mprdb"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if root.handlers:
        return root

    level_name = os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.WARNING))

    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        fmt=json.dumps({
            "ts": "%(asctime)s",
            "level": "%(levelname)s",
            "name": "%(name)s",
            "msg": "%(message)s",
        }),
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    formatter.converter = time.gmtime
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.propagate = False
    return root


def get_logger(name: str = _ROOT) -> logging.Logger:
    """Structured logger for mprdb modules; child loggers share one stderr handler."""
    _configure_root()
    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
