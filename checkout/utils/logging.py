# checkout/utils/logging.py
import logging
import sys

from checkout.utils.settings import LOG_LEVEL

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_root = logging.getLogger("checkout")
if not _root.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    _root.addHandler(handler)
    _root.setLevel(LOG_LEVEL)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
