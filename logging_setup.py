import logging
import sys

_LEVELS = {
    'CRITICAL': logging.CRITICAL,
    'ERROR': logging.ERROR,
    'WARN': logging.WARNING,
    'WARNING': logging.WARNING,
    'INFO': logging.INFO,
    'DEBUG': logging.DEBUG,
}

_FORMAT = '%(asctime)s [%(name)s] %(levelname)s: %(message)s'
_DATEFMT = '%Y-%m-%d %H:%M:%S'


def coerce_level(value) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    return logging.INFO


def configure_logging(level='INFO') -> None:
    """Install a single stdout handler on the root logger.

    Safe to call more than once (the app factory runs per test).
    """
    root = logging.getLogger()
    root.setLevel(coerce_level(level))

    for handler in root.handlers:
        if getattr(handler, '_pantry_handler', False):
            handler.setLevel(coerce_level(level))
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(coerce_level(level))
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    handler._pantry_handler = True
    root.addHandler(handler)
