import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

LOG_FORMAT = '%(asctime)s [%(levelname)s] [org=%(organization)s] %(name)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_current_organization: ContextVar[str] = ContextVar('current_organization', default='-')


@contextmanager
def organization_context(organization_id: str) -> Iterator[None]:
    """Tags every log line emitted inside the block with ``organization_id``."""
    token = _current_organization.set(organization_id)
    try:
        yield
    finally:
        _current_organization.reset(token)


class OrganizationFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.organization = _current_organization.get()
        return True


class _LevelColorFormatter(logging.Formatter):
    _COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    _RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self._COLORS.get(record.levelno)
        if color:
            # colour a copy, other handlers share the record
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{color}{record.levelname}{self._RESET}"
        return super().format(record)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Console logging for the API process and the monitor worker."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(OrganizationFilter())
    formatter_cls = _LevelColorFormatter if sys.stdout.isatty() else logging.Formatter
    handler.setFormatter(formatter_cls(LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # server heartbeats and job bookkeeping
    logging.getLogger('pymongo').setLevel(logging.WARNING)
    logging.getLogger('schedule').setLevel(logging.WARNING)
