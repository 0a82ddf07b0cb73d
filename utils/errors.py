# utils/errors.py
from pymongo.errors import PyMongoError


class ScheduleEngineError(Exception):
    """Base class for errors surfaced by the scheduling engine."""

    http_status = 500


class ValidationError(ScheduleEngineError):
    """Input rejected before anything was written."""

    http_status = 400


class NotFoundError(ScheduleEngineError):
    http_status = 404


class ConflictError(ScheduleEngineError):
    """The requested transition is not allowed from the instance's current state."""

    http_status = 409


class TransientStoreError(ScheduleEngineError):
    """Persistence was unavailable. Every write in the engine is idempotent, so retrying is safe."""

    http_status = 503


class MaterializationError(TransientStoreError):
    def __init__(self, message: str, created: int = 0):
        super().__init__(message)
        self.created = created


def store_error(exc: PyMongoError, action: str) -> TransientStoreError:
    return TransientStoreError(f"{action} failed: {exc}")
