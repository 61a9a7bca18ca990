# medtrack/core/errors.py
from typing import Any


class TrackerError(RuntimeError):
    pass


class NotFoundError(TrackerError):
    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found")


class ValidationError(TrackerError):
    pass


class SchedulingError(TrackerError):
    """Failure to arm or cancel a single notification trigger."""

    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"{identifier}: {reason}")
