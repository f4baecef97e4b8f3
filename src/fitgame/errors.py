"""Domain error taxonomy shared by every progress component."""

from __future__ import annotations

from dataclasses import dataclass


class FitgameError(Exception):
    """Base class for recoverable domain errors."""


class IllegalTransition(FitgameError):
    """The requested operation is not valid from the current state."""

    def __init__(self, operation: str, current: str | None, reason: str) -> None:
        self.operation = operation
        self.current = current
        self.reason = reason
        super().__init__(f"Cannot apply {operation} from {current}: {reason}")


class NotFound(FitgameError):
    """A row required by the operation does not exist."""

    def __init__(self, resource: str, key: object) -> None:
        self.resource = resource
        self.key = key
        super().__init__(f"{resource} not found: {key}")


class ConcurrencyContention(FitgameError):
    """Lock wait or write conflict persisted after the bounded retries."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Transaction aborted by contention after {attempts} attempts")


class InvariantViolation(Exception):
    """Corrupted state or a missing table entry. Never caught by services."""


@dataclass(frozen=True)
class AggregateReconciliationAnomaly:
    """A partition increment that matched no row.

    Recorded as a metric, never raised: the per-user row is the record of truth.
    """

    counter: str
    entity_key: str
    partition_key: int
    deltas: dict[str, int]
