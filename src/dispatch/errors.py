"""Error taxonomy for the dispatch core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


class DispatchError(Exception):
    """Base class for every error raised by the dispatch core."""


class ValidationError(DispatchError, ValueError):
    """Malformed input detected before any state is produced."""


class StateError(DispatchError):
    """An illegal delivery status transition was requested."""

    def __init__(self, current: str, requested: str, delivery_id: str) -> None:
        self.current = current
        self.requested = requested
        self.delivery_id = delivery_id
        super().__init__(f"Invalid status transition: {current} -> {requested} for delivery {delivery_id}")


class ConstraintViolation(DispatchError):
    """A produced route breaks one or more of its constraints."""

    def __init__(self, violations: Sequence[str]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "route constraint violated")


@dataclass(frozen=True, slots=True)
class ReconciliationAlert:
    """Non-fatal cash reconciliation finding intended for ops review."""

    driver_id: str
    kind: str
    message: str
    amount: float = 0

    def __str__(self) -> str:
        return self.message
