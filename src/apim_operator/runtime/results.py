"""Reconciler return values."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconcile call.

    ``requeue_after`` schedules the same key again after that many seconds.
    """

    requeue_after: float | None = None

    @classmethod
    def requeue(cls, seconds: float) -> ReconcileResult:
        """Shorthand for a delayed requeue."""
        return cls(requeue_after=seconds)
