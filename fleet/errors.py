from __future__ import annotations

from typing import Iterable


class StoreError(Exception):
    """Base class for failures reported by the state store."""


class ConflictError(StoreError):
    """Optimistic-concurrency conflict or duplicate create. Retry with fresh state."""


class NotFoundError(StoreError):
    pass


class RolloutIncomplete(Exception):
    """The pass finished but the rollout cannot progress until something external happens.

    Not a failure: the caller requeues without escalating backoff.
    """


class InvariantViolation(Exception):
    """State that should not be possible (negative budgets, ambiguous new set, ...)."""


class AggregateError(Exception):
    """Several errors from one reconciliation pass, reported together."""

    def __init__(self, errors: list[BaseException]):
        self.errors = errors
        super().__init__("; ".join(f"{type(e).__name__}: {e}" for e in errors))

    @property
    def incomplete_only(self) -> bool:
        return all(isinstance(e, RolloutIncomplete) for e in self.errors)

    def has(self, kind: type[BaseException]) -> bool:
        return any(isinstance(e, kind) for e in self.errors)


def aggregate(errors: Iterable[BaseException | None]) -> AggregateError | None:
    """Combine errors, dropping Nones and flattening nested aggregates.

    Returns None when nothing is left.
    """
    flat: list[BaseException] = []
    for e in errors:
        if e is None:
            continue
        if isinstance(e, AggregateError):
            flat.extend(e.errors)
        else:
            flat.append(e)
    if not flat:
        return None
    return AggregateError(flat)
