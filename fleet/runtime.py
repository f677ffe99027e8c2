from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from .models import utc_now


OUTCOME_OK = "ok"
OUTCOME_INCOMPLETE = "incomplete"
OUTCOME_CONFLICT = "conflict"
OUTCOME_ERROR = "error"


@dataclass
class PassResult:
    deployment: str
    outcome: str  # ok|incomplete|conflict|error
    message: str = ""
    requeue: bool = False
    failures: int = 0  # consecutive passes ending in conflict/error
    finished_at: str = field(default_factory=utc_now)


class RuntimeState:
    """In-memory state shared by reconciler workers."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.key_locks: dict[str, Lock] = {}  # deployment -> lock held for a whole pass
        self.results: dict[str, PassResult] = {}  # deployment -> last pass
        self.fail_counts: dict[str, int] = {}  # deployment -> consecutive failures

    def key_lock(self, deployment: str) -> Lock:
        with self.lock:
            lk = self.key_locks.get(deployment)
            if lk is None:
                lk = self.key_locks[deployment] = Lock()
            return lk

    def record(self, result: PassResult) -> PassResult:
        """Store the outcome of a pass and fill in the consecutive failure count.

        Incomplete rollouts are expected waiting, not failures, so they leave the
        count untouched.
        """
        with self.lock:
            if result.outcome == OUTCOME_OK:
                self.fail_counts[result.deployment] = 0
            elif result.outcome in {OUTCOME_CONFLICT, OUTCOME_ERROR}:
                self.fail_counts[result.deployment] = self.fail_counts.get(result.deployment, 0) + 1
            result.failures = self.fail_counts.get(result.deployment, 0)
            self.results[result.deployment] = result
            return result

    def get_result(self, deployment: str) -> PassResult | None:
        with self.lock:
            return self.results.get(deployment)

    def list_results(self) -> list[PassResult]:
        with self.lock:
            return list(self.results.values())

    def forget(self, deployment: str) -> None:
        with self.lock:
            self.results.pop(deployment, None)
            self.fail_counts.pop(deployment, None)
            self.key_locks.pop(deployment, None)
