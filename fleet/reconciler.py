from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from threading import Thread

from .db import Store
from .errors import AggregateError, ConflictError, RolloutIncomplete, StoreError
from .rollouts import RolloutManager
from .runtime import OUTCOME_CONFLICT, OUTCOME_ERROR, OUTCOME_INCOMPLETE, OUTCOME_OK, PassResult, RuntimeState
from .settings import settings


class Reconciler:
    """Continuously reconciles every deployment's replica sets with its desired state.

    Passes for one deployment never overlap; different deployments run in
    parallel on a small worker pool. A failed pass is simply picked up again on
    the next tick with freshly read state.
    """

    def __init__(
        self,
        store: Store,
        runtime: RuntimeState,
        workers: int | None = None,
        manager: RolloutManager | None = None,
    ):
        self.store = store
        self.runtime = runtime
        self.workers = max(1, int(workers or settings.workers))
        self.manager = manager or RolloutManager(store)
        self._stop = False
        self._thr: Thread | None = None

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop = False
        self._thr = Thread(target=self._loop, daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop = True

    def _loop(self) -> None:
        self.store.log_event("INFO", "Reconciler started")
        while not self._stop:
            try:
                self.tick()
            except Exception as e:
                self.store.log_event("ERROR", f"Reconciler tick failed: {type(e).__name__}: {e}")
            time.sleep(max(1, settings.poll_interval_s))

    def tick(self) -> list[PassResult]:
        names = [d.name for d in self.store.list_deployments()]
        if not names:
            return []
        with ThreadPoolExecutor(max_workers=min(self.workers, len(names))) as pool:
            return list(pool.map(self.reconcile, names))

    def reconcile(self, name: str) -> PassResult:
        """Run exactly one pass for `name` and record how it ended."""
        with self.runtime.key_lock(name):
            prev = self.runtime.get_result(name)
            result = self.runtime.record(self._run_pass(name))
            if prev is None or (prev.outcome, prev.message) != (result.outcome, result.message):
                self._log_result(result)
            return result

    def _run_pass(self, name: str) -> PassResult:
        try:
            deployment = self.store.find_deployment(name)
            if deployment is None:
                return PassResult(name, OUTCOME_OK, "deployment no longer exists")
            existing = self.store.list_replica_sets(name)
            self.manager.rollout(deployment, existing)
        except AggregateError as e:
            if e.incomplete_only:
                return PassResult(name, OUTCOME_INCOMPLETE, str(e), requeue=True)
            if all(isinstance(x, (ConflictError, RolloutIncomplete)) for x in e.errors):
                return PassResult(name, OUTCOME_CONFLICT, str(e), requeue=True)
            return PassResult(name, OUTCOME_ERROR, str(e), requeue=True)
        except ConflictError as e:
            return PassResult(name, OUTCOME_CONFLICT, str(e), requeue=True)
        except StoreError as e:
            return PassResult(name, OUTCOME_ERROR, f"{type(e).__name__}: {e}", requeue=True)
        return PassResult(name, OUTCOME_OK)

    def _log_result(self, result: PassResult) -> None:
        if result.outcome == OUTCOME_OK:
            self.store.log_event("INFO", "Rollout pass completed", deployment=result.deployment)
        elif result.outcome == OUTCOME_INCOMPLETE:
            self.store.log_event("INFO", f"Rollout waiting: {result.message}", deployment=result.deployment)
        elif result.outcome == OUTCOME_CONFLICT:
            self.store.log_event("WARN", f"Conflicting write, will retry: {result.message}", deployment=result.deployment)
        else:
            self.store.log_event("ERROR", f"Rollout pass failed: {result.message}", deployment=result.deployment)
