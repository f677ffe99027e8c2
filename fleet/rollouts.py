from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from .alerts import send_email
from .cleanup import cleanup
from .db import Store
from .errors import AggregateError, InvariantViolation, RolloutIncomplete, StoreError, aggregate
from .inplace import InPlaceState, coordinate, should_create
from .models import IN_PLACE, IN_PLACE_UPGRADE_ANNOTATION, REVISION_ANNOTATION, ROLLING_UPDATE, Deployment, ReplicaSet
from .resolver import matching_replica_sets, max_revision, resolve
from .scaler import scale
from .settings import settings
from .status import is_complete, sync_status


@dataclass
class _Pass:
    """What one reconciliation pass knows about a deployment's replica sets."""

    deployment: Deployment
    existing: list[ReplicaSet]
    annotations_before: dict[str, str]
    new_set: ReplicaSet | None = None
    old_sets: list[ReplicaSet] = field(default_factory=list)
    resolved: bool = False
    violations: list[InvariantViolation] = field(default_factory=list)

    @property
    def all_sets(self) -> list[ReplicaSet]:
        if not self.resolved:
            return list(self.existing)
        sets = list(self.old_sets)
        if self.new_set is not None:
            sets.append(self.new_set)
        return sets

    def find(self, name: str) -> ReplicaSet:
        for rs in self.all_sets:
            if rs.name == name:
                return rs
        raise KeyError(name)


class RolloutManager:
    """Moves a deployment's replica sets one step toward its desired state per call.

    Entry points take the deployment and its full current set list, write
    through the store, and raise AggregateError when the pass should be
    requeued. Store conflicts are never retried here.
    """

    def __init__(self, store: Store, alerts_enabled: bool | None = None):
        self.store = store
        self.alerts_enabled = settings.enable_email if alerts_enabled is None else alerts_enabled

    def rollout(self, deployment: Deployment, existing: list[ReplicaSet]) -> None:
        if deployment.paused:
            return self.rollout_paused(deployment, existing)
        if deployment.strategy == IN_PLACE:
            return self.rollout_in_place(deployment, existing)
        if deployment.strategy == ROLLING_UPDATE:
            return self.rollout_rolling_update(deployment, existing)
        raise AggregateError([InvariantViolation(f"unknown rollout strategy '{deployment.strategy}'")])

    def rollout_rolling_update(self, deployment: Deployment, existing: list[ReplicaSet]) -> None:
        p = self._begin(deployment, existing)
        with self._syncing_status(p):
            self._resolve(p, create_if_missing=True)
            self._drop_in_place_annotation(p)
            intents = scale(p.new_set, p.old_sets, deployment.replicas, deployment.max_surge, deployment.max_unavailable)
            self._apply(p, intents)
        self._cleanup_if_complete(p)

    def rollout_in_place(self, deployment: Deployment, existing: list[ReplicaSet]) -> None:
        # Never create a set for a changed template: that would be a rolling
        # update. The external upgrader rewrites an existing set's template
        # when it is done, and that is how completion shows up here.
        p = self._begin(deployment, existing)
        with self._syncing_status(p):
            self._resolve(p, create_if_missing=should_create(existing))
            decision = coordinate(deployment, p.new_set, p.old_sets)

            if decision.state is InPlaceState.AWAITING_UPGRADE:
                if decision.annotation_changed:
                    self.store.log_event(
                        "INFO", "Template changed under InPlace strategy; waiting for external upgrade", deployment=deployment.name
                    )
                raise RolloutIncomplete(
                    "no replica set matches the current template; the in-place upgrade has not finished yet"
                )
            if decision.state is InPlaceState.UPGRADE_JUST_COMPLETED:
                self.store.log_event(
                    "INFO", f"In-place upgrade completed on {p.new_set.name}", deployment=deployment.name
                )
            self._apply(p, decision.intents)
        self._cleanup_if_complete(p)

    def rollout_paused(self, deployment: Deployment, existing: list[ReplicaSet]) -> None:
        """Report status only. Nothing is scaled, created or deleted."""
        p = self._begin(deployment, existing)
        with self._syncing_status(p):
            self._resolve(p, create_if_missing=False)

    # ---- steps ----

    def _begin(self, deployment: Deployment, existing: list[ReplicaSet]) -> _Pass:
        return _Pass(deployment=deployment, existing=list(existing), annotations_before=dict(deployment.annotations))

    @contextmanager
    def _syncing_status(self, p: _Pass) -> Iterator[_Pass]:
        """Run a pass body, then always sync status and raise everything that went wrong together."""
        errors: list[BaseException] = []
        try:
            yield p
        except Exception as e:
            errors.append(e)
        errors.extend(p.violations)

        try:
            sync_status(self.store, p.all_sets, p.new_set, p.deployment, p.annotations_before)
        except Exception as e:
            errors.append(e)

        err = aggregate(errors)
        if err is None:
            return
        for e in err.errors:
            if isinstance(e, InvariantViolation):
                self._report_violation(p.deployment, e)
        raise err

    def _resolve(self, p: _Pass, create_if_missing: bool) -> None:
        d = p.deployment
        matches = matching_replica_sets(d.template, p.existing)
        if len(matches) > 1:
            names = ", ".join(rs.name for rs in matches)
            msg = f"{len(matches)} replica sets match the current template ({names}); using {matches[0].name}"
            if create_if_missing:
                self.store.log_event("WARN", msg, deployment=d.name)
            else:
                p.violations.append(InvariantViolation(msg))

        new_set, old_sets = resolve(d, p.existing, create_if_missing)
        p.old_sets = old_sets
        p.resolved = True

        if new_set is not None and all(new_set is not rs for rs in p.existing):
            new_set = self.store.create_replica_set(new_set)
            self.store.log_event(
                "INFO", f"Created replica set {new_set.name} (revision {new_set.revision})",
                deployment=d.name, replica_set=new_set.name,
            )
        p.new_set = new_set
        if new_set is None:
            return

        revision = max_revision(old_sets) + 1
        if new_set.revision < revision:
            new_set.revision = revision
            self.store.update_replica_set(new_set)
            self.store.log_event(
                "INFO", f"Replica set {new_set.name} is now revision {revision}",
                deployment=d.name, replica_set=new_set.name,
            )
        d.annotations[REVISION_ANNOTATION] = str(new_set.revision)

    def _drop_in_place_annotation(self, p: _Pass) -> None:
        # Left over from an InPlace rollout; the rolling update supersedes it.
        d = p.deployment
        if p.new_set is None or not d.in_place_upgrade_pending:
            return
        d.annotations.pop(IN_PLACE_UPGRADE_ANNOTATION, None)
        self.store.log_event(
            "INFO", "Strategy is RollingUpdate; dropped pending in-place upgrade", deployment=d.name
        )

    def _apply(self, p: _Pass, intents: dict[str, int]) -> None:
        # New set first: scale-ups land before scale-downs.
        order = sorted(intents, key=lambda name: p.new_set is None or name != p.new_set.name)
        for name in order:
            rs = p.find(name)
            before = rs.replicas
            rs.replicas = intents[name]
            self.store.update_replica_set(rs)
            self.store.log_event(
                "INFO", f"Scaled replica set {name} from {before} to {rs.replicas}",
                deployment=p.deployment.name, replica_set=name,
            )

    def _cleanup_if_complete(self, p: _Pass) -> None:
        if not is_complete(p.deployment):
            return
        try:
            for name in cleanup(p.old_sets, p.deployment.revision_history_limit):
                rs = p.find(name)
                self.store.delete_replica_set(name, rs.resource_version)
                p.old_sets = [s for s in p.old_sets if s.name != name]
                self.store.log_event(
                    "INFO", f"Deleted old replica set {name} (revision {rs.revision})",
                    deployment=p.deployment.name, replica_set=name,
                )
        except StoreError as e:
            raise AggregateError([e]) from e

    def _report_violation(self, deployment: Deployment, e: InvariantViolation) -> None:
        self.store.log_event("ERROR", f"Invariant violation: {e}", deployment=deployment.name)
        if self.alerts_enabled:
            send_email(
                f"Fleet reconciler: invariant violation on {deployment.name}",
                f"Deployment: {deployment.name}\nStrategy: {deployment.strategy}\nDetail: {e}",
            )
