from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .models import IN_PLACE_UPGRADE_ANNOTATION, Deployment, ReplicaSet
from .scaler import scale_in_place


class InPlaceState(str, Enum):
    STABLE = "Stable"
    AWAITING_UPGRADE = "AwaitingUpgrade"
    UPGRADE_JUST_COMPLETED = "UpgradeJustCompleted"


@dataclass
class InPlaceDecision:
    state: InPlaceState
    intents: dict[str, int] = field(default_factory=dict)
    annotation_changed: bool = False

    @property
    def incomplete(self) -> bool:
        return self.state is InPlaceState.AWAITING_UPGRADE


def should_create(existing: list[ReplicaSet]) -> bool:
    """With no sets at all there is nothing to upgrade in place, so bootstrap one."""
    return not existing


def observe(deployment: Deployment, new_set: ReplicaSet | None) -> InPlaceState:
    """Where the handshake stands. The state lives in the annotation, not in memory."""
    if new_set is None:
        return InPlaceState.AWAITING_UPGRADE
    if deployment.in_place_upgrade_pending:
        return InPlaceState.UPGRADE_JUST_COMPLETED
    return InPlaceState.STABLE


def coordinate(deployment: Deployment, new_set: ReplicaSet | None, old_sets: list[ReplicaSet]) -> InPlaceDecision:
    """Advance the in-place handshake by one pass.

    Sets or clears the pending annotation on `deployment` and returns the
    scale intents to apply. While awaiting the upgrade nothing is scaled.
    """
    state = observe(deployment, new_set)

    if new_set is None:
        changed = not deployment.in_place_upgrade_pending
        deployment.annotations[IN_PLACE_UPGRADE_ANNOTATION] = "true"
        return InPlaceDecision(state=state, annotation_changed=changed)

    changed = False
    if state is InPlaceState.UPGRADE_JUST_COMPLETED:
        deployment.annotations.pop(IN_PLACE_UPGRADE_ANNOTATION, None)
        changed = True

    return InPlaceDecision(
        state=state,
        intents=scale_in_place(new_set, old_sets, deployment.replicas),
        annotation_changed=changed,
    )
