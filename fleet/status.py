from __future__ import annotations

from .db import Store
from .models import (
    CONDITION_AVAILABLE,
    CONDITION_PROGRESSING,
    CONDITION_REPLICA_FAILURE,
    IN_PLACE,
    Condition,
    Deployment,
    DeploymentStatus,
    ReplicaSet,
)
from .scaler import resolve_fenceposts


def set_condition(status: DeploymentStatus, cond: Condition) -> None:
    """Insert or replace a condition, keeping the transition time if the status did not flip."""
    existing = status.get_condition(cond.type)
    if existing is not None and existing.status == cond.status:
        cond.last_transition_time = existing.last_transition_time
    for i, c in enumerate(status.conditions):
        if c.type == cond.type:
            status.conditions[i] = cond
            return
    status.conditions.append(cond)


def remove_condition(status: DeploymentStatus, cond_type: str) -> None:
    status.conditions = [c for c in status.conditions if c.type != cond_type]


def _max_unavailable(deployment: Deployment) -> int:
    if deployment.strategy == IN_PLACE:
        return 0
    _, unavailable = resolve_fenceposts(deployment.max_surge, deployment.max_unavailable, deployment.replicas)
    return unavailable


def _complete(deployment: Deployment, status: DeploymentStatus) -> bool:
    return (
        status.updated_replicas == deployment.replicas
        and status.replicas == deployment.replicas
        and status.available_replicas == deployment.replicas
        and status.observed_generation >= deployment.generation
        and not deployment.in_place_upgrade_pending
    )


def is_complete(deployment: Deployment) -> bool:
    """True once the synced status shows the whole fleet on the current template and available."""
    return _complete(deployment, deployment.status)


def calculate_status(all_sets: list[ReplicaSet], new_set: ReplicaSet | None, deployment: Deployment) -> DeploymentStatus:
    """Aggregate the sets' reported counts into a fresh status for `deployment`.

    Pure: `deployment` is not modified.
    """
    sets = [rs for rs in all_sets if rs is not None]
    available = sum(rs.available_replicas for rs in sets)
    status = DeploymentStatus(
        observed_generation=deployment.generation,
        replicas=sum(rs.status_replicas for rs in sets),
        updated_replicas=new_set.status_replicas if new_set is not None else 0,
        ready_replicas=sum(rs.ready_replicas for rs in sets),
        available_replicas=available,
        unavailable_replicas=max(0, deployment.replicas - available),
        conditions=[
            Condition(c.type, c.status, c.reason, c.message, c.last_transition_time)
            for c in deployment.status.conditions
        ],
    )

    if available >= deployment.replicas - _max_unavailable(deployment):
        set_condition(status, Condition(CONDITION_AVAILABLE, "True", "MinimumReplicasAvailable",
                                        "Deployment has minimum availability."))
    else:
        set_condition(status, Condition(CONDITION_AVAILABLE, "False", "MinimumReplicasUnavailable",
                                        "Deployment does not have minimum availability."))

    if deployment.paused:
        progressing = Condition(CONDITION_PROGRESSING, "Unknown", "DeploymentPaused", "Deployment is paused.")
    elif new_set is None and deployment.in_place_upgrade_pending:
        progressing = Condition(
            CONDITION_PROGRESSING,
            "False",
            "InPlaceUpgradePending",
            "Waiting for an external upgrade to bring a replica set to the current template.",
        )
    elif new_set is not None and _complete(deployment, status):
        progressing = Condition(CONDITION_PROGRESSING, "True", "NewReplicaSetAvailable",
                                f'ReplicaSet "{new_set.name}" has successfully progressed.')
    else:
        name = new_set.name if new_set is not None else "<none>"
        progressing = Condition(CONDITION_PROGRESSING, "True", "ReplicaSetUpdated",
                                f'ReplicaSet "{name}" is progressing.')
    set_condition(status, progressing)

    failures = [f"{rs.name}: {rs.failure_message}" for rs in sets if rs.failure_message]
    if failures:
        set_condition(status, Condition(CONDITION_REPLICA_FAILURE, "True", "ReplicaSetFailure", "; ".join(failures)))
    else:
        remove_condition(status, CONDITION_REPLICA_FAILURE)

    return status


def sync_status(
    store: Store,
    all_sets: list[ReplicaSet],
    new_set: ReplicaSet | None,
    deployment: Deployment,
    annotations_before: dict[str, str] | None = None,
) -> bool:
    """Recompute the deployment status and write it, together with annotations, if anything changed.

    Returns True when a write happened.
    """
    status = calculate_status(all_sets, new_set, deployment)
    annotations_changed = annotations_before is not None and annotations_before != deployment.annotations
    if status == deployment.status and not annotations_changed:
        return False
    deployment.status = status
    store.update_deployment(deployment)
    return True
