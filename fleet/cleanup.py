from __future__ import annotations

from .models import ReplicaSet


def is_idle(rs: ReplicaSet) -> bool:
    """No desired and no observed replicas."""
    return rs.replicas == 0 and rs.status_replicas == 0


def cleanup(old_sets: list[ReplicaSet], retention_limit: int) -> list[str]:
    """Names of old sets to delete so that at most `retention_limit` old sets remain.

    Only the `excess` oldest sets are candidates. A candidate that still has
    desired or observed replicas is skipped, not replaced by a younger idle
    set, so fewer than the excess may come back.
    """
    excess = len(old_sets) - max(0, retention_limit)
    if excess <= 0:
        return []

    doomed: list[str] = []
    for rs in sorted(old_sets, key=lambda s: s.age_key)[:excess]:
        if not is_idle(rs):
            continue
        doomed.append(rs.name)
    return doomed
