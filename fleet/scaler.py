from __future__ import annotations

import math
import re

from .errors import InvariantViolation
from .models import ReplicaSet


_PERCENT_RE = re.compile(r"^\s*(\d+)\s*%\s*$")


def resolve_budget(value: int | str, total: int, round_up: bool) -> int:
    """Turn an int or an "NN%" string into a replica count relative to `total`."""
    if isinstance(value, bool):
        raise InvariantViolation(f"invalid budget {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise InvariantViolation(f"budget must not be negative, got {value}")
        return value
    if isinstance(value, str):
        m = _PERCENT_RE.match(value)
        if m:
            scaled = int(m.group(1)) * total / 100.0
            return math.ceil(scaled) if round_up else math.floor(scaled)
        if value.strip().isdigit():
            return int(value.strip())
    raise InvariantViolation(f"invalid budget {value!r}; expected a non-negative int or 'NN%'")


def resolve_fenceposts(max_surge: int | str, max_unavailable: int | str, desired: int) -> tuple[int, int]:
    """Return (surge, unavailable) as absolute replica counts.

    Surge rounds up and unavailable rounds down. Both being zero would block
    the rollout forever, so unavailable is raised to 1 in that case.
    """
    surge = resolve_budget(max_surge, desired, round_up=True)
    unavailable = resolve_budget(max_unavailable, desired, round_up=False)
    if surge == 0 and unavailable == 0:
        unavailable = 1
    return surge, unavailable


def _check(new_set: ReplicaSet | None, old_sets: list[ReplicaSet], desired_total: int) -> None:
    if desired_total < 0:
        raise InvariantViolation(f"desired replicas must not be negative, got {desired_total}")
    for rs in ([new_set] if new_set else []) + old_sets:
        if rs.replicas < 0:
            raise InvariantViolation(f"replica set '{rs.name}' has negative replicas ({rs.replicas})")


def scale(
    new_set: ReplicaSet | None,
    old_sets: list[ReplicaSet],
    desired_total: int,
    max_surge: int | str,
    max_unavailable: int | str,
) -> dict[str, int]:
    """Compute one rolling-update step.

    Returns {replica set name: target desired replicas} for every set whose
    count should change. Nothing is written; old sets only ever go down.
    `old_sets` is expected oldest first.
    """
    _check(new_set, old_sets, desired_total)
    surge, unavailable = resolve_fenceposts(max_surge, max_unavailable, desired_total)

    targets: dict[str, int] = {rs.name: rs.replicas for rs in old_sets}
    if new_set is not None:
        targets[new_set.name] = _scale_new(new_set, old_sets, desired_total, surge)

    for name, count in _scale_old(new_set, targets, old_sets, desired_total, unavailable).items():
        targets[name] = count

    current = {rs.name: rs.replicas for rs in old_sets}
    if new_set is not None:
        current[new_set.name] = new_set.replicas
    return {name: count for name, count in targets.items() if count != current[name]}


def _scale_new(new_set: ReplicaSet, old_sets: list[ReplicaSet], desired: int, surge: int) -> int:
    if new_set.replicas == desired:
        return desired
    if new_set.replicas > desired:
        # Deployment was scaled down mid-rollout.
        return desired

    max_total = desired + surge
    current_total = new_set.replicas + sum(rs.replicas for rs in old_sets)
    if current_total >= max_total:
        return new_set.replicas
    scale_up = min(max_total - current_total, desired - new_set.replicas)
    return new_set.replicas + scale_up


def _scale_old(
    new_set: ReplicaSet | None,
    targets: dict[str, int],
    old_sets: list[ReplicaSet],
    desired: int,
    unavailable: int,
) -> dict[str, int]:
    if sum(rs.replicas for rs in old_sets) == 0:
        return {}

    new_replicas = targets[new_set.name] if new_set is not None else 0
    new_available = min(new_set.available_replicas, new_replicas) if new_set is not None else 0
    all_replicas = sum(targets.values())
    min_available = desired - unavailable

    # New replicas that are not available yet count against the budget.
    new_unavailable = max(0, new_replicas - new_available)
    max_scaled_down = all_replicas - min_available - new_unavailable
    if max_scaled_down <= 0:
        return {}

    out: dict[str, int] = {}

    # Unhealthy old replicas go first; removing them costs no availability.
    cleaned = 0
    for rs in old_sets:
        if cleaned >= max_scaled_down:
            break
        if rs.replicas == 0:
            continue
        unhealthy = rs.replicas - min(rs.available_replicas, rs.replicas)
        if unhealthy <= 0:
            continue
        drop = min(unhealthy, max_scaled_down - cleaned)
        out[rs.name] = rs.replicas - drop
        cleaned += drop

    # Then available old replicas, as far as the unavailability budget allows.
    available_total = new_available + sum(min(rs.available_replicas, out.get(rs.name, rs.replicas)) for rs in old_sets)
    if available_total <= min_available:
        return out
    to_scale_down = min(available_total - min_available, max_scaled_down - cleaned)
    scaled = 0
    for rs in old_sets:
        if scaled >= to_scale_down:
            break
        current = out.get(rs.name, rs.replicas)
        if current == 0:
            continue
        drop = min(current, to_scale_down - scaled)
        out[rs.name] = current - drop
        scaled += drop
    return out


def scale_in_place(new_set: ReplicaSet, old_sets: list[ReplicaSet], desired_total: int) -> dict[str, int]:
    """New set straight to the desired count, every old set to zero.

    No budgets: the disruptive work was already done by the in-place upgrader.
    """
    _check(new_set, old_sets, desired_total)
    intents: dict[str, int] = {}
    if new_set.replicas != desired_total:
        intents[new_set.name] = desired_total
    for rs in old_sets:
        if rs.replicas != 0:
            intents[rs.name] = 0
    return intents
