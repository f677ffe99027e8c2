from __future__ import annotations

import copy
from typing import Iterable

from .models import Deployment, ReplicaSet, template_hash


def matching_replica_sets(template: dict, existing: Iterable[ReplicaSet]) -> list[ReplicaSet]:
    """Sets whose template equals `template`, most recently created first."""
    h = template_hash(template)
    matches = [rs for rs in existing if rs.template_hash == h]
    return sorted(matches, key=lambda rs: rs.age_key, reverse=True)


def max_revision(sets: Iterable[ReplicaSet]) -> int:
    return max((rs.revision for rs in sets), default=0)


def new_replica_set_name(deployment: Deployment, existing: Iterable[ReplicaSet] = ()) -> str:
    """`<deployment>-<template hash>`, plus `-<revision>` if a set already holds that name.

    In-place upgrades rewrite a set's template without renaming it, so the
    plain name can belong to a set with another template. The result only
    depends on `existing`, so two creators working from the same view still
    collide in the store.
    """
    existing = list(existing)
    name = f"{deployment.name}-{deployment.template_hash[:10]}"
    if any(rs.name == name for rs in existing):
        name = f"{name}-{max_revision(existing) + 1}"
    return name


def resolve(
    deployment: Deployment,
    existing: list[ReplicaSet],
    create_if_missing: bool,
) -> tuple[ReplicaSet | None, list[ReplicaSet]]:
    """Split `existing` into the new set and the old sets for `deployment`.

    The new set is the one whose template equals the deployment's template. If
    several match, the most recently created wins and the others are old. Old
    sets are returned oldest first.

    With no match and create_if_missing, an unsaved set (zero replicas, next
    revision) is synthesized and returned as the new set; it still has to be
    created in the store. Without create_if_missing, (None, all sets) is returned.
    """
    matches = matching_replica_sets(deployment.template, existing)
    new_set = matches[0] if matches else None

    old_sets = sorted((rs for rs in existing if rs is not new_set), key=lambda rs: rs.age_key)

    if new_set is None and create_if_missing:
        new_set = ReplicaSet(
            name=new_replica_set_name(deployment, existing),
            deployment=deployment.name,
            template=copy.deepcopy(deployment.template),
            revision=max_revision(existing) + 1,
            replicas=0,
        )
    return new_set, old_sets
