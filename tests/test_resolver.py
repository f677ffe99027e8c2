import pytest

from fleet.errors import ConflictError
from fleet.resolver import matching_replica_sets, max_revision, new_replica_set_name, resolve
from helpers import V1, V2, make_deployment, make_rs


def test_match_is_new_and_others_are_old_oldest_first():
    d = make_deployment(template=V2)
    a = make_rs("web-a", V1, replicas=2, revision=1, created_at="2024-01-01T00:00:00.000000Z")
    b = make_rs("web-b", {"image": "node:v1.27.0"}, replicas=1, revision=2, created_at="2024-01-02T00:00:00.000000Z")
    c = make_rs("web-c", V2, replicas=1, revision=3, created_at="2024-01-03T00:00:00.000000Z")

    new_set, old_sets = resolve(d, [c, b, a], create_if_missing=False)

    assert new_set is c
    assert [rs.name for rs in old_sets] == ["web-a", "web-b"]


def test_template_equality_ignores_key_order():
    d = make_deployment(template={"cluster": "my-cluster", "image": "node:v1.29.0"})
    rs = make_rs("web-a", V2)
    new_set, old_sets = resolve(d, [rs], create_if_missing=False)
    assert new_set is rs
    assert old_sets == []


def test_no_match_without_create_returns_none():
    d = make_deployment(template=V2)
    old = make_rs("web-a", V1, replicas=2)
    new_set, old_sets = resolve(d, [old], create_if_missing=False)
    assert new_set is None
    assert old_sets == [old]


def test_no_match_with_create_synthesizes_next_revision():
    d = make_deployment(template=V2)
    a = make_rs("web-a", V1, replicas=2, revision=3)
    b = make_rs("web-b", {"image": "x"}, replicas=0, revision=5)

    new_set, old_sets = resolve(d, [a, b], create_if_missing=True)

    assert new_set is not None
    assert new_set.name == new_replica_set_name(d)
    assert new_set.revision == 6
    assert new_set.replicas == 0
    assert new_set.template == V2
    assert new_set.deployment == "web"
    assert len(old_sets) == 2

    # The synthesized set owns its template copy.
    new_set.template["image"] = "changed"
    assert d.template == V2


def test_duplicate_matches_most_recent_wins():
    d = make_deployment(template=V2)
    older = make_rs("web-old-dup", V2, revision=2, created_at="2024-01-01T00:00:00.000000Z")
    newer = make_rs("web-new-dup", V2, revision=3, created_at="2024-02-01T00:00:00.000000Z")

    assert [rs.name for rs in matching_replica_sets(V2, [older, newer])] == ["web-new-dup", "web-old-dup"]
    new_set, old_sets = resolve(d, [older, newer], create_if_missing=True)
    assert new_set is newer
    assert old_sets == [older]


def test_max_revision_of_nothing_is_zero():
    assert max_revision([]) == 0


def test_no_double_new_set(store):
    d = make_deployment(template=V2)
    store.apply_deployment(d)
    store.create_replica_set(make_rs("web-a", V1, replicas=4))

    for _ in range(3):
        existing = store.list_replica_sets("web")
        new_set, _old = resolve(d, existing, create_if_missing=True)
        if all(new_set is not rs for rs in existing):
            store.create_replica_set(new_set)

    assert len(matching_replica_sets(V2, store.list_replica_sets("web"))) == 1

    # A racing creator working from a stale list is rejected by the store.
    stale_new, _ = resolve(d, [], create_if_missing=True)
    with pytest.raises(ConflictError):
        store.create_replica_set(stale_new)
    assert len(matching_replica_sets(V2, store.list_replica_sets("web"))) == 1


def test_name_taken_by_rewritten_set_gets_revision_suffix():
    d = make_deployment(template=V1)
    # An in-place upgrade left V1's name on a set that now holds V2.
    rewritten = make_rs(new_replica_set_name(d), V2, replicas=2, revision=2)

    new_set, old_sets = resolve(d, [rewritten], create_if_missing=True)

    assert new_set.name == f"{new_replica_set_name(d)}-3"
    assert new_set.revision == 3
    assert old_sets == [rewritten]
