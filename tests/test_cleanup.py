from fleet.cleanup import cleanup
from helpers import make_rs


def _old(name, day, replicas=0, observed=0):
    rs = make_rs(name, {"n": name}, replicas=replicas, created_at=f"2024-01-{day:02d}T00:00:00.000000Z")
    rs.status_replicas = observed
    return rs


def test_nothing_to_do_within_limit():
    assert cleanup([_old("a", 1), _old("b", 2)], 2) == []


def test_oldest_idle_sets_go_first():
    sets = [_old("c", 3), _old("a", 1), _old("b", 2), _old("d", 4)]
    assert cleanup(sets, 2) == ["a", "b"]


def test_sets_with_replicas_are_never_proposed():
    sets = [
        _old("a", 1, replicas=1),
        _old("b", 2, observed=1),
        _old("c", 3),
        _old("d", 4),
    ]
    # Two over the limit, but the two oldest still carry replicas.
    assert cleanup(sets, 2) == []
    assert cleanup(sets, 0) == ["c", "d"]


def test_negative_limit_means_keep_none():
    assert cleanup([_old("a", 1)], -3) == ["a"]


def test_busy_set_in_the_window_is_not_replaced_by_a_younger_one():
    sets = [_old("a", 1), _old("b", 2, replicas=1), _old("c", 3), _old("d", 4)]
    # Window is the two oldest; c is idle but younger, so it stays.
    assert cleanup(sets, 2) == ["a"]
