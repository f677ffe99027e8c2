import pytest

from fleet.db import Store
from fleet.errors import ConflictError, NotFoundError
from helpers import V1, V2, make_deployment, make_rs


def test_apply_bumps_generation_only_on_spec_change(store):
    d = store.apply_deployment(make_deployment(template=V1))
    assert d.generation == 1

    same = store.apply_deployment(make_deployment(template=V1))
    assert same.generation == 1
    assert same.resource_version == d.resource_version

    changed = store.apply_deployment(make_deployment(template=V2))
    assert changed.generation == 2
    assert changed.template == V2


def test_apply_keeps_annotations_and_status(store):
    d = store.apply_deployment(make_deployment(template=V1))
    d.annotations["in-place-upgrade-pending"] = "true"
    store.update_deployment(d)

    again = store.apply_deployment(make_deployment(template=V2))
    assert again.annotations == {"in-place-upgrade-pending": "true"}


def test_budgets_round_trip_as_int_or_percent(store):
    store.apply_deployment(make_deployment(max_surge="25%", max_unavailable=0))
    d = store.get_deployment("web")
    assert d.max_surge == "25%"
    assert d.max_unavailable == 0


def test_update_deployment_with_stale_version_conflicts(store):
    d = store.apply_deployment(make_deployment())
    other = store.get_deployment("web")
    other.annotations["x"] = "1"
    store.update_deployment(other)

    d.annotations["y"] = "2"
    with pytest.raises(ConflictError):
        store.update_deployment(d)
    assert store.get_deployment("web").annotations == {"x": "1"}


def test_replica_set_versioning(store):
    store.apply_deployment(make_deployment())
    rs = store.create_replica_set(make_rs("web-a", V1, replicas=2))
    with pytest.raises(ConflictError):
        store.create_replica_set(make_rs("web-a", V1))

    stale = store.get_replica_set("web-a")
    store.report_replica_set_status("web-a", 2, 2, 2)

    stale.replicas = 0
    with pytest.raises(ConflictError):
        store.update_replica_set(stale)
    with pytest.raises(ConflictError):
        store.delete_replica_set("web-a", stale.resource_version)

    fresh = store.get_replica_set("web-a")
    assert fresh.replicas == 2
    assert fresh.available_replicas == 2
    fresh.replicas = 3
    store.update_replica_set(fresh)
    assert store.get_replica_set("web-a").resource_version == rs.resource_version + 2

    store.delete_replica_set("web-a", fresh.resource_version)
    with pytest.raises(NotFoundError):
        store.get_replica_set("web-a")


def test_set_template_checks_version_when_given(store):
    store.apply_deployment(make_deployment())
    rs = store.create_replica_set(make_rs("web-a", V1))
    with pytest.raises(ConflictError):
        store.set_replica_set_template("web-a", V2, resource_version=rs.resource_version + 5)
    with pytest.raises(NotFoundError):
        store.set_replica_set_template("missing", V2)
    assert store.set_replica_set_template("web-a", V2, resource_version=rs.resource_version).template == V2


def test_scale_missing_deployment(store):
    with pytest.raises(NotFoundError):
        store.scale_deployment("nope", 3)


def test_events_filter_by_deployment(store):
    store.log_event("info", "hello", deployment="web")
    store.log_event("warn", "other", deployment="api")
    events = store.latest_events(deployment="web")
    assert [(e["level"], e["message"]) for e in events] == [("INFO", "hello")]


def test_directory_path_gets_a_db_file(tmp_path):
    s = Store(str(tmp_path))
    assert s.path == str(tmp_path / "fleet.db")
