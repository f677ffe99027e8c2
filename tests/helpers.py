from fleet.models import ROLLING_UPDATE, Deployment, ReplicaSet

V1 = {"image": "node:v1.28.0", "cluster": "my-cluster"}
V2 = {"image": "node:v1.29.0", "cluster": "my-cluster"}


def make_rs(name, template, replicas=0, available=None, revision=1, created_at=None, deployment="web"):
    rs = ReplicaSet(
        name=name,
        deployment=deployment,
        template=dict(template),
        revision=revision,
        replicas=replicas,
        status_replicas=replicas,
        ready_replicas=replicas if available is None else available,
        available_replicas=replicas if available is None else available,
    )
    if created_at is not None:
        rs.created_at = created_at
    return rs


def make_deployment(name="web", replicas=4, template=V2, strategy=ROLLING_UPDATE, max_surge=1, max_unavailable=0, **kw):
    return Deployment(
        name=name,
        replicas=replicas,
        template=dict(template),
        strategy=strategy,
        max_surge=max_surge,
        max_unavailable=max_unavailable,
        **kw,
    )


def seed(store, deployment, *sets):
    """Persist a deployment and its sets, reporting each set's status as given."""
    store.apply_deployment(deployment)
    for rs in sets:
        store.create_replica_set(rs)
        store.report_replica_set_status(rs.name, rs.status_replicas, rs.ready_replicas, rs.available_replicas)
    return store.get_deployment(deployment.name)


def report_all_ready(store, deployment_name):
    """Pretend every desired replica came up and became available."""
    for rs in store.list_replica_sets(deployment_name):
        store.report_replica_set_status(rs.name, rs.replicas, rs.replicas, rs.replicas)
