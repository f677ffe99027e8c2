from __future__ import annotations

import secrets
from dataclasses import asdict
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from fleet.api_models import (
    ApplyDeploymentRequest,
    ReplicaSetStatusRequest,
    ReplicaSetTemplateRequest,
    ScaleRequest,
)
from fleet.db import Store
from fleet.errors import ConflictError, InvariantViolation, NotFoundError
from fleet.models import Deployment
from fleet.reconciler import Reconciler
from fleet.runtime import RuntimeState
from fleet.scaler import resolve_fenceposts
from fleet.settings import settings

app = FastAPI(title="Fleet Rollout Reconciler")
security = HTTPBasic()

# Tests turn this off to keep the background loop out of the way.
AUTOSTART_RECONCILER = True

store = Store(settings.db_path)
runtime = RuntimeState()
reconciler = Reconciler(store, runtime)


def configure(db_path: str) -> None:
    """Point the app at another database (and a fresh reconciler)."""
    global store, runtime, reconciler
    reconciler.stop()
    store = Store(db_path)
    runtime = RuntimeState()
    reconciler = Reconciler(store, runtime)


@app.on_event("startup")
def startup() -> None:
    store.init_db()
    if AUTOSTART_RECONCILER:
        reconciler.start()


@app.on_event("shutdown")
def shutdown() -> None:
    reconciler.stop()


def get_current_username(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    ok_user = secrets.compare_digest(credentials.username, settings.api_user)
    ok_pass = secrets.compare_digest(credentials.password, settings.api_password)
    if not (ok_user and ok_pass):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


def _deployment_view(d: Deployment) -> dict[str, Any]:
    out = asdict(d)
    last = runtime.get_result(d.name)
    out["last_pass"] = asdict(last) if last else None
    return out


def _get_deployment(name: str) -> Deployment:
    try:
        return store.get_deployment(name)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/deployments")
def list_deployments() -> list[dict[str, Any]]:
    return [_deployment_view(d) for d in store.list_deployments()]


@app.get("/deployments/{name}")
def get_deployment(name: str) -> dict[str, Any]:
    d = _get_deployment(name)
    out = _deployment_view(d)
    out["replica_sets"] = [asdict(rs) for rs in store.list_replica_sets(name)]
    return out


@app.post("/deployments")
def apply_deployment(req: ApplyDeploymentRequest, username: str = Depends(get_current_username)) -> dict[str, Any]:
    d = Deployment(
        name=req.name,
        replicas=req.replicas,
        template=req.template,
        strategy=req.strategy,
        max_surge=req.max_surge if req.max_surge is not None else settings.default_max_surge,
        max_unavailable=req.max_unavailable if req.max_unavailable is not None else settings.default_max_unavailable,
        revision_history_limit=(
            req.revision_history_limit if req.revision_history_limit is not None else settings.revision_history_limit
        ),
        paused=req.paused,
    )
    try:
        resolve_fenceposts(d.max_surge, d.max_unavailable, d.replicas)
    except InvariantViolation as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    d = store.apply_deployment(d)
    store.log_event("INFO", f"Desired state applied by {username} (generation {d.generation})", deployment=d.name)
    return _deployment_view(d)


@app.put("/deployments/{name}/scale")
def scale_deployment(name: str, req: ScaleRequest, username: str = Depends(get_current_username)) -> dict[str, Any]:
    try:
        d = store.scale_deployment(name, req.replicas)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    store.log_event("INFO", f"Scaled to {req.replicas} replicas by {username}", deployment=name)
    return _deployment_view(d)


@app.delete("/deployments/{name}")
def delete_deployment(name: str, username: str = Depends(get_current_username)) -> dict[str, Any]:
    _get_deployment(name)
    store.delete_deployment(name)
    runtime.forget(name)
    store.log_event("INFO", f"Deleted by {username}", deployment=name)
    return {"deleted": name}


@app.post("/deployments/{name}/reconcile")
def reconcile_deployment(name: str, username: str = Depends(get_current_username)) -> dict[str, Any]:
    _get_deployment(name)
    return asdict(reconciler.reconcile(name))


@app.put("/replicasets/{name}/status")
def report_replica_set_status(
    name: str, req: ReplicaSetStatusRequest, username: str = Depends(get_current_username)
) -> dict[str, Any]:
    try:
        rs = store.report_replica_set_status(
            name, req.replicas, req.ready_replicas, req.available_replicas, req.failure_message
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return asdict(rs)


@app.put("/replicasets/{name}/template")
def set_replica_set_template(
    name: str, req: ReplicaSetTemplateRequest, username: str = Depends(get_current_username)
) -> dict[str, Any]:
    try:
        rs = store.set_replica_set_template(name, req.template, req.resource_version)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    store.log_event("INFO", f"Template rewritten in place by {username}", deployment=rs.deployment, replica_set=name)
    return asdict(rs)


@app.get("/events")
def events(limit: int = 100, deployment: str | None = None) -> list[dict[str, Any]]:
    return store.latest_events(limit=max(1, min(1000, limit)), deployment=deployment)
