from __future__ import annotations

import json
import os
import sqlite3
from typing import Any

from .errors import ConflictError, NotFoundError
from .models import Deployment, DeploymentStatus, ReplicaSet, utc_now


SCHEMA = """
CREATE TABLE IF NOT EXISTS deployments (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL UNIQUE,
  replicas INTEGER NOT NULL,
  template TEXT NOT NULL, -- json
  strategy TEXT NOT NULL, -- RollingUpdate|InPlace
  max_surge TEXT NOT NULL, -- json: int or "NN%"
  max_unavailable TEXT NOT NULL,
  revision_history_limit INTEGER NOT NULL,
  paused INTEGER NOT NULL DEFAULT 0,
  annotations TEXT NOT NULL, -- json
  status TEXT NOT NULL, -- json
  generation INTEGER NOT NULL DEFAULT 1,
  resource_version INTEGER NOT NULL DEFAULT 1,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS replica_sets (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL UNIQUE,
  deployment TEXT NOT NULL,
  template TEXT NOT NULL, -- json
  revision INTEGER NOT NULL,
  replicas INTEGER NOT NULL,
  status_replicas INTEGER NOT NULL DEFAULT 0,
  ready_replicas INTEGER NOT NULL DEFAULT 0,
  available_replicas INTEGER NOT NULL DEFAULT 0,
  failure_message TEXT,
  resource_version INTEGER NOT NULL DEFAULT 1,
  created_at TEXT NOT NULL,
  FOREIGN KEY(deployment) REFERENCES deployments(name) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS events (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts TEXT NOT NULL,
  level TEXT NOT NULL,
  deployment TEXT,
  replica_set TEXT,
  message TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
CREATE INDEX IF NOT EXISTS idx_replica_sets_deployment ON replica_sets(deployment);
"""


def _resolve_db_path(path: str) -> str:
    """Return a file path usable by sqlite.

    A bind-mounted path that did not exist is often created as a directory;
    in that case the DB file is placed inside it.
    """
    p = os.path.abspath(path)
    if os.path.isdir(p):
        p = os.path.join(p, "fleet.db")
    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)
    return p


def _deployment_from_row(row: sqlite3.Row) -> Deployment:
    return Deployment(
        name=row["name"],
        replicas=row["replicas"],
        template=json.loads(row["template"]),
        strategy=row["strategy"],
        max_surge=json.loads(row["max_surge"]),
        max_unavailable=json.loads(row["max_unavailable"]),
        revision_history_limit=row["revision_history_limit"],
        paused=bool(row["paused"]),
        annotations=json.loads(row["annotations"]),
        status=DeploymentStatus.from_dict(json.loads(row["status"])),
        generation=row["generation"],
        resource_version=row["resource_version"],
        created_at=row["created_at"],
    )


def _replica_set_from_row(row: sqlite3.Row) -> ReplicaSet:
    return ReplicaSet(
        name=row["name"],
        deployment=row["deployment"],
        template=json.loads(row["template"]),
        revision=row["revision"],
        replicas=row["replicas"],
        status_replicas=row["status_replicas"],
        ready_replicas=row["ready_replicas"],
        available_replicas=row["available_replicas"],
        failure_message=row["failure_message"],
        resource_version=row["resource_version"],
        created_at=row["created_at"],
    )


def _spec_of(d: Deployment) -> tuple[Any, ...]:
    return (
        d.replicas,
        json.dumps(d.template, sort_keys=True),
        d.strategy,
        d.max_surge,
        d.max_unavailable,
        d.revision_history_limit,
        bool(d.paused),
    )


class Store:
    """Cluster state store backed by sqlite.

    Every write of an existing object is conditional on the resource_version
    the caller read; a mismatch raises ConflictError instead of overwriting.
    Successful writes refresh the caller's object (version, generation) in place.
    """

    def __init__(self, path: str):
        self.path = _resolve_db_path(path)

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        with self.connect() as conn:
            conn.executescript(SCHEMA)

    # ---- events ----

    def log_event(
        self,
        level: str,
        message: str,
        deployment: str | None = None,
        replica_set: str | None = None,
    ) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, deployment, replica_set, message) VALUES (?, ?, ?, ?, ?)",
                (utc_now(), level.upper(), deployment, replica_set, message),
            )

    def latest_events(self, limit: int = 100, deployment: str | None = None) -> list[dict[str, Any]]:
        with self.connect() as conn:
            if deployment:
                rows = conn.execute(
                    "SELECT * FROM events WHERE deployment=? ORDER BY id DESC LIMIT ?", (deployment, limit)
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
            return [dict(r) for r in rows]

    # ---- deployments ----

    def apply_deployment(self, d: Deployment) -> Deployment:
        """Create a deployment, or replace the desired state of an existing one.

        Annotations and status stay owned by the reconciler. The generation is
        bumped only when the desired state actually changed.
        """
        current = self.find_deployment(d.name)
        with self.connect() as conn:
            if current is None:
                conn.execute(
                    """
                    INSERT INTO deployments (name, replicas, template, strategy, max_surge, max_unavailable,
                                             revision_history_limit, paused, annotations, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        d.name,
                        d.replicas,
                        json.dumps(d.template),
                        d.strategy,
                        json.dumps(d.max_surge),
                        json.dumps(d.max_unavailable),
                        d.revision_history_limit,
                        int(d.paused),
                        json.dumps(d.annotations),
                        json.dumps(d.status.to_dict()),
                        utc_now(),
                    ),
                )
            elif _spec_of(current) != _spec_of(d):
                conn.execute(
                    """
                    UPDATE deployments
                    SET replicas=?, template=?, strategy=?, max_surge=?, max_unavailable=?,
                        revision_history_limit=?, paused=?,
                        generation=generation+1, resource_version=resource_version+1
                    WHERE name=?
                    """,
                    (
                        d.replicas,
                        json.dumps(d.template),
                        d.strategy,
                        json.dumps(d.max_surge),
                        json.dumps(d.max_unavailable),
                        d.revision_history_limit,
                        int(d.paused),
                        d.name,
                    ),
                )
        return self.get_deployment(d.name)

    def scale_deployment(self, name: str, replicas: int) -> Deployment:
        with self.connect() as conn:
            cur = conn.execute(
                """
                UPDATE deployments
                SET replicas=?, generation=generation+1, resource_version=resource_version+1
                WHERE name=? AND replicas != ?
                """,
                (replicas, name, replicas),
            )
            if cur.rowcount == 0 and self.find_deployment(name) is None:
                raise NotFoundError(f"deployment '{name}' not found")
        return self.get_deployment(name)

    def find_deployment(self, name: str) -> Deployment | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM deployments WHERE name=?", (name,)).fetchone()
            return _deployment_from_row(row) if row else None

    def get_deployment(self, name: str) -> Deployment:
        d = self.find_deployment(name)
        if d is None:
            raise NotFoundError(f"deployment '{name}' not found")
        return d

    def list_deployments(self) -> list[Deployment]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM deployments ORDER BY name").fetchall()
            return [_deployment_from_row(r) for r in rows]

    def update_deployment(self, d: Deployment) -> None:
        """Persist annotations and status of a deployment read at d.resource_version."""
        with self.connect() as conn:
            cur = conn.execute(
                """
                UPDATE deployments
                SET annotations=?, status=?, resource_version=resource_version+1
                WHERE name=? AND resource_version=?
                """,
                (json.dumps(d.annotations), json.dumps(d.status.to_dict()), d.name, d.resource_version),
            )
            if cur.rowcount == 0:
                raise ConflictError(
                    f"deployment '{d.name}' was modified concurrently (read version {d.resource_version})"
                )
        d.resource_version += 1

    def delete_deployment(self, name: str) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM deployments WHERE name=?", (name,))

    # ---- replica sets ----

    def list_replica_sets(self, deployment: str) -> list[ReplicaSet]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM replica_sets WHERE deployment=? ORDER BY created_at, id", (deployment,)
            ).fetchall()
            return [_replica_set_from_row(r) for r in rows]

    def get_replica_set(self, name: str) -> ReplicaSet:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM replica_sets WHERE name=?", (name,)).fetchone()
            if not row:
                raise NotFoundError(f"replica set '{name}' not found")
            return _replica_set_from_row(row)

    def create_replica_set(self, rs: ReplicaSet) -> ReplicaSet:
        try:
            with self.connect() as conn:
                conn.execute(
                    """
                    INSERT INTO replica_sets (name, deployment, template, revision, replicas, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (rs.name, rs.deployment, json.dumps(rs.template), rs.revision, rs.replicas, rs.created_at),
                )
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"replica set '{rs.name}' already exists") from e
        return self.get_replica_set(rs.name)

    def update_replica_set(self, rs: ReplicaSet) -> None:
        """Persist desired replicas and revision of a set read at rs.resource_version."""
        with self.connect() as conn:
            cur = conn.execute(
                """
                UPDATE replica_sets
                SET replicas=?, revision=?, resource_version=resource_version+1
                WHERE name=? AND resource_version=?
                """,
                (rs.replicas, rs.revision, rs.name, rs.resource_version),
            )
            if cur.rowcount == 0:
                raise ConflictError(
                    f"replica set '{rs.name}' was modified concurrently (read version {rs.resource_version})"
                )
        rs.resource_version += 1

    def report_replica_set_status(
        self,
        name: str,
        status_replicas: int,
        ready_replicas: int,
        available_replicas: int,
        failure_message: str | None = None,
    ) -> ReplicaSet:
        """Record observed counts. Called by whatever manages the machines, not by the reconciler."""
        with self.connect() as conn:
            cur = conn.execute(
                """
                UPDATE replica_sets
                SET status_replicas=?, ready_replicas=?, available_replicas=?, failure_message=?,
                    resource_version=resource_version+1
                WHERE name=?
                """,
                (status_replicas, ready_replicas, available_replicas, failure_message, name),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"replica set '{name}' not found")
        return self.get_replica_set(name)

    def set_replica_set_template(self, name: str, template: dict[str, Any], resource_version: int | None = None) -> ReplicaSet:
        """Rewrite a set's template in place, as an external in-place upgrader does once it is done."""
        with self.connect() as conn:
            if resource_version is None:
                cur = conn.execute(
                    "UPDATE replica_sets SET template=?, resource_version=resource_version+1 WHERE name=?",
                    (json.dumps(template), name),
                )
            else:
                cur = conn.execute(
                    """
                    UPDATE replica_sets SET template=?, resource_version=resource_version+1
                    WHERE name=? AND resource_version=?
                    """,
                    (json.dumps(template), name, resource_version),
                )
            if cur.rowcount == 0:
                self.get_replica_set(name)
                raise ConflictError(f"replica set '{name}' was modified concurrently")
        return self.get_replica_set(name)

    def delete_replica_set(self, name: str, resource_version: int | None = None) -> None:
        with self.connect() as conn:
            if resource_version is None:
                cur = conn.execute("DELETE FROM replica_sets WHERE name=?", (name,))
            else:
                cur = conn.execute(
                    "DELETE FROM replica_sets WHERE name=? AND resource_version=?", (name, resource_version)
                )
            if cur.rowcount == 0:
                self.get_replica_set(name)
                raise ConflictError(f"replica set '{name}' was modified concurrently")
