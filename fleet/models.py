from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


ROLLING_UPDATE = "RollingUpdate"
IN_PLACE = "InPlace"
STRATEGIES = (ROLLING_UPDATE, IN_PLACE)

# Present ("true") while an external agent is expected to upgrade the fleet in place.
IN_PLACE_UPGRADE_ANNOTATION = "in-place-upgrade-pending"
REVISION_ANNOTATION = "revision"

CONDITION_AVAILABLE = "Available"
CONDITION_PROGRESSING = "Progressing"
CONDITION_REPLICA_FAILURE = "ReplicaFailure"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def template_hash(template: dict[str, Any]) -> str:
    """Stable digest of a template; two templates are equal iff their hashes are."""
    raw = json.dumps(template, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class Condition:
    type: str
    status: str  # True|False|Unknown
    reason: str
    message: str = ""
    last_transition_time: str = field(default_factory=utc_now)


@dataclass
class DeploymentStatus:
    observed_generation: int = 0
    replicas: int = 0
    updated_replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0
    unavailable_replicas: int = 0
    conditions: list[Condition] = field(default_factory=list)

    def get_condition(self, cond_type: str) -> Condition | None:
        for c in self.conditions:
            if c.type == cond_type:
                return c
        return None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DeploymentStatus":
        data = dict(data or {})
        conditions = [Condition(**c) for c in data.pop("conditions", [])]
        return cls(conditions=conditions, **data)


@dataclass
class Deployment:
    name: str
    replicas: int
    template: dict[str, Any]
    strategy: str = ROLLING_UPDATE
    max_surge: int | str = "25%"
    max_unavailable: int | str = "25%"
    revision_history_limit: int = 10
    paused: bool = False
    annotations: dict[str, str] = field(default_factory=dict)
    status: DeploymentStatus = field(default_factory=DeploymentStatus)
    generation: int = 1
    resource_version: int = 0
    created_at: str = field(default_factory=utc_now)

    @property
    def template_hash(self) -> str:
        return template_hash(self.template)

    @property
    def in_place_upgrade_pending(self) -> bool:
        return IN_PLACE_UPGRADE_ANNOTATION in self.annotations


@dataclass
class ReplicaSet:
    name: str
    deployment: str
    template: dict[str, Any]
    revision: int = 1
    replicas: int = 0  # desired, owned by the reconciler

    # Reported by whatever runs the machines; never set by the reconciler.
    status_replicas: int = 0
    ready_replicas: int = 0
    available_replicas: int = 0
    failure_message: str | None = None

    resource_version: int = 0
    created_at: str = field(default_factory=utc_now)

    @property
    def template_hash(self) -> str:
        return template_hash(self.template)

    def matches(self, template: dict[str, Any]) -> bool:
        return self.template_hash == template_hash(template)

    @property
    def age_key(self) -> tuple[str, int, str]:
        """Sort key, oldest first."""
        return (self.created_at, self.revision, self.name)
