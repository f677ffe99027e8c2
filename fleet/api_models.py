from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


NAME_PATTERN = r"^[a-z][a-z0-9\-]{0,62}$"


class ApplyDeploymentRequest(BaseModel):
    name: str = Field(..., pattern=NAME_PATTERN, description="Deployment name (dns-safe)")
    replicas: int = Field(1, ge=0, le=1000)
    template: dict[str, Any] = Field(..., description="Opaque replica template, compared by deep equality")
    strategy: Literal["RollingUpdate", "InPlace"] = "RollingUpdate"
    max_surge: Optional[Union[int, str]] = Field(None, description="Replicas or percentage, e.g. 1 or '25%'")
    max_unavailable: Optional[Union[int, str]] = Field(None, description="Replicas or percentage, e.g. 0 or '25%'")
    revision_history_limit: Optional[int] = Field(None, ge=0, le=100)
    paused: bool = False


class ScaleRequest(BaseModel):
    replicas: int = Field(..., ge=0, le=1000)


class ReplicaSetStatusRequest(BaseModel):
    replicas: int = Field(..., ge=0)
    ready_replicas: int = Field(0, ge=0)
    available_replicas: int = Field(0, ge=0)
    failure_message: Optional[str] = None


class ReplicaSetTemplateRequest(BaseModel):
    template: dict[str, Any]
    resource_version: Optional[int] = Field(None, description="Fail with 409 unless the set is still at this version")
