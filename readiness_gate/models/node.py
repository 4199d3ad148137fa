"""Data models for nodes and their taints."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

TAINT_EFFECTS = ["NoSchedule", "PreferNoSchedule", "NoExecute"]


class Taint(BaseModel):
    """Kubernetes node taint."""

    key: str
    value: str | None = None
    effect: str  # NoSchedule, PreferNoSchedule, NoExecute
    time_added: datetime | None = None

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Validate taint key is not empty."""
        if not v:
            raise ValueError("taint key cannot be empty")
        return v

    @field_validator("effect")
    @classmethod
    def validate_effect(cls, v: str) -> str:
        """Validate taint effect is one of the allowed values."""
        if v not in TAINT_EFFECTS:
            raise ValueError(f"effect must be one of {TAINT_EFFECTS}, got {v}")
        return v

    def __str__(self) -> str:
        """Render the taint the way kubectl does."""
        if self.value:
            return f"{self.key}={self.value}:{self.effect}"
        return f"{self.key}:{self.effect}"


class Node(BaseModel):
    """Local copy of the parts of a cluster node the controller reads or writes.

    Only ``taints`` and a single annotation are ever changed. Everything else on
    the real object stays on the API server and is never sent back.
    """

    name: str
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    taints: list[Taint] = Field(default_factory=list)
    resource_version: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate node name is not empty."""
        if not v:
            raise ValueError("node name cannot be empty")
        return v

    def taint_keys(self) -> list[str]:
        """Return the keys of every taint on the node, in order."""
        return [t.key for t in self.taints]
