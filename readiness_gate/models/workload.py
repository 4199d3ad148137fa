"""Data model for the workloads a node must be running before it is usable."""

import re

from pydantic import BaseModel, ConfigDict, field_validator

# Namespaces are DNS-1123 labels, so they never contain a dot
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


class WorkloadWatch(BaseModel):
    """A daemonset whose pod must be ready on a node before it is schedulable."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate workload name is not empty."""
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Validate namespace is a DNS-1123 label."""
        if not v:
            raise ValueError("namespace cannot be empty")
        if len(v) > 63 or not NAMESPACE_PATTERN.match(v):
            raise ValueError(
                f"namespace '{v}' must be a DNS label: lowercase alphanumerics and hyphens, "
                "at most 63 characters"
            )
        return v

    def __str__(self) -> str:
        """String representation of the watch."""
        return f"{self.namespace}/{self.name}"
