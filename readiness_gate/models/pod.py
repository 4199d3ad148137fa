"""Data models for pods owned by watched workloads."""

from pydantic import BaseModel, Field


class OwnerReference(BaseModel):
    """Reference from a pod to the workload that owns it."""

    kind: str
    name: str
    controller: bool = False


class Pod(BaseModel):
    """The pod fields needed to decide whether a node's workload is healthy."""

    name: str
    namespace: str
    node_name: str | None = None
    owner_references: list[OwnerReference] = Field(default_factory=list)
    container_ready: list[bool] = Field(default_factory=list)

    def controller_owner(self) -> OwnerReference | None:
        """Return the owner reference flagged as the managing controller, if any."""
        return next((o for o in self.owner_references if o.controller), None)

    def is_owned_by(self, name: str) -> bool:
        """Check whether any owner reference carries the given workload name."""
        return any(o.name == name for o in self.owner_references)
