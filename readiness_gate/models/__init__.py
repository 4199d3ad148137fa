"""Data models for nodes, pods and watched workloads."""

from readiness_gate.models.node import Node, Taint
from readiness_gate.models.pod import OwnerReference, Pod
from readiness_gate.models.workload import WorkloadWatch

__all__ = [
    "Node",
    "Taint",
    "Pod",
    "OwnerReference",
    "WorkloadWatch",
]
