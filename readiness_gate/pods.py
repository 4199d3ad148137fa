"""Locating a workload's pod on a node and judging its health."""

from collections.abc import Iterable

from readiness_gate.logging_config import get_logger
from readiness_gate.models.pod import Pod
from readiness_gate.models.workload import WorkloadWatch

logger = get_logger(__name__)


def is_pod_ready(pod: Pod) -> bool:
    """A pod is ready when it reports containers and all of them are ready."""
    return bool(pod.container_ready) and all(pod.container_ready)


def find_workload_pod(node_name: str, watch: WorkloadWatch, pods: Iterable[Pod]) -> Pod | None:
    """Find the pod of a workload scheduled onto a node.

    Args:
        node_name: Node the pod must be scheduled on
        watch: Workload whose pod is wanted
        pods: Pods of the workload's namespace

    Returns:
        The matching pod, or None when the workload has no pod on the node yet.
        If several pods match (for example while a daemonset rolls), a ready pod
        is preferred and ties are broken by pod name.
    """
    matches = [
        p
        for p in pods
        if p.namespace == watch.namespace and p.node_name == node_name and p.is_owned_by(watch.name)
    ]
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            f"Found {len(matches)} pods of {watch} on node {node_name}: "
            f"{', '.join(sorted(p.name for p in matches))}"
        )
    return min(matches, key=lambda p: (not is_pod_ready(p), p.name))
