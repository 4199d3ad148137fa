"""Computing the readiness taints a node should carry.

Each watched daemonset maps to one taint, keyed
``node-readiness.io/<namespace>.<name>`` with effect ``NoSchedule``. A node keeps
that taint until the daemonset's pod on it is running with every container
ready. Taints whose key is outside the ``node-readiness.io`` prefix belong to
someone else and are passed through untouched, in their original order.
"""

from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel, Field

from readiness_gate.logging_config import get_logger
from readiness_gate.models.node import Node, Taint
from readiness_gate.models.pod import Pod
from readiness_gate.models.workload import WorkloadWatch
from readiness_gate.pods import find_workload_pod, is_pod_ready

logger = get_logger(__name__)

TAINT_PREFIX = "node-readiness.io"
TAINT_EFFECT = "NoSchedule"


class TaintChanges(BaseModel):
    """Keys of the managed taints added to and removed from a node."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when the calculation left the node's taints alone."""
        return not self.added and not self.removed

    def __str__(self) -> str:
        return f"added={self.added} removed={self.removed}"


def taint_key_for(watch: WorkloadWatch) -> str:
    """Build the taint key for a watched daemonset."""
    return f"{TAINT_PREFIX}/{watch.namespace}.{watch.name}"


def watch_from_taint_key(key: str) -> WorkloadWatch | None:
    """Recover the daemonset a managed taint key refers to.

    Returns:
        The watch, or None if the key is not a well-formed managed key
    """
    prefix, sep, suffix = key.partition("/")
    if prefix != TAINT_PREFIX or not sep:
        return None
    namespace, dot, name = suffix.partition(".")
    if not dot:
        return None
    try:
        return WorkloadWatch(name=name, namespace=namespace)
    except ValueError:
        return None


def is_managed_taint(taint: Taint) -> bool:
    """Check whether a taint carries the controller's key prefix."""
    return taint.key.startswith(f"{TAINT_PREFIX}/")


def taint_for(watch: WorkloadWatch) -> Taint:
    """Create the managed taint for a watched daemonset."""
    return Taint(key=taint_key_for(watch), value=watch.name, effect=TAINT_EFFECT)


def calculate_taints(
    node: Node,
    watches: Sequence[WorkloadWatch],
    pods_by_namespace: Mapping[str, Iterable[Pod]],
) -> tuple[list[Taint], TaintChanges]:
    """Work out the taints a node should have.

    Every managed taint already on the node is scheduled for removal unless a
    watch still needs it. A watch needs its taint while its pod on the node is
    missing or not ready; needed taints that are missing are appended in watch
    order.

    Args:
        node: Node whose taints are examined; it is not modified
        watches: Daemonsets the node must run
        pods_by_namespace: Pod snapshot for every watched namespace

    Returns:
        The new taint list and the keys added and removed
    """
    pending_removal = {t.key for t in node.taints if is_managed_taint(t)}
    changes = TaintChanges()
    new_taints: list[Taint] = []

    for watch in watches:
        key = taint_key_for(watch)
        pod = find_workload_pod(node.name, watch, pods_by_namespace.get(watch.namespace, []))

        if pod is not None and is_pod_ready(pod):
            logger.debug(f"Pod {pod.name} of {watch} is ready on node {node.name}")
            continue

        logger.debug(
            f"{watch} is not ready on node {node.name}: "
            f"{'no pod scheduled' if pod is None else f'pod {pod.name} not ready'}"
        )
        if key in pending_removal:
            pending_removal.discard(key)
        elif key not in changes.added:
            new_taints.append(taint_for(watch))
            changes.added.append(key)

    result = []
    kept: set[str] = set()
    for taint in node.taints:
        if is_managed_taint(taint):
            if taint.key in pending_removal:
                if taint.key not in changes.removed:
                    changes.removed.append(taint.key)
                continue
            # Collapse repeats of a managed key that is still needed
            if taint.key in kept:
                continue
            kept.add(taint.key)
        result.append(taint.model_copy())
    result.extend(new_taints)

    return result, changes
