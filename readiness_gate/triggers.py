"""Mapping watch events to the nodes that need reconciling."""

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


def node_for_node_event(event: dict) -> str | None:
    """Nodes are reconciled when they are created.

    A new node starts without any daemonset pods, so it must be tainted before
    anything else is scheduled. Later node changes are driven by its pods.
    """
    if event.get("type") != ADDED:
        return None
    obj = event.get("object")
    if obj is None or obj.metadata is None:
        return None
    return obj.metadata.name


def is_scheduled_daemonset_pod(pod) -> bool:
    """Check the pod is bound to a node and controlled by a DaemonSet."""
    if pod.spec is None or not pod.spec.node_name:
        return False
    owners = (pod.metadata.owner_references if pod.metadata else None) or []
    controller = next((o for o in owners if o.controller), None)
    return controller is not None and controller.kind == "DaemonSet"


def node_for_pod_event(event: dict) -> str | None:
    """Any change to a scheduled daemonset pod re-evaluates its node."""
    if event.get("type") not in (ADDED, MODIFIED, DELETED):
        return None
    pod = event.get("object")
    if pod is None or not is_scheduled_daemonset_pod(pod):
        return None
    return pod.spec.node_name
