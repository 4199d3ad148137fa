"""Recording when a node first became free of readiness taints."""

from datetime import datetime, timezone

from readiness_gate.models.node import Node
from readiness_gate.taints import TAINT_PREFIX, is_managed_taint

FIRST_READY_ANNOTATION = f"{TAINT_PREFIX}/first-time-ready"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(moment: datetime) -> str:
    """Render a moment as an ISO-8601 UTC timestamp with second precision."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def is_taint_free(node: Node) -> bool:
    """True when the node carries no managed taints."""
    return not any(is_managed_taint(t) for t in node.taints)


def apply_milestone(node: Node, now: datetime) -> str | None:
    """Stamp the first-ready annotation on a taint-free node.

    The annotation is written once and never changed or removed afterwards,
    even if the node later picks up readiness taints again.

    Args:
        node: Node after its taints were recalculated; annotated in place
        now: Current time

    Returns:
        The stored first-ready timestamp, or None if the node was never ready
    """
    existing = node.annotations.get(FIRST_READY_ANNOTATION)
    if existing is not None:
        return existing
    if not is_taint_free(node):
        return None

    stamp = format_timestamp(now)
    node.annotations[FIRST_READY_ANNOTATION] = stamp
    return stamp
