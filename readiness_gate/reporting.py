"""Reporting taint changes once a node update has been written.

Reporters are best effort: a failing reporter is logged and never turns a
successful reconciliation into a failed one.
"""

from typing import Protocol

from prometheus_client import CollectorRegistry, Counter

from readiness_gate.logging_config import get_logger
from readiness_gate.milestone import is_taint_free
from readiness_gate.models.node import Node
from readiness_gate.taints import TaintChanges

logger = get_logger(__name__)

EVENT_REASON = "TaintsChanged"


class ChangeReporter(Protocol):
    """Receives the outcome of every node update that was persisted."""

    def report(self, node: Node, changes: TaintChanges, first_ready: str | None) -> None: ...


class EventSink(Protocol):
    def record_event(self, node: Node, reason: str, message: str) -> None: ...


class LoggingReporter:
    """Log one line per added or removed taint."""

    def report(self, node: Node, changes: TaintChanges, first_ready: str | None) -> None:
        for key in changes.added:
            logger.info(f"Added taint {key} to node {node.name}")
        for key in changes.removed:
            logger.info(f"Removed taint {key} from node {node.name}")
        if changes.removed and is_taint_free(node):
            logger.info(f"Node {node.name} has no readiness taints (first ready at {first_ready})")


class MetricsReporter:
    """Count taint operations in Prometheus, labelled by operation and taint key."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize the reporter.

        Args:
            registry: Registry to register the counter in; a private one is
                created when omitted
        """
        self.registry = registry if registry is not None else CollectorRegistry()
        self.taint_operations = Counter(
            "readiness_gate_taint_operations",
            "Readiness taints added to or removed from nodes",
            ["operation", "taint"],
            registry=self.registry,
        )

    def report(self, node: Node, changes: TaintChanges, first_ready: str | None) -> None:
        for key in changes.added:
            self.taint_operations.labels(operation="added", taint=key).inc()
        for key in changes.removed:
            self.taint_operations.labels(operation="removed", taint=key).inc()


class EventReporter:
    """Record a Kubernetes event on the node describing the new taints."""

    def __init__(self, sink: EventSink):
        self.sink = sink

    def report(self, node: Node, changes: TaintChanges, first_ready: str | None) -> None:
        if changes.is_empty:
            return
        taints =", ".join(str(t) for t in node.taints) or "none"
        self.sink.record_event(node, EVENT_REASON, f"Taints updated to [{taints}]")


class CompositeReporter:
    """Fan a report out to several reporters, isolating their failures."""

    def __init__(self, reporters: list[ChangeReporter]):
        self.reporters = list(reporters)

    def report(self, node: Node, changes: TaintChanges, first_ready: str | None) -> None:
        for reporter in self.reporters:
            try:
                reporter.report(node, changes, first_ready)
            except Exception as e:
                logger.warning(
                    f"{type(reporter).__name__} failed to report changes on node {node.name}: {e}",
                    exc_info=True,
                )
