"""Reconciling one node's readiness taints against its daemonset pods."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from readiness_gate.config import ControllerConfig
from readiness_gate.exceptions import ReadinessGateError
from readiness_gate.logging_config import get_logger
from readiness_gate.milestone import FIRST_READY_ANNOTATION, apply_milestone
from readiness_gate.models.node import Node
from readiness_gate.models.pod import Pod
from readiness_gate.reporting import ChangeReporter
from readiness_gate.selector import node_in_scope
from readiness_gate.taints import TaintChanges, calculate_taints

logger = get_logger(__name__)


class ClusterClient(Protocol):
    """Cluster access the reconciler needs."""

    def fetch_node(self, name: str) -> Node | None: ...

    def list_pods(self, namespace: str) -> list[Pod]: ...

    def persist_node(self, node: Node) -> None: ...


class ReconcileOutcome(str, Enum):
    """How a reconciliation ended."""

    NOT_FOUND = "NotFound"
    OUT_OF_SCOPE = "OutOfScope"
    NO_CHANGE = "NoChange"
    UPDATED = "Updated"
    FAILED = "Failed"


@dataclass
class ReconcileResult:
    """Outcome of reconciling a node, with the computed update when there is one."""

    outcome: ReconcileOutcome
    node_name: str
    node: Node | None = None
    changes: TaintChanges = field(default_factory=TaintChanges)
    first_ready: str | None = None
    persisted: bool = False
    error: ReadinessGateError | None = None

    @property
    def failed(self) -> bool:
        return self.outcome is ReconcileOutcome.FAILED


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def needs_update(original: Node, updated: Node) -> bool:
    """Compare only the fields the reconciler may change."""
    return original.taints != updated.taints or original.annotations.get(
        FIRST_READY_ANNOTATION
    ) != updated.annotations.get(FIRST_READY_ANNOTATION)


class Reconciler:
    """Drives scope check, taint calculation and milestone tracking for a node."""

    def __init__(
        self,
        client: ClusterClient,
        config: ControllerConfig,
        reporter: ChangeReporter | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the reconciler.

        Args:
            client: Source of nodes and pods, and writer of node updates
            config: Validated controller configuration
            reporter: Told about every persisted change
            clock: Current time provider for the first-ready annotation
        """
        self.client = client
        self.config = config
        self.reporter = reporter
        self.clock = clock

    def plan(self, node_name: str) -> ReconcileResult:
        """Compute the update a node needs without writing it."""
        try:
            node = self.client.fetch_node(node_name)
        except ReadinessGateError as e:
            logger.error(f"Failed to fetch node {node_name}: {e.message}")
            return ReconcileResult(ReconcileOutcome.FAILED, node_name, error=e)

        if node is None:
            logger.debug(f"Node {node_name} no longer exists")
            return ReconcileResult(ReconcileOutcome.NOT_FOUND, node_name)

        if not node_in_scope(node, self.config.node_selector):
            logger.debug(f"Node {node_name} does not match {self.config.node_selector}")
            return ReconcileResult(ReconcileOutcome.OUT_OF_SCOPE, node_name, node=node)

        pods_by_namespace: dict[str, list[Pod]] = {}
        for namespace in self.config.namespaces():
            try:
                pods_by_namespace[namespace] = self.client.list_pods(namespace)
            except ReadinessGateError as e:
                logger.error(f"Failed to list pods in {namespace} for {node_name}: {e.message}")
                return ReconcileResult(ReconcileOutcome.FAILED, node_name, node=node, error=e)

        updated = node.model_copy(deep=True)
        updated.taints, changes = calculate_taints(node, self.config.daemonsets, pods_by_namespace)
        first_ready = apply_milestone(updated, self.clock())

        if not needs_update(node, updated):
            return ReconcileResult(
                ReconcileOutcome.NO_CHANGE, node_name, node=node, first_ready=first_ready
            )
        return ReconcileResult(
            ReconcileOutcome.UPDATED,
            node_name,
            node=updated,
            changes=changes,
            first_ready=first_ready,
        )

    def reconcile(self, node_name: str) -> ReconcileResult:
        """Bring a node's readiness taints in line with its daemonset pods.

        Collaborator errors come back as a FAILED result; the caller decides
        whether and when to retry.
        """
        result = self.plan(node_name)
        if result.outcome is not ReconcileOutcome.UPDATED:
            return result

        logger.info(f"Updating node {node_name}: {result.changes}")
        try:
            self.client.persist_node(result.node)
        except ReadinessGateError as e:
            logger.error(f"Failed to update node {node_name}: {e.message}")
            result.outcome = ReconcileOutcome.FAILED
            result.error = e
            return result
        result.persisted = True

        if self.reporter is not None:
            try:
                self.reporter.report(result.node, result.changes, result.first_ready)
            except Exception as e:
                logger.warning(f"Failed to report changes on node {node_name}: {e}", exc_info=True)
        return result
