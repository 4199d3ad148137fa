"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone

import pytest
from hypothesis import Verbosity, settings

from readiness_gate.config import ControllerConfig
from readiness_gate.models import Node, OwnerReference, Pod, WorkloadWatch

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")

FIXED_NOW = datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc)


class FakeCluster:
    """In-memory stand-in for the Kubernetes API."""

    def __init__(self, nodes=None, pods=None):
        self.nodes = {n.name: n for n in nodes or []}
        self.pods = list(pods or [])
        self.persisted = []
        self.events = []
        self.list_calls = []
        self.fail_fetch = None
        self.fail_list = None
        self.fail_persist = None

    def fetch_node(self, name):
        if self.fail_fetch:
            raise self.fail_fetch
        node = self.nodes.get(name)
        return node.model_copy(deep=True) if node else None

    def list_pods(self, namespace):
        self.list_calls.append(namespace)
        if self.fail_list:
            raise self.fail_list
        return [p for p in self.pods if p.namespace == namespace]

    def persist_node(self, node):
        if self.fail_persist:
            raise self.fail_persist
        self.persisted.append(node)
        self.nodes[node.name] = node.model_copy(deep=True)

    def record_event(self, node, reason, message):
        self.events.append((node.name, reason, message))


def daemon_pod(name, node_name, owner="agent", namespace="kube-system", ready=(True,)):
    """Build a pod owned by a daemonset."""
    return Pod(
        name=name,
        namespace=namespace,
        node_name=node_name,
        owner_references=[OwnerReference(kind="DaemonSet", name=owner, controller=True)],
        container_ready=list(ready),
    )


@pytest.fixture
def agent_watch():
    """The kube-system/agent daemonset."""
    return WorkloadWatch(name="agent", namespace="kube-system")


@pytest.fixture
def agent_config(agent_watch):
    """Configuration watching only the agent daemonset."""
    return ControllerConfig(daemonsets=[agent_watch])


@pytest.fixture
def bare_node():
    """A worker node with no taints or annotations."""
    return Node(name="worker-1", labels={"node-role": "worker"}, resource_version="42")


@pytest.fixture
def fake_cluster(bare_node):
    """Cluster containing the bare worker node and no pods."""
    return FakeCluster(nodes=[bare_node])


@pytest.fixture
def make_pod():
    """Factory for daemonset pods."""
    return daemon_pod


@pytest.fixture
def clock():
    """Clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def sample_config_data():
    """Sample configuration document."""
    return {
        "daemonsets": [
            {"name": "kiam", "namespace": "kube-system"},
            {"name": "node-exporter", "namespace": "monitoring"},
        ],
        "nodeSelector": "node-role.kubernetes.io/worker,pool in (general,batch)",
    }


@pytest.fixture
def make_cluster():
    """Factory for a fake cluster holding at most one node."""

    def factory(node=None, pods=None):
        return FakeCluster(nodes=[node] if node else [], pods=pods)

    return factory
