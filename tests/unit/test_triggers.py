"""Tests for mapping watch events to node names."""

import pytest
from kubernetes import client

from readiness_gate.triggers import node_for_node_event, node_for_pod_event


def pod(node_name="worker-1", kind="DaemonSet", controller=True):
    owners = []
    if kind:
        owners.append(
            client.V1OwnerReference(
                api_version="apps/v1", kind=kind, name="agent", uid="u1", controller=controller
            )
        )
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name="agent-abc", owner_references=owners),
        spec=client.V1PodSpec(node_name=node_name, containers=[]),
    )


def node(name="worker-1"):
    return client.V1Node(metadata=client.V1ObjectMeta(name=name))


def test_new_node_is_enqueued():
    """Created nodes are reconciled straight away."""
    assert node_for_node_event({"type": "ADDED", "object": node()}) == "worker-1"


@pytest.mark.parametrize("event_type", ["MODIFIED", "DELETED", "BOOKMARK", "ERROR"])
def test_other_node_events_ignored(event_type):
    """Only node creation triggers a reconcile."""
    assert node_for_node_event({"type": event_type, "object": node()}) is None


@pytest.mark.parametrize("event_type", ["ADDED", "MODIFIED", "DELETED"])
def test_daemonset_pod_events_enqueue_node(event_type):
    """Changes to a scheduled daemonset pod re-evaluate its node."""
    assert node_for_pod_event({"type": event_type, "object": pod()}) == "worker-1"


def test_unscheduled_pod_ignored():
    """Pods not yet bound to a node have nothing to trigger."""
    assert node_for_pod_event({"type": "ADDED", "object": pod(node_name=None)}) is None


def test_non_daemonset_pod_ignored():
    """Pods controlled by other workloads are ignored."""
    assert node_for_pod_event({"type": "ADDED", "object": pod(kind="ReplicaSet")}) is None


def test_pod_without_controller_ignored():
    """Owner references that are not the controller do not count."""
    assert node_for_pod_event({"type": "ADDED", "object": pod(controller=False)}) is None
    assert node_for_pod_event({"type": "ADDED", "object": pod(kind=None)}) is None


def test_error_event_ignored():
    """Watch error events carry no pod."""
    assert node_for_pod_event({"type": "ERROR", "object": pod()}) is None
