"""Kubernetes API access for nodes, pods and events."""

from datetime import datetime, timezone

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from readiness_gate.exceptions import ConflictError, KubernetesError
from readiness_gate.logging_config import get_logger
from readiness_gate.milestone import FIRST_READY_ANNOTATION, format_timestamp
from readiness_gate.models.node import Node, Taint
from readiness_gate.models.pod import OwnerReference, Pod

logger = get_logger(__name__)

EVENT_COMPONENT = "readiness-gate"
EVENT_NAMESPACE = "default"


def load_kube_client(kubeconfig: str | None = None) -> client.CoreV1Api:
    """Load cluster credentials and return a CoreV1 API client.

    In-cluster service account credentials are tried first unless an explicit
    kubeconfig path is given.

    Raises:
        KubernetesError: If no usable configuration is found
    """
    try:
        if kubeconfig:
            config.load_kube_config(config_file=kubeconfig)
        else:
            try:
                config.load_incluster_config()
                logger.debug("Using in-cluster configuration")
            except ConfigException:
                config.load_kube_config()
                logger.debug("Using kubeconfig from the default location")
    except (ConfigException, OSError) as e:
        raise KubernetesError(
            f"Failed to load Kubernetes configuration: {e}",
            "Run inside a cluster with a service account, or pass --kubeconfig",
        )
    return client.CoreV1Api()


def node_from_api(obj) -> Node:
    """Convert a V1Node into the controller's node model."""
    spec_taints = (obj.spec.taints if obj.spec else None) or []
    return Node(
        name=obj.metadata.name,
        labels=dict(obj.metadata.labels or {}),
        annotations=dict(obj.metadata.annotations or {}),
        taints=[
            Taint(key=t.key, value=t.value, effect=t.effect, time_added=t.time_added)
            for t in spec_taints
        ],
        resource_version=obj.metadata.resource_version,
    )


def pod_from_api(obj) -> Pod:
    """Convert a V1Pod into the controller's pod model."""
    statuses = (obj.status.container_statuses if obj.status else None) or []
    return Pod(
        name=obj.metadata.name,
        namespace=obj.metadata.namespace,
        node_name=obj.spec.node_name if obj.spec else None,
        owner_references=[
            OwnerReference(kind=o.kind, name=o.name, controller=bool(o.controller))
            for o in obj.metadata.owner_references or []
        ],
        container_ready=[bool(s.ready) for s in statuses],
    )


def taint_to_api(taint: Taint) -> dict:
    body = {"key": taint.key, "effect": taint.effect}
    if taint.value is not None:
        body["value"] = taint.value
    if taint.time_added is not None:
        body["timeAdded"] = format_timestamp(taint.time_added)
    return body


def node_patch(node: Node) -> dict:
    """Build a patch carrying only the fields the controller owns.

    The resource version makes the API server reject the write if the node
    changed since it was read.
    """
    metadata: dict = {}
    if node.resource_version:
        metadata["resourceVersion"] = node.resource_version
    if FIRST_READY_ANNOTATION in node.annotations:
        metadata["annotations"] = {FIRST_READY_ANNOTATION: node.annotations[FIRST_READY_ANNOTATION]}
    return {
        "metadata": metadata,
        "spec": {"taints": [taint_to_api(t) for t in node.taints] or None},
    }


class KubernetesClusterClient:
    """Cluster access backed by the CoreV1 API."""

    def __init__(self, api: client.CoreV1Api):
        self.api = api

    def fetch_node(self, name: str) -> Node | None:
        """Read a node, returning None if it does not exist."""
        try:
            obj = self.api.read_node(name)
        except ApiException as e:
            if e.status == 404:
                return None
            raise KubernetesError(f"Failed to read node {name}", f"{e.status} {e.reason}")
        except HTTPError as e:
            raise KubernetesError(f"Failed to read node {name}", f"Connection error: {e}")
        return node_from_api(obj)

    def list_pods(self, namespace: str) -> list[Pod]:
        """List every pod in a namespace."""
        try:
            response = self.api.list_namespaced_pod(namespace)
        except ApiException as e:
            raise KubernetesError(
                f"Failed to list pods in namespace {namespace}", f"{e.status} {e.reason}"
            )
        except HTTPError as e:
            raise KubernetesError(
                f"Failed to list pods in namespace {namespace}", f"Connection error: {e}"
            )
        return [pod_from_api(p) for p in response.items]

    def persist_node(self, node: Node) -> None:
        """Write the node's taints and first-ready annotation.

        Raises:
            ConflictError: If the node was modified since it was read
            KubernetesError: For any other API failure
        """
        try:
            self.api.patch_node(node.name, node_patch(node))
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"Node {node.name} was modified concurrently",
                    "The node will be reconciled again from a fresh read",
                )
            raise KubernetesError(f"Failed to update node {node.name}", f"{e.status} {e.reason}")
        except HTTPError as e:
            raise KubernetesError(f"Failed to update node {node.name}", f"Connection error: {e}")

    def record_event(self, node: Node, reason: str, message: str) -> None:
        """Create a Normal event against a node."""
        now = format_timestamp(datetime.now(timezone.utc))
        body = {
            "metadata": {"generateName": f"{node.name}."},
            "involvedObject": {
                "apiVersion": "v1",
                "kind": "Node",
                "name": node.name,
                "uid": node.name,
            },
            "reason": reason,
            "message": message,
            "type": "Normal",
            "source": {"component": EVENT_COMPONENT},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }
        try:
            self.api.create_namespaced_event(EVENT_NAMESPACE, body)
        except ApiException as e:
            raise KubernetesError(
                f"Failed to record event on node {node.name}", f"{e.status} {e.reason}"
            )
        except HTTPError as e:
            raise KubernetesError(
                f"Failed to record event on node {node.name}", f"Connection error: {e}"
            )
