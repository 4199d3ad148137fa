"""Tests for configuration loading."""

import json

import pytest

from readiness_gate.config import ControllerConfig, load_config, parse_config
from readiness_gate.exceptions import ConfigurationError, SelectorError
from readiness_gate.models import WorkloadWatch


def test_load_yaml(tmp_path, sample_config_data):
    """YAML files are loaded into watches and a selector."""
    import yaml

    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(sample_config_data))

    config = load_config(path)

    assert config.daemonsets == [
        WorkloadWatch(name="kiam", namespace="kube-system"),
        WorkloadWatch(name="node-exporter", namespace="monitoring"),
    ]
    assert config.node_selector.matches({"node-role.kubernetes.io/worker": "", "pool": "batch"})
    assert not config.node_selector.matches({"pool": "batch"})


def test_load_json(tmp_path, sample_config_data):
    """JSON documents are accepted too."""
    path = tmp_path / "config.json"
    path.write_text("  \n" + json.dumps(sample_config_data))

    config = load_config(str(path))

    assert [w.name for w in config.daemonsets] == ["kiam", "node-exporter"]


def test_structured_selector():
    """nodeSelector may use matchLabels/matchExpressions."""
    config = parse_config(
        """
daemonsets:
  - name: agent
    namespace: kube-system
nodeSelector:
  matchLabels:
    pool: general
  matchExpressions:
    - key: spot
      operator: DoesNotExist
"""
    )

    assert config.node_selector.matches({"pool": "general"})
    assert not config.node_selector.matches({"pool": "general", "spot": "yes"})


def test_missing_selector_matches_all():
    """Leaving out nodeSelector manages every node."""
    config = parse_config("daemonsets: [{name: agent, namespace: kube-system}]")

    assert config.node_selector.is_empty


def test_empty_document():
    """An empty file yields an empty configuration."""
    config = parse_config("")

    assert config.daemonsets == []
    assert config.node_selector.is_empty


def test_namespaces_are_distinct_and_ordered():
    """Namespaces are listed once each, in first-seen order."""
    config = ControllerConfig(
        daemonsets=[
            WorkloadWatch(name="a", namespace="monitoring"),
            WorkloadWatch(name="b", namespace="kube-system"),
            WorkloadWatch(name="c", namespace="monitoring"),
        ]
    )

    assert config.namespaces() == ["monitoring", "kube-system"]


def test_missing_file():
    """A missing file is a configuration error naming the path."""
    with pytest.raises(ConfigurationError) as exc_info:
        load_config("nonexistent.yaml")

    assert "not found" in exc_info.value.message
    assert "nonexistent.yaml" in exc_info.value.message


def test_invalid_yaml():
    """Unparseable documents are reported."""
    with pytest.raises(ConfigurationError) as exc_info:
        parse_config("daemonsets: [unclosed", source="bad.yaml")

    assert "bad.yaml" in exc_info.value.message


def test_invalid_json():
    """Broken JSON is reported rather than retried as YAML."""
    with pytest.raises(ConfigurationError):
        parse_config('{"daemonsets": [}')


def test_top_level_must_be_mapping():
    """A list document is rejected."""
    with pytest.raises(ConfigurationError):
        parse_config("- a\n- b\n")


@pytest.mark.parametrize(
    "document",
    [
        "daemonsets: [{name: agent}]",
        "daemonsets: [{name: '', namespace: kube-system}]",
        "daemonsets: [{name: agent, namespace: Kube.System}]",
        "daemonsets: [{name: a, namespace: x}, {name: a, namespace: x}]",
    ],
)
def test_invalid_watches(document):
    """Incomplete, malformed or duplicated watches are rejected."""
    with pytest.raises(ConfigurationError):
        parse_config(document)


def test_bad_selector_fails_at_load():
    """Selector syntax errors surface when configuration is loaded."""
    with pytest.raises(SelectorError):
        parse_config("daemonsets: []\nnodeSelector: 'zone in (a'")


@pytest.mark.parametrize(
    "document",
    [
        "daemonset:\n  - name: agent\n    namespace: kube-system\n",
        "daemonsets: []\nnodeSelectors: pool=general\n",
    ],
)
def test_unknown_keys_rejected(document):
    """A misspelled top-level key fails instead of silently configuring nothing."""
    with pytest.raises(ConfigurationError):
        parse_config(document)


@pytest.mark.parametrize(
    "selector",
    [
        "  matchLabels:\n    pool:\n",
        "  matchLabels:\n    spot: yes\n",
        "  matchExpressions:\n    - {key: pool, operator: In, values: [general, 1]}\n",
    ],
)
def test_unquoted_selector_values_rejected(selector):
    """YAML scalars that are not strings are not coerced into label values."""
    with pytest.raises(SelectorError):
        parse_config(f"daemonsets: []\nnodeSelector:\n{selector}")
