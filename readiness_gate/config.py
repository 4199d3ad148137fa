"""Controller configuration loading and validation.

The configuration file lists the daemonsets every managed node must be running
and, optionally, a selector restricting which nodes are managed::

    daemonsets:
      - name: kiam
        namespace: kube-system
    nodeSelector: "node-role.kubernetes.io/worker"

JSON documents are accepted as well.
"""

import json
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from readiness_gate.exceptions import ConfigurationError
from readiness_gate.logging_config import get_logger
from readiness_gate.models.workload import WorkloadWatch
from readiness_gate.selector import LabelSelector, parse_selector

logger = get_logger(__name__)


class ControllerConfig(BaseModel):
    """Parsed and validated controller configuration."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid")

    daemonsets: list[WorkloadWatch] = Field(default_factory=list)
    node_selector: LabelSelector = Field(default_factory=LabelSelector, alias="nodeSelector")

    @field_validator("daemonsets")
    @classmethod
    def validate_unique_daemonsets(cls, v: list[WorkloadWatch]) -> list[WorkloadWatch]:
        """Reject the same daemonset being listed twice."""
        seen = set()
        for watch in v:
            if watch in seen:
                raise ValueError(f"daemonset {watch} is listed more than once")
            seen.add(watch)
        return v

    @field_validator("node_selector", mode="before")
    @classmethod
    def parse_node_selector(cls, v):
        """Parse selector strings and mappings; SelectorError propagates as is."""
        return parse_selector(v)

    def namespaces(self) -> list[str]:
        """Distinct namespaces of the watched daemonsets, in configured order."""
        return list(dict.fromkeys(w.namespace for w in self.daemonsets))


def _has_json_prefix(text: str) -> bool:
    return text.lstrip().startswith("{")


def parse_config(text: str, source: str = "<string>") -> ControllerConfig:
    """Parse configuration from YAML or JSON text.

    Args:
        text: Document contents
        source: Name used in error messages

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the document cannot be parsed or fails validation
    """
    try:
        data = json.loads(text) if _has_json_prefix(text) else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to parse configuration file: {source}",
            f"{e}\n\nThe file must be a YAML or JSON document.",
        )

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration in {source} must be a mapping",
            "Expected top-level keys 'daemonsets' and optionally 'nodeSelector'",
        )

    try:
        config = ControllerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {source}", str(e))

    if not config.daemonsets:
        logger.warning(f"No daemonsets configured in {source}; nodes will never be tainted")
    return config


def load_config(path: str | Path) -> ControllerConfig:
    """Load configuration from a YAML or JSON file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    config_path = Path(path)
    logger.debug(f"Reading configuration file: {config_path}")

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}",
            f"Expected location: {config_path.absolute()}",
        )

    try:
        text = config_path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Unable to read configuration file: {config_path}", str(e))

    config = parse_config(text, source=str(config_path))
    logger.info(
        f"Loaded configuration with {len(config.daemonsets)} daemonsets, "
        f"node selector: {config.node_selector}"
    )
    return config
