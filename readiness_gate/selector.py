"""Label selectors deciding which nodes the controller manages.

Selectors are accepted in the two forms Kubernetes users already know:

* the string form used by ``kubectl -l``, e.g. ``"pool=general,zone in (a,b),!spot"``
* the structured form with ``matchLabels`` and ``matchExpressions``

Both are parsed once, when configuration is loaded, into a :class:`LabelSelector`.
An empty selector matches every node.
"""

import re
from typing import Any

from pydantic import BaseModel, Field

from readiness_gate.exceptions import SelectorError
from readiness_gate.logging_config import get_logger
from readiness_gate.models.node import Node

logger = get_logger(__name__)

IN = "In"
NOT_IN = "NotIn"
EXISTS = "Exists"
DOES_NOT_EXIST = "DoesNotExist"
OPERATORS = [IN, NOT_IN, EXISTS, DOES_NOT_EXIST]

_NAME = r"[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?"
_PREFIX = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*"
KEY_PATTERN = re.compile(rf"^({_PREFIX}/)?{_NAME}$")
VALUE_PATTERN = re.compile(rf"^({_NAME})?$")

_SET_TERM = re.compile(r"^(?P<key>\S+)\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)$")
_EQUALITY_TERM = re.compile(r"^(?P<key>[^=!\s]+)\s*(?P<op>==|!=|=)\s*(?P<value>\S*)$")


class Requirement(BaseModel):
    """A single condition on a node's labels."""

    key: str
    operator: str
    values: list[str] = Field(default_factory=list)

    def matches(self, labels: dict[str, str]) -> bool:
        """Evaluate the requirement against a label set."""
        if self.operator == IN:
            return self.key in labels and labels[self.key] in self.values
        if self.operator == NOT_IN:
            return self.key not in labels or labels[self.key] not in self.values
        if self.operator == EXISTS:
            return self.key in labels
        return self.key not in labels

    def __str__(self) -> str:
        if self.operator == EXISTS:
            return self.key
        if self.operator == DOES_NOT_EXIST:
            return f"!{self.key}"
        if len(self.values) == 1:
            op = "=" if self.operator == IN else "!="
            return f"{self.key}{op}{self.values[0]}"
        op = "in" if self.operator == IN else "notin"
        return f"{self.key} {op} ({','.join(self.values)})"


class LabelSelector(BaseModel):
    """Conjunction of label requirements."""

    requirements: list[Requirement] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """An empty selector matches every node."""
        return not self.requirements

    def matches(self, labels: dict[str, str]) -> bool:
        """Check a label set against every requirement."""
        return all(r.matches(labels) for r in self.requirements)

    def __str__(self) -> str:
        if self.is_empty:
            return "<all nodes>"
        return ",".join(str(r) for r in self.requirements)


def _validate_key(key: str) -> str:
    if len(key.rsplit("/", 1)[-1]) > 63 or not KEY_PATTERN.match(key):
        raise SelectorError(
            f"Invalid label key in node selector: '{key}'",
            "Keys are an optional DNS subdomain prefix and '/', followed by a name of at most "
            "63 alphanumerics, '-', '_' or '.'",
        )
    return key


def _validate_value(value: str) -> str:
    if len(value) > 63 or not VALUE_PATTERN.match(value):
        raise SelectorError(
            f"Invalid label value in node selector: '{value}'",
            "Values are at most 63 alphanumerics, '-', '_' or '.', beginning and ending "
            "with an alphanumeric",
        )
    return value


def _require_string(value: Any, key: Any) -> str:
    # YAML turns bare yes/no/numbers/empty into non-strings
    if not isinstance(value, str):
        raise SelectorError(
            f"Label value for key '{key}' must be a string, got {value!r}",
            "Quote values such as \"true\", \"1\" or \"\" in the configuration file",
        )
    return value


def _split_terms(expression: str) -> list[str]:
    """Split on commas that are not inside a parenthesised value set."""
    terms = []
    depth = 0
    current = ""
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SelectorError(f"Unbalanced parentheses in node selector: '{expression}'")
        if char == "," and depth == 0:
            terms.append(current.strip())
            current = ""
            continue
        current += char
    if depth != 0:
        raise SelectorError(f"Unbalanced parentheses in node selector: '{expression}'")
    terms.append(current.strip())
    return terms


def _parse_term(term: str) -> Requirement:
    if not term:
        raise SelectorError("Empty requirement in node selector", "Remove the stray comma")

    match = _SET_TERM.match(term)
    if match:
        values = [v.strip() for v in match.group("values").split(",")]
        if values == [""]:
            raise SelectorError(f"Empty value set in node selector requirement: '{term}'")
        operator = IN if match.group("op") == "in" else NOT_IN
        return Requirement(
            key=_validate_key(match.group("key")),
            operator=operator,
            values=[_validate_value(v) for v in values],
        )

    match = _EQUALITY_TERM.match(term)
    if match:
        operator = NOT_IN if match.group("op") == "!=" else IN
        return Requirement(
            key=_validate_key(match.group("key")),
            operator=operator,
            values=[_validate_value(match.group("value"))],
        )

    if term.startswith("!"):
        return Requirement(key=_validate_key(term[1:].strip()), operator=DOES_NOT_EXIST)

    return Requirement(key=_validate_key(term), operator=EXISTS)


def _parse_string(expression: str) -> LabelSelector:
    expression = expression.strip()
    if not expression:
        return LabelSelector()
    return LabelSelector(requirements=[_parse_term(t) for t in _split_terms(expression)])


def _parse_expression(expr: Any) -> Requirement:
    if not isinstance(expr, dict) or "key" not in expr or "operator" not in expr:
        raise SelectorError(
            f"Invalid matchExpressions entry: {expr!r}",
            "Each entry needs 'key' and 'operator', and 'values' for In/NotIn",
        )
    operator = expr["operator"]
    if operator not in OPERATORS:
        raise SelectorError(
            f"Unknown selector operator '{operator}'", f"Supported operators: {OPERATORS}"
        )
    values = expr.get("values") or []
    if not isinstance(values, list):
        raise SelectorError(f"Values for key '{expr['key']}' must be a list")
    values = [_require_string(v, expr["key"]) for v in values]
    if operator in (IN, NOT_IN) and not values:
        raise SelectorError(f"Operator {operator} on key '{expr['key']}' requires values")
    if operator in (EXISTS, DOES_NOT_EXIST) and values:
        raise SelectorError(f"Operator {operator} on key '{expr['key']}' takes no values")
    return Requirement(
        key=_validate_key(str(expr["key"])),
        operator=operator,
        values=[_validate_value(v) for v in values],
    )


def _parse_mapping(data: dict) -> LabelSelector:
    if "matchLabels" in data or "matchExpressions" in data:
        unknown = set(data) - {"matchLabels", "matchExpressions"}
        if unknown:
            raise SelectorError(f"Unknown node selector fields: {sorted(unknown)}")
        match_labels = data.get("matchLabels") or {}
        expressions = data.get("matchExpressions") or []
    else:
        match_labels = data
        expressions = []

    if not isinstance(match_labels, dict) or not isinstance(expressions, list):
        raise SelectorError(
            "Invalid node selector structure",
            "matchLabels must be a mapping and matchExpressions a list",
        )

    requirements = [
        Requirement(
            key=_validate_key(str(k)),
            operator=IN,
            values=[_validate_value(_require_string(v, k))],
        )
        for k, v in match_labels.items()
    ]
    requirements.extend(_parse_expression(e) for e in expressions)
    return LabelSelector(requirements=requirements)


def parse_selector(value: str | dict | LabelSelector | None) -> LabelSelector:
    """Parse a node selector from its configuration form.

    Args:
        value: Selector string, matchLabels/matchExpressions mapping, plain label
            mapping, an already parsed selector, or None

    Returns:
        Parsed selector; empty when value is None or blank

    Raises:
        SelectorError: If the expression is malformed
    """
    if value is None:
        return LabelSelector()
    if isinstance(value, LabelSelector):
        return value
    if isinstance(value, str):
        selector = _parse_string(value)
    elif isinstance(value, dict):
        selector = _parse_mapping(value)
    else:
        raise SelectorError(
            f"Unsupported node selector type: {type(value).__name__}",
            "Use a selector string or a mapping with matchLabels/matchExpressions",
        )
    logger.debug(f"Parsed node selector: {selector}")
    return selector


def node_in_scope(node: Node, selector: LabelSelector) -> bool:
    """Check whether the controller should manage a node."""
    return selector.matches(node.labels)
