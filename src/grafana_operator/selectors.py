"""Label-selector evaluation shared by every matching decision.

Selectors use the Kubernetes ``LabelSelector`` shape::

    {"matchLabels": {"app": "grafana"},
     "matchExpressions": [{"key": "tier", "operator": "In", "values": ["a", "b"]}]}

A selector with no constraints matches every label set. A missing (``None``)
selector matches nothing. A list of selectors matches when at least one of its
entries matches, so an empty list never matches.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from grafana_operator.errors import ValidationError

OPERATOR_IN = "In"
OPERATOR_NOT_IN = "NotIn"
OPERATOR_EXISTS = "Exists"
OPERATOR_DOES_NOT_EXIST = "DoesNotExist"

VALID_OPERATORS = frozenset({OPERATOR_IN, OPERATOR_NOT_IN, OPERATOR_EXISTS, OPERATOR_DOES_NOT_EXIST})


class SelectorError(ValidationError):
    """Raised when a label selector is malformed."""

    pass


@dataclass(frozen=True)
class Requirement:
    """A single ``key operator values`` constraint."""

    key: str
    operator: str
    values: frozenset[str] = frozenset()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == OPERATOR_IN:
            return self.key in labels and labels[self.key] in self.values
        if self.operator == OPERATOR_NOT_IN:
            return self.key not in labels or labels[self.key] not in self.values
        if self.operator == OPERATOR_EXISTS:
            return self.key in labels
        return self.key not in labels


@dataclass(frozen=True)
class LabelSelector:
    """Parsed conjunction of label requirements."""

    requirements: tuple[Requirement, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.requirements

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Return True if every requirement holds for the given labels."""
        labels = labels or {}
        return all(requirement.matches(labels) for requirement in self.requirements)

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> LabelSelector:
        """Parse a selector from its Kubernetes dict representation.

        Args:
            raw: Dict with optional ``matchLabels`` and ``matchExpressions``.

        Returns:
            The parsed LabelSelector.

        Raises:
            SelectorError: If the selector is malformed.
        """
        if not isinstance(raw, Mapping):
            raise SelectorError(f"label selector must be an object, got {type(raw).__name__}")

        requirements: list[Requirement] = []

        match_labels = raw.get("matchLabels") or {}
        if not isinstance(match_labels, Mapping):
            raise SelectorError("matchLabels must be an object")
        for key, value in sorted(match_labels.items()):
            _check_key(key)
            if not isinstance(value, str):
                raise SelectorError(f"matchLabels value for {key!r} must be a string")
            requirements.append(Requirement(key, OPERATOR_IN, frozenset({value})))

        expressions = raw.get("matchExpressions") or []
        if not isinstance(expressions, list):
            raise SelectorError("matchExpressions must be a list")
        for expression in expressions:
            requirements.append(_parse_expression(expression))

        return cls(tuple(requirements))


def _check_key(key: Any) -> None:
    if not isinstance(key, str) or not key:
        raise SelectorError(f"invalid label key {key!r}")


def _parse_expression(expression: Any) -> Requirement:
    if not isinstance(expression, Mapping):
        raise SelectorError("matchExpressions entries must be objects")

    key = expression.get("key")
    _check_key(key)
    operator = expression.get("operator")
    if operator not in VALID_OPERATORS:
        raise SelectorError(
            f"{operator!r} is not a valid label selector operator. "
            f"Valid values: {', '.join(sorted(VALID_OPERATORS))}"
        )

    values = expression.get("values") or []
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise SelectorError(f"values for {key!r} must be a list of strings")

    if operator in (OPERATOR_IN, OPERATOR_NOT_IN) and not values:
        raise SelectorError(f"values for {key!r} must be non-empty for operator {operator}")
    if operator in (OPERATOR_EXISTS, OPERATOR_DOES_NOT_EXIST) and values:
        raise SelectorError(f"values for {key!r} must be empty for operator {operator}")

    return Requirement(key, operator, frozenset(values))


def matches_selector(labels: Mapping[str, str] | None, selector: Mapping[str, Any] | None) -> bool:
    """Check whether labels satisfy a single selector.

    Args:
        labels: The label set to test.
        selector: Selector dict, or None.

    Returns:
        True if the selector is empty or all its requirements hold. A None
        selector never matches.

    Raises:
        SelectorError: If the selector is malformed.
    """
    if selector is None:
        return False
    parsed = LabelSelector.parse(selector)
    return parsed.empty or parsed.matches(labels)


def matches_selectors(
    labels: Mapping[str, str] | None,
    selectors: Iterable[Mapping[str, Any] | None] | None,
) -> bool:
    """Check whether labels satisfy at least one selector in a list.

    Every selector is parsed even after a match so that a malformed entry is
    always reported.

    Args:
        labels: The label set to test.
        selectors: The selectors to try.

    Returns:
        True if any selector matches. An empty or missing list never matches.

    Raises:
        SelectorError: If any selector is malformed.
    """
    result = False
    for selector in selectors or ():
        result = matches_selector(labels, selector) or result
    return result


__all__ = [
    "LabelSelector",
    "Requirement",
    "SelectorError",
    "matches_selector",
    "matches_selectors",
]
