"""Tests for label-selector evaluation."""

from __future__ import annotations

import pytest

from grafana_operator.errors import ValidationError
from grafana_operator.selectors import (
    LabelSelector,
    SelectorError,
    matches_selector,
    matches_selectors,
)


class TestMatchesSelector:
    """Tests for a single selector."""

    def test_none_matches_nothing(self) -> None:
        assert matches_selector({"app": "grafana"}, None) is False

    def test_empty_selector_matches_everything(self) -> None:
        assert matches_selector({}, {}) is True
        assert matches_selector({"any": "thing"}, {}) is True
        assert matches_selector(None, {"matchLabels": {}}) is True

    def test_match_labels(self) -> None:
        selector = {"matchLabels": {"app": "grafana", "tier": "ops"}}
        assert matches_selector({"app": "grafana", "tier": "ops", "x": "y"}, selector)
        assert not matches_selector({"app": "grafana"}, selector)
        assert not matches_selector({"app": "other", "tier": "ops"}, selector)

    @pytest.mark.parametrize(
        ("operator", "values", "labels", "expected"),
        [
            ("In", ["a", "b"], {"k": "a"}, True),
            ("In", ["a", "b"], {"k": "c"}, False),
            ("In", ["a"], {}, False),
            ("NotIn", ["a"], {"k": "b"}, True),
            ("NotIn", ["a"], {"k": "a"}, False),
            ("NotIn", ["a"], {}, True),
            ("Exists", [], {"k": ""}, True),
            ("Exists", [], {}, False),
            ("DoesNotExist", [], {}, True),
            ("DoesNotExist", [], {"k": "a"}, False),
        ],
    )
    def test_match_expressions(
        self, operator: str, values: list[str], labels: dict[str, str], expected: bool
    ) -> None:
        selector = {"matchExpressions": [{"key": "k", "operator": operator, "values": values}]}
        assert matches_selector(labels, selector) is expected

    def test_labels_and_expressions_are_conjunctive(self) -> None:
        selector = {
            "matchLabels": {"app": "grafana"},
            "matchExpressions": [{"key": "team", "operator": "Exists"}],
        }
        assert matches_selector({"app": "grafana", "team": "a"}, selector)
        assert not matches_selector({"app": "grafana"}, selector)


class TestMatchesSelectors:
    """Tests for OR across a selector list."""

    def test_empty_list_never_matches(self) -> None:
        assert matches_selectors({"app": "grafana"}, []) is False
        assert matches_selectors({"app": "grafana"}, None) is False

    def test_single_empty_selector_matches_all(self) -> None:
        assert matches_selectors({"anything": "x"}, [{}]) is True

    def test_any_selector_matching_is_enough(self) -> None:
        selectors = [{"matchLabels": {"app": "a"}}, {"matchLabels": {"app": "b"}}]
        assert matches_selectors({"app": "b"}, selectors)
        assert not matches_selectors({"app": "c"}, selectors)

    def test_none_entries_are_skipped(self) -> None:
        assert matches_selectors({"app": "a"}, [None, {"matchLabels": {"app": "a"}}])
        assert not matches_selectors({"app": "a"}, [None])

    def test_malformed_selector_reported_even_after_match(self) -> None:
        selectors = [{}, {"matchExpressions": [{"key": "k", "operator": "Bogus"}]}]
        with pytest.raises(SelectorError):
            matches_selectors({}, selectors)


class TestLabelSelectorParse:
    """Tests for selector validation."""

    @pytest.mark.parametrize(
        "raw",
        [
            "app=grafana",
            {"matchLabels": ["app"]},
            {"matchLabels": {"app": 1}},
            {"matchLabels": {"": "x"}},
            {"matchExpressions": {"key": "k"}},
            {"matchExpressions": ["k"]},
            {"matchExpressions": [{"key": "k", "operator": "Like", "values": ["a"]}]},
            {"matchExpressions": [{"key": "k", "operator": "In", "values": []}]},
            {"matchExpressions": [{"key": "k", "operator": "Exists", "values": ["a"]}]},
            {"matchExpressions": [{"key": "k", "operator": "In", "values": [1]}]},
        ],
    )
    def test_malformed_selectors_raise(self, raw: object) -> None:
        with pytest.raises(SelectorError):
            LabelSelector.parse(raw)  # type: ignore[arg-type]

    def test_selector_error_is_validation_error(self) -> None:
        assert issubclass(SelectorError, ValidationError)

    def test_parse_builds_requirements(self) -> None:
        parsed = LabelSelector.parse(
            {
                "matchLabels": {"b": "2", "a": "1"},
                "matchExpressions": [{"key": "c", "operator": "Exists"}],
            }
        )
        assert [r.key for r in parsed.requirements] == ["a", "b", "c"]
        assert not parsed.empty
