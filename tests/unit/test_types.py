"""Tests for the shared enums."""

import pytest

from grafana_operator.types import ErrorKind, EventType, Phase, SourceType


class TestPhase:
    def test_values(self) -> None:
        assert Phase.values() == frozenset({"reconciling", "failing"})

    def test_is_valid(self) -> None:
        assert Phase.is_valid("reconciling")
        assert not Phase.is_valid("Reconciling")

    def test_compares_as_string(self) -> None:
        assert {"phase": "failing"}["phase"] == Phase.FAILING


class TestSourceType:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/dashboards/overview.json", SourceType.JSON),
            ("/dashboards/overview.JSON ", SourceType.JSON),
            ("/lib/overview.jsonnet", SourceType.JSONNET),
            ("/lib/overview.grafonnet", SourceType.JSONNET),
            ("/dashboards/overview.yaml", SourceType.UNKNOWN),
            ("/dashboards/overview", SourceType.UNKNOWN),
        ],
    )
    def test_from_path(self, path: str, expected: SourceType) -> None:
        assert SourceType.from_path(path) is expected


def test_event_types_match_kubernetes() -> None:
    assert str(EventType.NORMAL) == "Normal"
    assert str(EventType.WARNING) == "Warning"
    assert str(ErrorKind.TRANSIENT) == "transient"
