"""Content pipelines: turn a declared dashboard or data source into the
JSON payload submitted to Grafana.

Dashboard content is obtained from the first source that works, in order:
remote URL, config map reference, inline JSON, inline Jsonnet. A failing URL
or config map falls through to the next source. URL content ending in
``.jsonnet`` or ``.grafonnet`` is evaluated as Jsonnet, anything else is
treated as JSON. Input placeholders ``${inputName}`` are then replaced with
data-source names, the text is parsed, ``id`` is cleared and ``uid`` is set
to the dashboard's stable UID.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

import httpx

from grafana_operator.cluster import CONFIG_MAP, ClusterClient
from grafana_operator.config import DEFAULT_JSONNET_LOCATION
from grafana_operator.errors import OperatorError, ValidationError
from grafana_operator.grafana_client import DEFAULT_CLIENT_TIMEOUT, DEFAULT_HEADERS
from grafana_operator.logging import get_logger
from grafana_operator.models import GrafanaDashboard, GrafanaDataSource
from grafana_operator.types import SourceType

logger = get_logger(__name__)

type UrlFetcher = Callable[[str], str]


def fetch_url(url: str, timeout: float = DEFAULT_CLIENT_TIMEOUT) -> str:
    """Download dashboard content.

    Raises:
        OperatorError: If the URL is malformed or does not answer 200.
        httpx.HTTPError: On transport failures.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise OperatorError(f"invalid url {url}")
    headers = {"User-Agent": DEFAULT_HEADERS["User-Agent"], "Connection": "close"}
    with httpx.Client(timeout=timeout, headers=headers, follow_redirects=True) as client:
        response = client.get(url)
    if response.status_code != httpx.codes.OK:
        raise OperatorError(f"request failed with status {response.status_code}")
    return response.text


class JsonnetEvaluator:
    """Compiles Jsonnet to JSON with a library search path.

    The ``jsonnet`` bindings are an optional extra; they are imported on
    first use.

    Args:
        base_path: Directory searched by ``import`` statements (grafonnet).
    """

    def __init__(self, base_path: str = DEFAULT_JSONNET_LOCATION) -> None:
        self.base_path = base_path

    def evaluate(self, name: str, source: str) -> str:
        """Evaluate a Jsonnet snippet.

        Raises:
            OperatorError: If the jsonnet bindings are not installed.
            ValidationError: If the snippet does not evaluate.
        """
        try:
            import _jsonnet
        except ImportError as e:
            raise OperatorError("jsonnet support requires the 'jsonnet' package") from e
        try:
            return _jsonnet.evaluate_snippet(name, source, jpathdir=[self.base_path])
        except RuntimeError as e:
            raise ValidationError(f"failed to evaluate jsonnet: {e}") from e


def substitute_inputs(text: str, dashboard: GrafanaDashboard) -> str:
    """Replace every ``${inputName}`` with its data-source name.

    Raises:
        ValidationError: If a rule has an empty input or data-source name.
    """
    for rule in dashboard.inputs:
        if not rule.input_name or not rule.datasource_name:
            raise ValidationError("invalid datasource input rule, input or datasource empty")
        text = text.replace(f"${{{rule.input_name}}}", rule.datasource_name)
        logger.debug("Resolved input %s to %s", rule.input_name, rule.datasource_name)
    return text


def encode_dashboard(board: dict[str, Any]) -> bytes:
    return json.dumps(board, sort_keys=True, separators=(",", ":")).strip().encode()


class DashboardPipeline:
    """Produces the submission payload for one dashboard.

    Args:
        cluster: Used to read a referenced config map.
        dashboard: The dashboard resource.
        jsonnet: Jsonnet evaluator.
        fetch: Downloads URL content; defaults to :func:`fetch_url`.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        dashboard: GrafanaDashboard,
        jsonnet: JsonnetEvaluator | None = None,
        fetch: UrlFetcher | None = None,
    ) -> None:
        self.cluster = cluster
        self.dashboard = dashboard
        self.jsonnet = jsonnet or JsonnetEvaluator()
        self.fetch = fetch or fetch_url
        self.log = logger.with_context(
            kind="GrafanaDashboard",
            namespace=dashboard.meta.namespace,
            resource=dashboard.meta.name,
        )

    def process(self) -> bytes:
        """Run the pipeline.

        Returns:
            Compact JSON bytes with sorted keys, ``id`` null and ``uid`` set.

        Raises:
            OperatorError: If no content source yields content.
            ValidationError: If an input rule or the resulting JSON is invalid.
        """
        return encode_dashboard(self.resolve())

    def resolve(self) -> dict[str, Any]:
        """Obtain, substitute and parse the content; same errors as :meth:`process`."""
        text = self.obtain_content()
        text = substitute_inputs(text, self.dashboard)
        board = self.dashboard.parse(text)
        # Grafana assigns the numeric id; the uid is ours.
        board["id"] = None
        board["uid"] = self.dashboard.uid(board)
        return board

    def obtain_content(self) -> str:
        spec = self.dashboard
        if spec.url:
            try:
                return self._from_url(spec.url)
            except (OperatorError, httpx.HTTPError) as e:
                self.log.warning("Failed to request dashboard url, falling back: %s", e)

        if spec.config_map_ref is not None:
            try:
                return self._from_config_map()
            except OperatorError as e:
                self.log.warning("Failed to read dashboard config map, falling back: %s", e)

        if spec.json:
            return spec.json

        if spec.jsonnet:
            try:
                return self.jsonnet.evaluate(spec.meta.name, spec.jsonnet)
            except OperatorError as e:
                self.log.warning("Failed to evaluate jsonnet: %s", e)

        raise OperatorError("unable to obtain dashboard contents")

    def _from_url(self, url: str) -> str:
        body = self.fetch(url)
        if SourceType.from_path(urlparse(url).path) == SourceType.JSONNET:
            return self.jsonnet.evaluate(self.dashboard.meta.name, body)
        return body

    def _from_config_map(self) -> str:
        ref = self.dashboard.config_map_ref
        assert ref is not None
        config_map = self.cluster.get(CONFIG_MAP, self.dashboard.meta.namespace, ref.name)
        content = (config_map.get("data") or {}).get(ref.key)
        if not content:
            raise OperatorError(f"config map {ref.name} has no key {ref.key}")
        return content


class DataSourcePipeline:
    """Serializes a declared data source; no content resolution involved."""

    def __init__(self, datasource: GrafanaDataSource) -> None:
        self.datasource = datasource

    def process(self) -> bytes:
        """Return the data-source definition as JSON bytes.

        Raises:
            ValidationError: If the definition has no name.
        """
        if not self.datasource.name:
            raise ValidationError("datasource name must not be empty")
        definition: dict[str, Any] = dict(self.datasource.definition)
        return json.dumps(definition).encode()


__all__ = [
    "DashboardPipeline",
    "DataSourcePipeline",
    "JsonnetEvaluator",
    "encode_dashboard",
    "fetch_url",
    "substitute_inputs",
]
