"""The ``grafana.ini`` config map."""

from __future__ import annotations

import hashlib
from typing import Any

from grafana_operator.model.names import (
    GRAFANA_CONFIG_FILE_NAME,
    LAST_CONFIG_ANNOTATION,
    config_map_name,
    object_metadata,
    start_from,
)
from grafana_operator.models import GrafanaInstance

# Carried by the admin secret, never written into the config map.
SECRET_SECURITY_KEYS = frozenset({"admin_user", "admin_password"})


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_format_value(item) for item in value)
    return str(value)


def render_grafana_ini(instance: GrafanaInstance) -> tuple[str, str]:
    """Render ``spec.config`` as ini text.

    Sections and keys are emitted in sorted order and empty values are
    skipped, so the text only changes when the declared configuration does.

    Returns:
        Tuple of (ini text, sha256 hex digest of the text).
    """
    lines: list[str] = []
    for section in sorted(instance.config):
        values = instance.config[section]
        if not isinstance(values, dict):
            continue
        entries = [
            f"{key} = {_format_value(value)}"
            for key, value in sorted(values.items())
            if value is not None
            and value != ""
            and not (section == "security" and key in SECRET_SECURITY_KEYS)
        ]
        if not entries:
            continue
        lines.append(f"[{section}]")
        lines.extend(entries)
        lines.append("")
    text = "\n".join(lines)
    return text, hashlib.sha256(text.encode()).hexdigest()


def build_config_map(instance: GrafanaInstance, current: dict[str, Any] | None = None) -> dict[str, Any]:
    """Desired config map; the ini hash is stored in the ``last-config`` annotation."""
    text, digest = render_grafana_ini(instance)
    config_map = start_from(current, "v1", "ConfigMap")
    if current is None:
        config_map["metadata"] = object_metadata(instance, config_map_name(instance))
    config_map["metadata"]["annotations"] = {LAST_CONFIG_ANNOTATION: digest}
    data = dict(config_map.get("data") or {})
    data[GRAFANA_CONFIG_FILE_NAME] = text
    config_map["data"] = data
    return config_map
