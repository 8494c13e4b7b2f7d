"""The admin credentials secret.

Values live base64-encoded in ``data``. A declared user or password always
wins; otherwise the value already stored in the secret is kept, and only a
brand-new secret gets the default user and a freshly generated password.
"""

from __future__ import annotations

import base64
import secrets
import string
from typing import Any

from grafana_operator.errors import FatalError
from grafana_operator.model.names import (
    DEFAULT_ADMIN_USER,
    GRAFANA_ADMIN_PASSWORD_ENV_VAR,
    GRAFANA_ADMIN_USER_ENV_VAR,
    admin_secret_name,
    object_metadata,
    start_from,
)
from grafana_operator.models import GrafanaInstance

GENERATED_PASSWORD_LENGTH = 10


def generate_password(length: int = GENERATED_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(string.ascii_letters) for _ in range(length))


def _encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _decode(value: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode()
    except (ValueError, UnicodeDecodeError) as e:
        raise FatalError(f"admin secret value is not valid base64: {e}") from e


def _pick(declared: str, current_data: dict[str, str], key: str, fallback: str) -> str:
    if declared:
        return _encode(declared)
    existing = current_data.get(key)
    if existing:
        return existing
    return _encode(fallback)


def build_admin_secret(instance: GrafanaInstance, current: dict[str, Any] | None = None) -> dict[str, Any]:
    """Desired admin secret.

    Args:
        instance: The Grafana instance.
        current: The secret stored in the cluster, if any.
    """
    current_data = dict((current or {}).get("data") or {})
    secret = start_from(current, "v1", "Secret")
    if current is None:
        secret["metadata"] = object_metadata(instance, admin_secret_name(instance))
        secret["type"] = "Opaque"
    user = _pick(instance.admin_user, current_data, GRAFANA_ADMIN_USER_ENV_VAR, DEFAULT_ADMIN_USER)
    password = _pick(
        instance.admin_password, current_data, GRAFANA_ADMIN_PASSWORD_ENV_VAR, generate_password()
    )
    secret["data"] = {
        GRAFANA_ADMIN_USER_ENV_VAR: user,
        GRAFANA_ADMIN_PASSWORD_ENV_VAR: password,
    }
    return secret


def admin_credentials(secret: dict[str, Any] | None) -> tuple[str, str]:
    """Decode the admin user and password from a stored secret.

    Raises:
        FatalError: If the secret is missing or either value is empty.
    """
    if secret is None:
        raise FatalError("admin credentials secret not found")
    data = secret.get("data") or {}
    user = _decode(data.get(GRAFANA_ADMIN_USER_ENV_VAR) or "")
    password = _decode(data.get(GRAFANA_ADMIN_PASSWORD_ENV_VAR) or "")
    if not user or not password:
        raise FatalError("admin credentials secret is missing the user or password")
    return user, password
