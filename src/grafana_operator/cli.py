"""Command-line interface argument parsing for the operator.

Every option overrides the matching ``GRAFANA_OPERATOR_*`` environment
variable.
"""

from __future__ import annotations

import argparse
from pathlib import Path


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of arguments to parse. If None, uses sys.argv.

    Returns:
        Parsed arguments namespace with the attributes namespace, once,
        log_level, env_file, grafana_image, grafana_image_tag,
        plugins_init_image, plugins_init_tag and jsonnet_location.
    """
    parser = argparse.ArgumentParser(
        description="Grafana operator - reconciles Grafana instances, dashboards and data sources",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--namespace",
        default=None,
        help="Only watch this namespace (overrides GRAFANA_OPERATOR_WATCH_NAMESPACE)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Reconcile every existing resource once, then exit",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides GRAFANA_OPERATOR_LOG_LEVEL)",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: ./.env)",
    )

    parser.add_argument("--grafana-image", default=None, help="Grafana image repository")
    parser.add_argument("--grafana-image-tag", default=None, help="Grafana image tag")
    parser.add_argument("--plugins-init-image", default=None, help="Plugins init container image repository")
    parser.add_argument("--plugins-init-tag", default=None, help="Plugins init container image tag")
    parser.add_argument(
        "--jsonnet-location",
        default=None,
        help="Jsonnet library search path (overrides GRAFANA_OPERATOR_JSONNET_LOCATION)",
    )

    return parser.parse_args(args)


__all__ = ["parse_args"]
