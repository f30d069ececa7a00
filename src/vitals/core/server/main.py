"""Vitals server entry point — ``python -m vitals.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from vitals.core.config.settings import get_settings
from vitals.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the Vitals MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.vitals_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger = logging.getLogger(__name__)
    if not settings.vitals_allow_insecure_bind and not _is_loopback_host(settings.vitals_host):
        raise RuntimeError(
            "Refusing to expose personal health data on a non-loopback host without an "
            "auth layer. Set VITALS_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting Vitals health state server on %s:%d",
        settings.vitals_host,
        settings.vitals_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.vitals_host,
        port=settings.vitals_port,
    )


if __name__ == "__main__":
    run()
