"""Bloom server entry point: ``python -m bloom.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from bloom.core.config.settings import get_settings
from bloom.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the Bloom MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.bloom_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.bloom_allow_insecure_bind and not _is_loopback_host(settings.bloom_host):
        raise RuntimeError(
            "Refusing to bind Bloom server to a non-loopback host without an auth layer. "
            "Set BLOOM_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting Bloom health score server on %s:%d",
        settings.bloom_host,
        settings.bloom_port,
    )

    mcp = create_app(settings=settings)
    mcp.run(
        transport="streamable-http",
        host=settings.bloom_host,
        port=settings.bloom_port,
    )


if __name__ == "__main__":
    run()
