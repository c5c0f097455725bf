"""BioAge server entry point — ``python -m bioage.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from bioage.core.config.settings import Settings, get_settings
from bioage.core.server.app import create_app

logger = logging.getLogger(__name__)


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def check_bind(settings: Settings) -> None:
    """Refuse a public bind unless explicitly allowed.

    The server exposes personal health readings and has no auth layer.
    """
    if settings.bioage_allow_insecure_bind or _is_loopback_host(settings.bioage_host):
        return
    raise RuntimeError(
        f"Refusing to serve health data on non-loopback host {settings.bioage_host!r} "
        "without an auth layer. Set BIOAGE_ALLOW_INSECURE_BIND=true to override (unsafe)."
    )


def run() -> None:
    """Start the BioAge MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.bioage_log_level.upper(), logging.INFO))
    check_bind(settings)

    if settings.encryption_key:
        logger.info("Profile preferences persist encrypted at %s", settings.db_path)
    else:
        logger.warning("ENCRYPTION_KEY not set; profile preferences are kept in memory only")
    if settings.reference_dir:
        logger.info("Using reference tables from %s", settings.reference_dir)

    logger.info(
        "Starting BioAge Health server on %s:%d (anchors %s, clamp ±%g years)",
        settings.bioage_host,
        settings.bioage_port,
        settings.score_anchors,
        settings.bio_age_clamp_years,
    )
    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.bioage_host,
        port=settings.bioage_port,
    )


if __name__ == "__main__":
    run()
