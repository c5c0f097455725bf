"""BioAge Health MCP Server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from bioage.core.config.settings import get_settings
from bioage.core.storage.database import PreferencesDatabase
from bioage.core.storage.encryption import EncryptionError, ValueEncryptor
from bioage.core.storage.kv_store import EncryptedKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from bioage.domains.health.connectors.entry_store import EntryStore
from bioage.domains.health.connectors.profile_store import ProfileService
from bioage.domains.health.domain_logic.summary import EngineParameters
from bioage.domains.health.prompts.bio_age_prompts import register_bio_age_prompts
from bioage.domains.health.resources.reference import register_reference_resources
from bioage.domains.health.tools.bio_age_tools import register_bio_age_tools
from bioage.domains.health.tools.entry_tools import register_entry_tools
from bioage.domains.health.tools.import_tools import register_import_tools
from bioage.domains.health.tools.profile_tools import register_profile_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "BioAge Health"
SERVER_VERSION = "0.1.0"


def _create_profile_store(db_path: str, encryption_key: str) -> tuple[KeyValueStore, bool]:
    """Encrypted SQLite store when a key is configured, else in-memory."""
    if not encryption_key:
        logger.info(
            "No ENCRYPTION_KEY configured; profile preferences are kept in memory only. "
            "Set ENCRYPTION_KEY to persist them."
        )
        return InMemoryKeyValueStore(), False
    try:
        encryptor = ValueEncryptor(encryption_key)
    except EncryptionError as exc:
        logger.error("Failed to initialize preference storage: %s", exc)
        logger.warning("Continuing without persistence; preferences will not be stored")
        return InMemoryKeyValueStore(), False
    database = PreferencesDatabase(db_path)
    database.initialize()
    logger.info("Preference store initialized: %s (schema v%d)", db_path, database.get_schema_version())
    return EncryptedKeyValueStore(database, encryptor), True


def create_app(
    *,
    store_override: EntryStore | None = None,
    profile_store_override: KeyValueStore | None = None,
) -> FastMCP:
    """Create and configure the BioAge Health MCP server.

    1. Loads the reference tables and scoring constants
    2. Creates the session entry store
    3. Opens the profile preference store (encrypted SQLite or in-memory)
    4. Registers all tools, resources and prompts
    """
    settings = get_settings()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Biological age from wearable exports. Import an Apple Health or "
            "Google Fit export (or log readings by hand), then ask for metric "
            "scores, a biological age estimate and a ranked improvement plan. "
            "Estimates are for wellness only, not diagnosis."
        ),
    )

    params = EngineParameters.from_settings(settings)
    logger.info(
        "Reference tables ready: %d metrics, %d ethnicities",
        len(params.tables.metrics),
        len(params.tables.ethnicities),
    )

    entry_store = store_override if store_override is not None else EntryStore()

    if profile_store_override is not None:
        kv_store, persistent = profile_store_override, True
    else:
        kv_store, persistent = _create_profile_store(settings.db_path, settings.encryption_key)

    profiles = ProfileService(
        kv_store,
        ethnicities=set(params.tables.ethnicities),
        default_age=settings.default_age,
        default_sex=settings.default_sex,
        default_ethnicity=settings.default_ethnicity,
    )

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "metrics": [m.value for m in params.tables.metrics],
            "entries": len(entry_store),
            "profile_persistence": persistent,
        }

    register_import_tools(server, entry_store, profiles, settings)
    register_entry_tools(server, entry_store)
    register_profile_tools(server, profiles, params.tables)
    register_bio_age_tools(server, entry_store, profiles, params)
    logger.info("BioAge tools registered")

    register_reference_resources(server, params.tables, profiles)
    register_bio_age_prompts(server)

    return server


# Module-level instance for FastMCP discovery ("...app.py:mcp").
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
