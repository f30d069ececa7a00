"""Vitals health-state MCP server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from vitals.core.config.settings import get_settings
from vitals.core.llm.provider import LLMProvider, create_provider
from vitals.core.storage.codec import PayloadCodec, PayloadCodecError
from vitals.core.storage.database import CacheDatabase, CacheDatabaseError
from vitals.core.storage.repository import ExtractionCacheRepository
from vitals.domains.health.extraction.orchestrator import ExtractionOrchestrator
from vitals.domains.health.extraction.structured import StructuredExtractor
from vitals.domains.health.store import HealthStateStore
from vitals.domains.health.tools.health_state_tools import register_health_state_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "Vitals Health State"
SERVER_VERSION = "0.1.0"


def _build_repository(db_path: str, encryption_key: str) -> ExtractionCacheRepository:
    try:
        codec = PayloadCodec(encryption_key)
    except PayloadCodecError as exc:
        logger.error("Invalid ENCRYPTION_KEY: %s", exc)
        logger.warning("Storing extraction cache payloads unencrypted")
        codec = PayloadCodec()

    database = CacheDatabase(db_path)
    try:
        database.initialize()
    except CacheDatabaseError as exc:
        logger.error("Failed to open extraction cache: %s", exc)
        logger.warning("Continuing with an in-memory cache; extractions will not persist")
        database = CacheDatabase(":memory:")
        database.initialize()

    logger.info(
        "Extraction cache initialized: %s (schema v%d, %s payloads)",
        db_path,
        database.get_schema_version(),
        "encrypted" if codec.encrypted else "plain",
    )
    return ExtractionCacheRepository(database, codec)


def create_app(
    *,
    store_override: HealthStateStore | None = None,
    provider_override: LLMProvider | None = None,
    repository_override: ExtractionCacheRepository | None = None,
) -> FastMCP:
    """Create and configure the Vitals MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Creates the structured (LLM) extractor, or none in mock mode
    3. Opens the extraction cache
    4. Builds the health state store over the data directory
    5. Registers all tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Personal health state server. Ingests lab reports, DEXA scans and "
            "wearable exports from a local data directory and serves biomarkers, "
            "body composition, activity, biological age and a canonical event feed."
        ),
    )

    # --- Structured extractor ---
    if provider_override is not None:
        provider: LLMProvider | None = provider_override
    else:
        if settings.llm_provider == "mock":
            provider_name = "mock"
            api_key = ""
            model = ""
        elif settings.llm_provider == "anthropic":
            api_key = settings.anthropic_api_key
            model = settings.anthropic_model
            provider_name = "anthropic" if api_key else "mock"
        elif settings.llm_provider == "openai":
            api_key = settings.openai_api_key
            model = settings.openai_model
            provider_name = "openai" if api_key else "mock"
        else:  # pragma: no cover
            raise ValueError(f"Unknown LLM provider: {settings.llm_provider!r}")

        if provider_name == "mock" and settings.llm_provider != "mock":
            logger.warning(
                "No API key configured for provider '%s'; using pattern extraction only",
                settings.llm_provider,
            )
        # The mock provider has no canned payloads outside tests
        provider = (
            None
            if provider_name == "mock"
            else create_provider(provider_name=provider_name, api_key=api_key, model=model)
        )

    structured = (
        StructuredExtractor(provider, max_tokens=settings.extraction_max_tokens)
        if provider is not None
        else None
    )

    # --- Extraction cache ---
    if repository_override is not None:
        repository = repository_override
    elif store_override is not None:
        repository = store_override.repository
    else:
        repository = _build_repository(settings.cache_db_path, settings.encryption_key)

    # --- Health state store ---
    if store_override is not None:
        store = store_override
    else:
        orchestrator = ExtractionOrchestrator(
            structured,
            timeout=settings.extraction_timeout_seconds,
            min_biomarker_count=settings.min_biomarker_count,
        )
        store = HealthStateStore(settings.vitals_data_dir, repository, orchestrator)
        logger.info("Health data directory: %s", store.data_dir)

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "data_dir": str(store.data_dir),
            "structured_extraction": store.orchestrator.structured is not None,
            "health_data_loaded": store.is_loaded(),
            "cached_documents": repository.count_entries(),
        }

    register_health_state_tools(server, store, repository)
    logger.info("Health state tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
