"""Bloom health score MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from bloom.core.audit.logger import AuditLogger
from bloom.core.config.settings import Settings, get_settings
from bloom.core.scoring_service.client import ScoringServiceClient
from bloom.core.storage.database import ScoreDatabase
from bloom.core.storage.encryption import EncryptionError, FieldEncryptor
from bloom.core.storage.repository import ScoreRepository
from bloom.domains.maternal_health.resources.scoring_constants import register_scoring_resources
from bloom.domains.maternal_health.tools.health_score_tools import register_health_score_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "Bloom Health Score"
SERVER_VERSION = "0.1.0"


def create_app(
    *,
    settings: Settings | None = None,
    database_override: ScoreDatabase | None = None,
    encryptor_override: FieldEncryptor | None = None,
    scoring_service_override: ScoringServiceClient | None = None,
) -> FastMCP:
    """Create and configure the Bloom MCP server.

    1. Creates the FastMCP server instance
    2. Creates the remote scoring client (when SCORING_SERVICE_URL is set)
    3. Initializes encrypted storage and the audit log (when ENCRYPTION_KEY is set)
    4. Registers all tools and resources
    """
    settings = settings or get_settings()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Maternal health score engine. Derives health factors from raw "
            "observations, computes a balance-penalized 0-10 health score "
            "(weighted or iterative equilibrium method) with status, balance, "
            "flower tier and recommendations, and keeps a per-user history."
        ),
    )

    # --- Remote iterative scoring service ---
    scoring_service: ScoringServiceClient | None = None
    if scoring_service_override is not None:
        scoring_service = scoring_service_override
    elif settings.scoring_service_url:
        from fastmcp import Client as MCPClient

        scoring_service = ScoringServiceClient(
            MCPClient(settings.scoring_service_url),
            timeout_s=settings.scoring_service_timeout_s,
        )
        logger.info("Scoring service configured for %s", settings.scoring_service_url)
    else:
        logger.info("No SCORING_SERVICE_URL configured; iterative scoring runs locally")

    # --- Encrypted storage + audit log ---
    repository: ScoreRepository | None = None
    audit_logger: AuditLogger | None = None
    if database_override is not None and encryptor_override is not None:
        repository = ScoreRepository(database_override, encryptor_override)
        audit_logger = AuditLogger(database_override)
    elif settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            score_db = ScoreDatabase(settings.db_path)
            score_db.initialize()
            repository = ScoreRepository(score_db, encryptor)
            audit_logger = AuditLogger(score_db)
            logger.info(
                "Score store initialized: %s (schema v%d, %d key(s))",
                settings.db_path,
                score_db.get_schema_version(),
                encryptor.key_count,
            )
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence, scores will not be stored")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured, running without persistence. "
            "Set ENCRYPTION_KEY to keep a score history."
        )

    @server.tool
    async def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "default_scoring_method": settings.default_scoring_method,
            "scoring_service_configured": scoring_service is not None,
            "storage_enabled": repository is not None,
        }
        if repository is not None:
            status["scores_stored"] = repository.count_records()
        return status

    # --- Scoring tools (always available) ---
    register_health_score_tools(
        server,
        repository,
        audit_logger,
        scoring_service,
        default_method=settings.default_scoring_method,
        default_max_iterations=settings.max_iterations,
        default_convergence_threshold=settings.convergence_threshold,
    )
    logger.info("Health score tools registered")

    # --- History, trend, retention and audit tools (require storage) ---
    if repository is not None and audit_logger is not None:
        from bloom.domains.maternal_health.domain_logic.trend_analyzer import TrendAnalyzer
        from bloom.domains.maternal_health.tools.audit_tools import register_audit_tools
        from bloom.domains.maternal_health.tools.data_management_tools import (
            register_data_management_tools,
        )
        from bloom.domains.maternal_health.tools.health_trend_tools import (
            register_health_trend_tools,
        )

        register_health_trend_tools(server, TrendAnalyzer(repository), audit_logger)
        register_data_management_tools(server, repository, audit_logger)
        register_audit_tools(server, audit_logger)
        logger.info("Trend, data management and audit tools registered")

    register_scoring_resources(server)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when accessed (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
