"""Shared test fixtures for Bloom tests."""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("SCORING_SERVICE_URL", "")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("DEFAULT_SCORING_METHOD", "weighted")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# ---------------------------------------------------------------------------
# Canonical observations
# ---------------------------------------------------------------------------

# Derives to factors [6, 8, 8, 8, 6]: weighted 7.2, penalized 6.9.
CANONICAL_OBSERVATIONS: dict[str, Any] = {
    "symptoms": ["fatigue", "headache"],
    "vitals": {"systolic": 135, "diastolic": 82, "fasting_blood_sugar": 95},
    "activity": {"daily_steps": 6000, "exercise_minutes": 20},
    "nutrition": {"water_glasses": 6, "meal_quality": 4},
    "pcos": {"has_pcos": True, "management_actions": 2},
}


@pytest.fixture
def canonical_observations() -> dict[str, Any]:
    return json.loads(json.dumps(CANONICAL_OBSERVATIONS))


# ---------------------------------------------------------------------------
# Mock remote scoring service (fastmcp.Client stand-in)
# ---------------------------------------------------------------------------

_ITERATIVE_RESPONSE: dict[str, Any] = {
    "success": True,
    "score": 8.4,
    "status": "Stable",
    "equilibriumReached": True,
    "recommendations": [],
    "iterations": 4,
    "balanceStatus": "Harmonious",
    "equilibriumFactor": 2.1,
    "flowerLevel": 4,
    "rawScore": 8.5,
    "standardDeviation": 0.9,
    "oscillationDetected": False,
    "factorWeights": {"sleep": 0.2},
}


@dataclass
class _TextBlock:
    """Mimics fastmcp content block structure."""

    type: str
    text: str


class MockMCPClient:
    """Mock fastmcp.Client returning canned scoring service responses."""

    def __init__(self, iterative_response: Any = None) -> None:
        self.iterative_response = (
            iterative_response if iterative_response is not None else dict(_ITERATIVE_RESPONSE)
        )
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.raise_on_call: Exception | None = None
        self.delay_s: float = 0.0

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> list[Any]:
        self.calls.append((tool_name, arguments))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.raise_on_call is not None:
            raise self.raise_on_call
        if tool_name == "calculate_health_score_iterative":
            payload = self.iterative_response
        elif tool_name == "health_check":
            payload = {"status": "ok"}
        else:
            payload = {"success": False, "error": f"Unknown tool: {tool_name}"}
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return [_TextBlock(type="text", text=text)]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def mock_mcp_client() -> MockMCPClient:
    return MockMCPClient()


@pytest.fixture
def scoring_service(mock_mcp_client: MockMCPClient):
    """ScoringServiceClient backed by MockMCPClient."""
    from bloom.core.scoring_service.client import ScoringServiceClient

    return ScoringServiceClient(mock_mcp_client, timeout_s=1.0)


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def score_db():
    """In-memory ScoreDatabase."""
    from bloom.core.storage.database import ScoreDatabase

    db = ScoreDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    from cryptography.fernet import Fernet

    from bloom.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def score_repository(score_db, field_encryptor):
    from bloom.core.storage.repository import ScoreRepository

    return ScoreRepository(score_db, field_encryptor)


@pytest.fixture
def audit_logger(score_db):
    from bloom.core.audit.logger import AuditLogger

    return AuditLogger(score_db)
