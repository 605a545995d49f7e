# Test Configuration
# Shared pytest fixtures for titanscan

import pytest
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

from titanscan.adapters import ToolAdapter
from titanscan.errors import AdapterEmptyResult, AdapterError
from titanscan.models import Insights, Vulnerability
from titanscan.orchestrator import ScanOrchestrator
from titanscan.progress import InMemoryProgressStore


TARGET = "https://example.com"


# ============================================================================
# Stub Tool Adapters
# ============================================================================

class StubAdapter(ToolAdapter):
    """Adapter returning canned output or raising a canned error."""

    def __init__(self, tool: str, output: str = "", error: Optional[AdapterError] = None):
        self.tool = tool
        self.output = output
        self.error = error
        self.calls = []

    async def invoke(self, target, options=None):
        self.calls.append(target)
        if self.error is not None:
            raise self.error
        return self.output


@pytest.fixture
def ok_adapter():
    return StubAdapter("nuclei", output="[high] CVE-2024-1234 found on https://example.com")


@pytest.fixture
def failing_adapter():
    return StubAdapter(
        "nmap-sV-A-O",
        error=AdapterEmptyResult("No hosts were found up during the scan.", tool="nmap-sV-A-O"),
    )


# ============================================================================
# Collaborator Mocks
# ============================================================================

@pytest.fixture
def sample_insights():
    return Insights(
        vulnerabilities=[
            Vulnerability(
                title="CVE-2024-1234",
                severity="HIGH",
                description="Outdated component",
                remediation="Upgrade",
            )
        ],
        summary="One high severity issue.",
        key_points=["Outdated component detected"],
    )


@pytest.fixture
def mock_analyzer(sample_insights):
    analyzer = MagicMock()
    analyzer.analyze = AsyncMock(return_value=sample_insights)
    return analyzer


@pytest.fixture
def mock_scan_store():
    store = MagicMock()
    store.save = AsyncMock(return_value={"id": "record-123"})
    store.list_history = AsyncMock(return_value=[])
    store.get_by_id = AsyncMock(return_value=None)
    return store


@pytest.fixture
def progress_store():
    return InMemoryProgressStore()


@pytest.fixture
def make_orchestrator(progress_store, mock_analyzer, mock_scan_store):
    """Factory building an orchestrator over the given adapters."""
    def _make(*adapters, **kwargs):
        return ScanOrchestrator(
            adapters={adapter.tool: adapter for adapter in adapters},
            progress_store=progress_store,
            analyzer=mock_analyzer,
            scan_store=mock_scan_store,
            **kwargs,
        )
    return _make


# ============================================================================
# Mock LLM Client
# ============================================================================

@pytest.fixture
def mock_llm_client():
    """Mock OpenAI-compatible client returning a JSON insight answer."""
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = """```json
{
  "vulnerabilities": [
    {"title": "Outdated Apache", "severity": "MEDIUM", "description": "Apache 2.4.29", "remediation": "Upgrade"}
  ],
  "summary": "Server runs an outdated web server.",
  "keyPoints": ["Apache 2.4.29 exposed"]
}
```"""

    mock_client.chat.completions.create = AsyncMock(return_value=mock_response)
    return mock_client
