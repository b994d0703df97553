"""Pytest configuration and fixtures."""

import os
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv

# Load test environment variables
load_dotenv()

# Set test environment
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")

from centerhub.adapters.inference_client import GenerationRequest, GenerationResponse, InferenceClient  # noqa: E402
from centerhub.models.tenant import TenantProfile  # noqa: E402

CUCUTA_ENDPOINT = "https://mcp.cucuta.example.com/api/mcp"


class FakeInferenceClient(InferenceClient):
    """Inference client scripted per request purpose.

    Each purpose maps to a list of responses or exceptions consumed in order;
    the last entry repeats once the list is down to one item.
    """

    provider = "fake"

    def __init__(self, script: Optional[Dict[str, List[Any]]] = None):
        self.script = {purpose: list(items) for purpose, items in (script or {}).items()}
        self.requests: List[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        queue = self.script.get(request.purpose)
        if not queue:
            return GenerationResponse(text=f"{request.purpose} ok")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def calls(self, purpose: str) -> List[GenerationRequest]:
        return [r for r in self.requests if r.purpose == purpose]


def build_http_client(
    post_payloads: Optional[List[Any]] = None,
    post_side_effect: Any = None,
    get_side_effect: Any = None,
) -> AsyncMock:
    """AsyncMock standing in for httpx.AsyncClient used as an async context manager."""
    mock_client = AsyncMock()

    health_response = MagicMock()
    health_response.raise_for_status = MagicMock()
    mock_client.get = AsyncMock(return_value=health_response, side_effect=get_side_effect)

    if post_side_effect is None:
        responses = []
        for payload in post_payloads or []:
            response = MagicMock()
            response.json.return_value = payload
            response.raise_for_status = MagicMock()
            responses.append(response)
        post_side_effect = responses
    mock_client.post = AsyncMock(side_effect=post_side_effect)

    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    return mock_client


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_inference_class():
    return FakeInferenceClient


@pytest.fixture
def http_client_factory():
    return build_http_client


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_profile(tmp_path):
    """Factory for tenant profiles backed by SQLite files under tmp_path."""
    def _make(tenant_id: str = "default", **overrides) -> TenantProfile:
        data = {
            "tenant_id": tenant_id,
            "display_name": f"{tenant_id.title()} Center",
            "storage_url": f"sqlite:///{tmp_path / (tenant_id + '.db')}",
            "llm_provider": "gemini",
            "llm_model": "gemini-2.0-flash",
        }
        data.update(overrides)
        return TenantProfile(**data)
    return _make


@pytest.fixture
def profiles(make_profile):
    """Default tenant without remote tools and a cucuta tenant with them."""
    return {
        "default": make_profile("default", remote_tools_enabled=False, fallback_enabled=True),
        "cucuta": make_profile(
            "cucuta",
            remote_tool_endpoint=CUCUTA_ENDPOINT,
            remote_tools_enabled=True,
            fallback_enabled=True,
            contact={
                "phone": "+57 7 234-5678",
                "address": "Avenida 12 #34-56, Cucuta",
                "hours": "Monday to Friday: 6:00 AM - 6:00 PM",
            },
        ),
    }
