import pytest
from unittest.mock import AsyncMock


@pytest.fixture
def anyio_backend():
    """Run anyio-marked tests on asyncio, the event loop the relay is built on."""
    return "asyncio"


@pytest.fixture
def mock_ollama_client():
    """Reusable mock for ollama.AsyncClient streaming two tokens."""
    client = AsyncMock()

    async def chat_side_effect(model, messages, stream=False, **kwargs):
        async def token_stream():
            yield {"message": {"content": "streamed "}, "done": False}
            yield {"message": {"content": "response"}, "done": False}
            yield {"message": {"content": ""}, "done": True, "done_reason": "stop"}
        return token_stream()

    client.chat.side_effect = chat_side_effect
    return client


@pytest.fixture
def ollama_client_builder():
    from tests.fixtures.mock_clients import OllamaClientBuilder
    return OllamaClientBuilder()


@pytest.fixture
def fake_provider():
    """Provider streaming "Hel", "lo" and a stop finish reason."""
    from models.chat_models import ProviderDelta
    from tests.fixtures.mock_clients import FakeProvider
    return FakeProvider(["Hel", "lo", ProviderDelta(finish_reason="stop")])


@pytest.fixture
def chat_payload():
    from tests.fixtures.responses import SIMPLE_CONVERSATION
    return SIMPLE_CONVERSATION


@pytest.fixture
def build_app(fake_provider):
    """Factory for relay apps with fresh limiters."""
    from main import create_app
    from services.rate_limiter import RateLimiter

    def _build(provider=None, chat_max=1, status_max=10, window_seconds=60):
        return create_app(
            provider=provider or fake_provider,
            chat_limiter=RateLimiter(chat_max, window_seconds, name="chat"),
            status_limiter=RateLimiter(status_max, window_seconds, name="status")
        )
    return _build


@pytest.fixture
def relay_app(build_app):
    """Relay app with the default chat limit of one request per minute."""
    return build_app()


@pytest.fixture
def configured_app(relay_app):
    """Test client for the pre-configured relay app."""
    from fastapi.testclient import TestClient

    with TestClient(relay_app) as client:
        yield client
