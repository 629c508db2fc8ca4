"""
HTTP client utilities with connection pooling.
Provides the reusable httpx client used by the chat client.
"""
import httpx
from config import Config


class HTTPClientManager:
    """Manages the shared httpx client with connection pooling."""

    _chat_client: httpx.AsyncClient | None = None

    @classmethod
    def get_chat_client(cls) -> httpx.AsyncClient:
        """
        Get or create a shared httpx client for talking to the relay.

        Features:
        - Connection pooling (reuses TCP connections)
        - No read timeout by default, streams can stay open for a long time

        Returns:
            Configured httpx.AsyncClient pointed at CHAT_SERVER_URL
        """
        if cls._chat_client is None:
            limits = httpx.Limits(
                max_connections=4,
                max_keepalive_connections=2,
                keepalive_expiry=30.0
            )

            cls._chat_client = httpx.AsyncClient(
                base_url=Config.CHAT_SERVER_URL,
                timeout=httpx.Timeout(Config.CLIENT_TIMEOUT, connect=10.0),
                limits=limits
            )

        return cls._chat_client

    @classmethod
    async def close_all(cls) -> None:
        """
        Close all managed clients and clean up connections.
        """
        if cls._chat_client is not None:
            await cls._chat_client.aclose()
            cls._chat_client = None
