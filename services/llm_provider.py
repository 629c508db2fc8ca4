"""
Inference provider adapter.
Wraps the Ollama streaming chat API as an async sequence of provider deltas.
"""
from typing import AsyncIterator, Optional
import httpx
import ollama
from config import Config
from models.chat_models import ProviderDelta
from utils.errors import UpstreamError
from utils.logger import app_logger


class OllamaProvider:
    """Streams chat completions from an Ollama server."""

    def __init__(self, client: Optional[ollama.AsyncClient] = None, model: Optional[str] = None):
        self.client = client if client is not None else ollama.AsyncClient(host=Config.OLLAMA_HOST)
        self.model = model or Config.OLLAMA_MODEL

    @staticmethod
    def to_delta(chunk) -> ProviderDelta:
        """
        Convert one Ollama stream chunk into a provider delta.

        Chunks are ChatResponse objects (or plain dicts) shaped like
        {"message": {"content": "..."}, "done": bool, "done_reason": "stop"}.
        """
        message = chunk.get('message') or {}
        content = message.get('content') or None

        finish_reason = None
        if chunk.get('done'):
            finish_reason = chunk.get('done_reason') or "stop"

        return ProviderDelta(content=content, finish_reason=finish_reason)

    async def stream_chat(self, messages: list[dict]) -> AsyncIterator[ProviderDelta]:
        """
        Stream the model's reply to a conversation.

        Args:
            messages: Conversation as a list of {"role", "content"} dicts

        Yields:
            ProviderDelta per chunk received from Ollama

        Raises:
            UpstreamError: If Ollama rejects the request or cannot be reached
        """
        app_logger.info(f"Starting {self.model} stream for {len(messages)} messages")

        stream = None
        try:
            stream = await self.client.chat(
                model=self.model,
                messages=messages,
                stream=True
            )
            async for chunk in stream:
                yield self.to_delta(chunk)

        except ollama.ResponseError as e:
            app_logger.error(f"Ollama error: {e.error}")
            raise UpstreamError(e.error) from e
        except (httpx.HTTPError, ConnectionError) as e:
            app_logger.error(f"Ollama connection error: {e}")
            raise UpstreamError(str(e) or "Unable to reach the model provider") from e
        finally:
            if stream is not None and hasattr(stream, "aclose"):
                try:
                    await stream.aclose()
                except Exception as e:
                    app_logger.warning(f"Error closing stream: {e}")
