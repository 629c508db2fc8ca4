"""
Chat session controller.
Keeps the conversation, sends it to the relay and rebuilds the assistant
reply from the SSE stream while tracking rate limit and error state.
"""
from contextlib import aclosing
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, List, Optional
import httpx
from client.sse_decoder import StreamDecoder
from models.api_models import Message
from models.chat_models import ChatState, RateLimitState, StreamEvent, parse_timestamp
from utils.errors import (
    ChatRelayError,
    RateLimitedError,
    TransportError,
    UnknownStatusError,
    UpstreamError
)
from utils.http_client import HTTPClientManager
from utils.logger import client_logger


class ChatSession:
    """
    Client-side chat controller.

    Each send runs IDLE -> SENDING -> STREAMING -> COMPLETED / ERRORED /
    RATE_LIMITED and then returns to IDLE. The terminal state of the latest
    send is kept in `last_outcome`.
    """

    CHAT_PATH = "/chat-stream"
    STATUS_PATH = "/rate-limit-status"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        on_change: Optional[Callable[["ChatSession"], None]] = None
    ):
        self.client = client if client is not None else HTTPClientManager.get_chat_client()
        self.on_change = on_change
        self.messages: List[Message] = []
        self.rate_limit = RateLimitState()
        self.state = ChatState.IDLE
        self.last_outcome: Optional[ChatState] = None
        self.error: Optional[str] = None
        self.is_typing = False

    @property
    def is_busy(self) -> bool:
        """Whether a request is in flight."""
        return self.state in (ChatState.SENDING, ChatState.STREAMING)

    def is_rate_limited(self, now: Optional[datetime] = None) -> bool:
        """Whether the current rate limit state blocks sending."""
        return self.rate_limit.blocks_sending(now or datetime.now(timezone.utc))

    def seconds_until_reset(self, now: Optional[datetime] = None) -> Optional[int]:
        """Seconds until the rate limit window resets, floored at 0."""
        return self.rate_limit.seconds_until_reset(now or datetime.now(timezone.utc))

    def can_send(self, text: str, now: Optional[datetime] = None) -> bool:
        """Whether send(text) would issue a request right now."""
        return bool(text and text.strip()) and not self.is_busy and not self.is_rate_limited(now)

    async def send(self, text: str) -> Optional[ChatState]:
        """
        Send a user message and stream the assistant reply into the conversation.

        Args:
            text: User input

        Returns:
            Terminal state of this send, or None if sending is not allowed
        """
        if not self.can_send(text):
            client_logger.debug("Send ignored: empty input, request in flight or rate limited")
            return None

        pre_send = [*self.messages, Message(role="user", content=text.strip())]
        self.messages = [*pre_send, Message(role="assistant", content="")]
        self.is_typing = True
        self.error = None
        self._set_state(ChatState.SENDING)

        outcome = ChatState.ERRORED
        try:
            outcome = await self._exchange(pre_send)
        except RateLimitedError as e:
            self.error = f"Rate limited: {e.message}. Try again later."
            outcome = ChatState.RATE_LIMITED
        except ChatRelayError as e:
            client_logger.error(f"Error sending message: {e.message}")
            self.error = f"Error: {e.message}"
            outcome = ChatState.ERRORED
        finally:
            # Partial replies are dropped on every failure path
            if outcome is not ChatState.COMPLETED:
                self.messages = pre_send
            self.is_typing = False
            self.last_outcome = outcome
            self._set_state(ChatState.IDLE)

        return outcome

    async def refresh_rate_limit(self) -> RateLimitState:
        """
        Update the rate limit state from the status endpoint without spending a chat request.

        Raises:
            RateLimitedError: If status checks themselves are throttled
            UnknownStatusError: On any other unexpected status
            TransportError: If the relay cannot be reached
        """
        try:
            response = await self.client.get(self.STATUS_PATH)
        except httpx.HTTPError as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

        if response.status_code == 429:
            raise self._rate_limited_error(response)
        if not response.is_success:
            raise UnknownStatusError(response.status_code)

        data = response.json()
        self.rate_limit = RateLimitState(
            limit=int(data.get("limit", 0)),
            remaining=int(data.get("remaining", 0)),
            reset_at=parse_timestamp(data.get("resetTime")),
            is_limited=bool(data.get("isRateLimited"))
        )
        self._notify()
        return self.rate_limit

    async def _exchange(self, conversation: List[Message]) -> ChatState:
        payload = {"messages": [message.model_dump() for message in conversation]}

        try:
            async with self.client.stream("POST", self.CHAT_PATH, json=payload) as response:
                self.rate_limit = RateLimitState.from_headers(response.headers, response.status_code)
                self._notify()

                if response.status_code == 429:
                    await response.aread()
                    raise self._rate_limited_error(response)

                if not response.is_success:
                    raise UnknownStatusError(response.status_code)

                self._set_state(ChatState.STREAMING)
                await self._consume(response)

        except httpx.HTTPError as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

        return ChatState.COMPLETED

    async def _consume(self, response: httpx.Response) -> None:
        """Apply stream events to the placeholder until the stream terminates."""
        assistant_message = ""

        async with aclosing(self._events(response)) as events:
            async for event in events:
                if event.content is not None:
                    assistant_message += event.content
                    self.messages[-1] = Message(role="assistant", content=assistant_message)
                    self._notify()

                if event.error is not None:
                    raise UpstreamError(event.error)

                if event.is_terminal:
                    return

        client_logger.debug("Stream ended without an explicit done event")

    async def _events(self, response: httpx.Response) -> AsyncIterator[StreamEvent]:
        decoder = StreamDecoder()
        async for chunk in response.aiter_bytes():
            for event in decoder.feed(chunk):
                yield event
        for event in decoder.flush():
            yield event

    def _rate_limited_error(self, response: httpx.Response) -> RateLimitedError:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        reset_at = parse_timestamp(data.get("resetTime"))
        if response.request.url.path == self.CHAT_PATH and self.rate_limit.reset_at is None:
            self.rate_limit.reset_at = reset_at

        return RateLimitedError(
            message=str(data.get("error") or "Too many requests"),
            limit=int(data.get("limit", self.rate_limit.limit)),
            remaining=int(data.get("remaining", 0)),
            reset_at=reset_at,
            retry_after_ms=data.get("retryAfterMs")
        )

    def _set_state(self, state: ChatState) -> None:
        self.state = state
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
