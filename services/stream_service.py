"""
Streaming service containing the core relay logic.
Re-frames provider deltas as SSE events and watches for client disconnects.
"""
import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Optional
from config import Config
from models.chat_models import StreamEvent
from utils.errors import UpstreamError
from utils.logger import app_logger


DisconnectCheck = Callable[[], Awaitable[bool]]


class StreamService:
    """Service for relaying provider streams to SSE clients."""

    @staticmethod
    def send_sse_event(event: StreamEvent) -> str:
        """Format a stream event as a Server-Sent Events (SSE) data block."""
        return f"data: {json.dumps(event.to_payload(), separators=(',', ':'))}\n\n"

    @staticmethod
    async def watch_disconnect(
        is_disconnected: DisconnectCheck,
        disconnected: asyncio.Event,
        poll_interval: float
    ) -> None:
        """Set the disconnected event once the client transport goes away."""
        while not disconnected.is_set():
            if await is_disconnected():
                app_logger.info("Client disconnected")
                disconnected.set()
                return
            await asyncio.sleep(poll_interval)

    @staticmethod
    async def relay_chat_stream(
        provider,
        messages: list[dict],
        is_disconnected: DisconnectCheck,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None
    ) -> AsyncIterator[str]:
        """Relay a provider stream to the client as SSE events.

        Waits on the next provider delta and the client disconnect signal at the
        same time. Emits one content event per non-empty delta, a finish_reason
        event when the provider reports one, then exactly one terminal event:
        done on completion or error on failure. Nothing is emitted after the
        client disconnects.

        Args:
            provider: Object exposing stream_chat(messages) -> AsyncIterator[ProviderDelta]
            messages: Conversation to send to the provider
            is_disconnected: Coroutine function reporting whether the client left
            timeout: Deadline for the whole provider call in seconds (defaults to Config)
            poll_interval: Seconds between disconnect checks (defaults to Config)

        Yields:
            SSE-formatted event strings
        """
        if timeout is None:
            timeout = Config.PROVIDER_TIMEOUT
        if poll_interval is None:
            poll_interval = Config.DISCONNECT_POLL_INTERVAL

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None

        deltas = provider.stream_chat(messages)
        disconnected = asyncio.Event()
        watcher = asyncio.create_task(
            StreamService.watch_disconnect(is_disconnected, disconnected, poll_interval)
        )
        disconnect_signal = asyncio.create_task(disconnected.wait())
        next_delta: Optional[asyncio.Future] = None
        content_events = 0

        try:
            while True:
                next_delta = asyncio.ensure_future(deltas.__anext__())
                wait_timeout = None if deadline is None else max(0.0, deadline - loop.time())

                done, _ = await asyncio.wait(
                    {next_delta, disconnect_signal},
                    timeout=wait_timeout,
                    return_when=asyncio.FIRST_COMPLETED
                )

                if disconnected.is_set():
                    app_logger.info(f"Abandoning provider stream after {content_events} content events")
                    return

                if not done:
                    raise UpstreamError(f"Model response timed out after {timeout:g}s")

                try:
                    delta = next_delta.result()
                except StopAsyncIteration:
                    break
                finally:
                    next_delta = None

                if delta.content:
                    content_events += 1
                    yield StreamService.send_sse_event(StreamEvent(content=delta.content))

                if delta.finish_reason:
                    if disconnected.is_set():
                        return
                    yield StreamService.send_sse_event(StreamEvent(finish_reason=delta.finish_reason))
                    break

            if disconnected.is_set():
                return
            app_logger.info(f"Stream completed with {content_events} content events")
            yield StreamService.send_sse_event(StreamEvent(done=True))

        except Exception as e:
            message = str(e) or "Unknown error"
            app_logger.error(f"Streaming chat error: {message}")
            if not disconnected.is_set():
                yield StreamService.send_sse_event(StreamEvent(error=message))

        finally:
            watcher.cancel()
            disconnect_signal.cancel()
            if next_delta is not None and not next_delta.done():
                next_delta.cancel()
                # Provider generator must finish unwinding before it can be closed
                await asyncio.wait({next_delta})

            try:
                await deltas.aclose()
            except Exception as e:
                app_logger.warning(f"Error closing provider stream: {e}")
