#!/usr/bin/env python3
"""
Terminal front-end for the chat relay.
Renders the streamed reply as it arrives, plus error and rate limit lines.
"""
import argparse
import asyncio
import sys
from datetime import datetime, timezone
import httpx
from client.chat_session import ChatSession
from client.countdown import describe_rate_limit
from config import Config
from models.chat_models import ChatState
from utils.errors import ChatRelayError
from utils.http_client import HTTPClientManager


class TerminalRenderer:
    """Prints the growing assistant message without redrawing the screen."""

    TYPING = "Assistant: typing..."

    def __init__(self, out=sys.stdout):
        self.out = out
        self._printed = 0
        self._streaming = False

    def __call__(self, session: ChatSession) -> None:
        if session.state is ChatState.SENDING and not self._streaming:
            self._streaming = True
            self._printed = 0
            self.out.write(self.TYPING)
            self.out.flush()
            return

        if not self._streaming:
            return

        last = session.messages[-1] if session.messages else None
        if last is not None and last.role == "assistant" and len(last.content) > self._printed:
            if self._printed == 0:
                self._clear_line()
                self.out.write("Assistant: ")
            self.out.write(last.content[self._printed:])
            self._printed = len(last.content)

        if session.state is ChatState.IDLE:
            self._streaming = False
            if self._printed:
                self.out.write("\n")
            else:
                self._clear_line()
        self.out.flush()

    def _clear_line(self) -> None:
        self.out.write("\r" + " " * len(self.TYPING) + "\r")

    def footer(self, session: ChatSession) -> None:
        """Print the error line and the rate limit footer."""
        if session.error:
            self.out.write(f"{session.error}\n")
        for line in describe_rate_limit(session.rate_limit, datetime.now(timezone.utc)):
            self.out.write(f"{line}\n")
        self.out.flush()


async def run_interactive(session: ChatSession, renderer: TerminalRenderer) -> None:
    """Read prompts until EOF or /quit."""
    while True:
        try:
            text = await asyncio.to_thread(input, "You: ")
        except EOFError:
            return

        command = text.strip()
        if command in ("/quit", "/exit"):
            return
        if command == "/status":
            await refresh_status(session, renderer)
            continue

        if not session.can_send(text):
            if session.is_rate_limited():
                renderer.footer(session)
            continue

        await session.send(text)
        renderer.footer(session)


async def refresh_status(session: ChatSession, renderer: TerminalRenderer) -> None:
    """Fetch the rate limit status and print the footer."""
    try:
        await session.refresh_rate_limit()
    except ChatRelayError as e:
        print(f"Error: {e.message}")
        return
    renderer.footer(session)


async def run(args) -> int:
    renderer = TerminalRenderer()
    client = httpx.AsyncClient(base_url=args.server) if args.server else HTTPClientManager.get_chat_client()
    session = ChatSession(client=client, on_change=renderer)

    try:
        if args.prompt:
            outcome = await session.send(args.prompt)
            renderer.footer(session)
            return 0 if outcome is ChatState.COMPLETED else 1

        if args.status:
            await refresh_status(session, renderer)
            return 0

        await run_interactive(session, renderer)
        return 0
    finally:
        if args.server:
            await client.aclose()
        await HTTPClientManager.close_all()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="chat-relay",
        description="Chat with a model through the chat relay server"
    )
    parser.add_argument("prompt", nargs="?", help="send a single message and exit")
    parser.add_argument("-s", "--server", help=f"relay base URL (default {Config.CHAT_SERVER_URL})")
    parser.add_argument("--status", action="store_true", help="show the current rate limit and exit")

    args = parser.parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
