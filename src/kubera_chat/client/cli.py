"""
Terminal front-end for the chat streaming client.

Reads user messages from stdin and renders the streamed reply as it arrives.
Two commands are understood: ``/quit`` and ``/retry``.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Dict, Optional, TextIO

from kubera_chat.utils.debug import DEBUG_ENV
from kubera_chat.utils.env import env_bool

from .assembler import CompletedMessage, ToolStatus
from .config import ClientConfig
from .credentials import EnvTokenProvider, StaticTokenProvider
from .session import ChatSession
from .session_state import SessionState

logger = logging.getLogger(__name__)

QUIT_COMMAND = "/quit"
RETRY_COMMAND = "/retry"


class ConsoleView:
    """Turn published snapshots into incremental terminal output."""

    def __init__(self, out: Optional[TextIO] = None) -> None:
        self.out = out or sys.stdout
        self._printed = 0
        self._tool_status: Dict[str, ToolStatus] = {}
        self._connected = False
        self._reconnect_attempt = 0

    def render(self, state: SessionState) -> None:
        if state.is_connected != self._connected:
            self._connected = state.is_connected
            self.notice("connected" if state.is_connected else "disconnected")

        if state.reconnecting and state.reconnect_attempt != self._reconnect_attempt:
            self.notice(f"reconnecting (attempt {state.reconnect_attempt})")
        self._reconnect_attempt = state.reconnect_attempt if state.reconnecting else 0

        for tool in state.tools:
            if self._tool_status.get(tool.id) is tool.status:
                continue
            self._tool_status[tool.id] = tool.status
            line = f"[tool {tool.name}: {tool.status.value}"
            if tool.error:
                line += f" ({tool.error})"
            self._write(line + "]\n")

        content = state.streaming_content
        if len(content) > self._printed:
            self._write(content[self._printed:])
        self._printed = len(content)

    def on_complete(self, message: CompletedMessage) -> None:
        self._write("\n")
        if message.chart_url:
            label = f" ({message.chart_symbol})" if message.chart_symbol else ""
            self._write(f"[chart{label}: {message.chart_url}]\n")
        self._tool_status.clear()
        self._printed = 0

    def on_error(self, message: str) -> None:
        self._write(f"\n! {message}\n")
        self._printed = 0

    def notice(self, text: str) -> None:
        self._write(f"[{text}]\n")

    def _write(self, text: str) -> None:
        self.out.write(text)
        self.out.flush()


async def run_console(session: ChatSession, view: ConsoleView, stdin: Optional[TextIO] = None) -> int:
    stdin = stdin or sys.stdin
    if not session.connect():
        view.notice("no access token or chat id; set KUBERA_TOKEN or pass --token")
        return 1

    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, stdin.readline)
            if not line:
                break
            text = line.strip()
            if not text:
                continue
            if text == QUIT_COMMAND:
                break
            if text == RETRY_COMMAND:
                session.reconnect()
                continue
            if session.state.is_streaming:
                view.notice("still receiving the previous reply")
                continue
            if not session.send_message(text):
                view.notice("not connected; type /retry to reconnect")
    finally:
        session.disconnect()
        # Let the close handshake task run before the loop shuts down
        await asyncio.sleep(0)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Kubera chat streaming client'
    )
    parser.add_argument(
        '--chat-id',
        required=True,
        help='Chat to attach to'
    )
    parser.add_argument(
        '--url',
        default=None,
        help='Websocket base URL (default: KUBERA_WS_BASE or ws://localhost:8000)'
    )
    parser.add_argument(
        '--token',
        default=None,
        help='Access token (default: KUBERA_TOKEN)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    return parser


def main(argv=None) -> int:
    """Command-line entry point."""
    args = build_parser().parse_args(argv)

    debug = args.debug or env_bool(DEBUG_ENV, False)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s'
    )

    config = ClientConfig.from_env()
    if args.url:
        config = replace(config, ws_base=args.url)
    provider = StaticTokenProvider(args.token) if args.token else EnvTokenProvider()

    view = ConsoleView()
    session = ChatSession(
        provider,
        args.chat_id,
        config,
        on_message_complete=view.on_complete,
        on_error=view.on_error,
    )
    session.subscribe(view.render)

    try:
        return asyncio.run(run_console(session, view))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
