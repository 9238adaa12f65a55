"""Chat streaming client: connection lifecycle, reply assembly and session state."""

from .assembler import (
    AssemblerPhase,
    AssemblerUpdate,
    ChartInfo,
    CompletedMessage,
    StreamAssembler,
    ToolExecution,
    ToolStatus,
)
from .config import ClientConfig
from .connection import ConnectionManager, ConnectionState, ConnectionStatus
from .credentials import EnvTokenProvider, StaticTokenProvider, TokenProvider
from .dispatcher import OutboundDispatcher
from .reconnect import ReconnectPolicy, ReconnectState
from .session import ChatSession
from .session_state import SessionState, SessionStore

__all__ = [
    "AssemblerPhase",
    "AssemblerUpdate",
    "ChartInfo",
    "ChatSession",
    "ClientConfig",
    "CompletedMessage",
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "EnvTokenProvider",
    "OutboundDispatcher",
    "ReconnectPolicy",
    "ReconnectState",
    "SessionState",
    "SessionStore",
    "StaticTokenProvider",
    "StreamAssembler",
    "TokenProvider",
    "ToolExecution",
    "ToolStatus",
]
