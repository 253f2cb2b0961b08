"""
Client-side engine for the Agent Client Protocol (ACP).

Spawns an agent process, speaks JSON-RPC 2.0 over its stdio, and exposes
sessions whose prompts stream back ordered update events.
"""

__version__ = "0.1.0"

from .meta import (
    PROTOCOL_VERSION,
    AGENT_METHODS,
    CLIENT_METHODS,
)
from .schema import (
    ClientCapabilities,
    FileSystemCapability,
    Implementation,
    InitializeRequest,
    InitializeResponse,
    NewSessionRequest,
    NewSessionResponse,
    PromptRequest,
    PromptResponse,
    CancelNotification,
    SessionNotification,
    TextContentBlock,
    AgentMessageChunk,
    AgentThoughtChunk,
    ToolCallUpdate,
    PermissionOption,
    RequestPermissionRequest,
    RequestPermissionResponse,
    AllowedOutcome,
    DeniedOutcome,
    ReadTextFileRequest,
    ReadTextFileResponse,
    WriteTextFileRequest,
    WriteTextFileResponse,
    text_block,
)
from .exceptions import (
    AcpError,
    SpawnError,
    AgentNotFoundError,
    TransportError,
    MalformedMessageError,
    TransportClosedError,
    RpcError,
    RequestError,
    RequestTimeoutError,
    EngineClosedError,
    StartupTimeoutError,
    UnknownSessionError,
)
from .transport import Transport, Request, Response, Notification, Message
from .process import AgentProcess, ProcessState, ProcessSupervisor
from .connection import Connection, ConnectionState
from .dispatcher import Event, EventDispatcher, PromptResponseEvent, SessionUpdateEvent
from .client import (
    ClientCapabilityProvider,
    SessionOperations,
    AutoApproveSessionOperations,
    DefaultClientCapabilityProvider,
)
from .session import ClientSession, ClientSideConnection
from .config import ClientConfig
from .engine import AgentClient

__all__ = [
    # constants
    "PROTOCOL_VERSION",
    "AGENT_METHODS",
    "CLIENT_METHODS",
    # types
    "ClientCapabilities",
    "FileSystemCapability",
    "Implementation",
    "InitializeRequest",
    "InitializeResponse",
    "NewSessionRequest",
    "NewSessionResponse",
    "PromptRequest",
    "PromptResponse",
    "CancelNotification",
    "SessionNotification",
    "TextContentBlock",
    "AgentMessageChunk",
    "AgentThoughtChunk",
    "ToolCallUpdate",
    "PermissionOption",
    "RequestPermissionRequest",
    "RequestPermissionResponse",
    "AllowedOutcome",
    "DeniedOutcome",
    "ReadTextFileRequest",
    "ReadTextFileResponse",
    "WriteTextFileRequest",
    "WriteTextFileResponse",
    "text_block",
    # errors
    "AcpError",
    "SpawnError",
    "AgentNotFoundError",
    "TransportError",
    "MalformedMessageError",
    "TransportClosedError",
    "RpcError",
    "RequestError",
    "RequestTimeoutError",
    "EngineClosedError",
    "StartupTimeoutError",
    "UnknownSessionError",
    # transport & process
    "Transport",
    "Request",
    "Response",
    "Notification",
    "Message",
    "AgentProcess",
    "ProcessState",
    "ProcessSupervisor",
    # engine
    "Connection",
    "ConnectionState",
    "Event",
    "EventDispatcher",
    "PromptResponseEvent",
    "SessionUpdateEvent",
    "ClientCapabilityProvider",
    "SessionOperations",
    "AutoApproveSessionOperations",
    "DefaultClientCapabilityProvider",
    "ClientSession",
    "ClientSideConnection",
    "ClientConfig",
    "AgentClient",
]
