"""Pydantic models for every ACP payload the client sends or receives.

Attribute names match the camelCase wire names so that
``model_validate`` / ``model_dump(by_alias=True, exclude_none=True)`` map
one-to-one onto the JSON documents.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel as _BaseModel, ConfigDict, Field

PermissionOptionKind = Literal["allow_once", "allow_always", "reject_once", "reject_always"]
PlanEntryPriority = Literal["high", "medium", "low"]
PlanEntryStatus = Literal["pending", "in_progress", "completed"]
StopReason = Literal["end_turn", "max_tokens", "max_turn_requests", "refusal", "cancelled"]
ToolCallStatus = Literal["pending", "in_progress", "completed", "failed"]
ToolKind = Literal["read", "edit", "delete", "move", "search", "execute", "think", "fetch", "switch_mode", "other"]


class BaseModel(_BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _OpenModel(BaseModel):
    # Keeps unknown fields so variants we do not interpret survive a round trip.
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# --- content ---------------------------------------------------------------------

class TextContentBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class OtherContentBlock(_OpenModel):
    # image, audio, resource_link, resource: accepted, never interpreted
    type: str


ContentBlock = Annotated[
    Union[TextContentBlock, OtherContentBlock],
    Field(union_mode="left_to_right"),
]


def text_block(text: str) -> TextContentBlock:
    return TextContentBlock(text=text)


# --- initialization --------------------------------------------------------------

class Implementation(BaseModel):
    name: str
    version: str
    title: Optional[str] = None


class FileSystemCapability(BaseModel):
    # Whether the Client supports `fs/read_text_file` requests.
    readTextFile: bool = False
    # Whether the Client supports `fs/write_text_file` requests.
    writeTextFile: bool = False


class ClientCapabilities(BaseModel):
    fs: FileSystemCapability = Field(default_factory=FileSystemCapability)
    terminal: bool = False


class PromptCapabilities(BaseModel):
    image: bool = False
    audio: bool = False
    embeddedContext: bool = False


class AgentCapabilities(BaseModel):
    loadSession: bool = False
    promptCapabilities: PromptCapabilities = Field(default_factory=PromptCapabilities)


class AuthMethod(BaseModel):
    id: str
    name: str
    description: Optional[str] = None


class InitializeRequest(BaseModel):
    protocolVersion: int
    clientCapabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    clientInfo: Optional[Implementation] = None


class InitializeResponse(BaseModel):
    protocolVersion: int
    agentCapabilities: Optional[AgentCapabilities] = None
    authMethods: List[AuthMethod] = Field(default_factory=list)
    agentInfo: Optional[Implementation] = None


class AuthenticateRequest(BaseModel):
    # Must be one of the methods advertised in the initialize response.
    methodId: str


class AuthenticateResponse(BaseModel):
    pass


# --- sessions --------------------------------------------------------------------

class EnvVariable(BaseModel):
    name: str
    value: str


class HttpHeader(BaseModel):
    name: str
    value: str


class HttpMcpServer(BaseModel):
    type: Literal["http", "sse"]
    name: str
    url: str
    headers: List[HttpHeader] = Field(default_factory=list)


class StdioMcpServer(BaseModel):
    name: str
    command: str
    args: List[str] = Field(default_factory=list)
    env: List[EnvVariable] = Field(default_factory=list)


McpServer = Annotated[
    Union[HttpMcpServer, StdioMcpServer],
    Field(union_mode="left_to_right"),
]


class NewSessionRequest(BaseModel):
    # Absolute path of the working directory for this session.
    cwd: str
    mcpServers: List[McpServer] = Field(default_factory=list)


class NewSessionResponse(BaseModel):
    sessionId: str


class PromptRequest(BaseModel):
    sessionId: str
    prompt: List[ContentBlock]


class PromptResponse(BaseModel):
    stopReason: StopReason


class CancelNotification(BaseModel):
    sessionId: str


# --- session updates -------------------------------------------------------------

class ToolCallLocation(BaseModel):
    path: str
    line: Optional[int] = None


class UserMessageChunk(BaseModel):
    sessionUpdate: Literal["user_message_chunk"]
    content: ContentBlock


class AgentMessageChunk(BaseModel):
    sessionUpdate: Literal["agent_message_chunk"]
    content: ContentBlock


class AgentThoughtChunk(BaseModel):
    sessionUpdate: Literal["agent_thought_chunk"]
    content: ContentBlock


class ToolCallStart(BaseModel):
    sessionUpdate: Literal["tool_call"]
    toolCallId: str
    title: str
    kind: Optional[ToolKind] = None
    status: Optional[ToolCallStatus] = None
    content: Optional[List[Any]] = None
    locations: Optional[List[ToolCallLocation]] = None
    rawInput: Optional[Any] = None
    rawOutput: Optional[Any] = None


class ToolCallProgress(BaseModel):
    sessionUpdate: Literal["tool_call_update"]
    toolCallId: str
    title: Optional[str] = None
    kind: Optional[ToolKind] = None
    status: Optional[ToolCallStatus] = None
    content: Optional[List[Any]] = None
    locations: Optional[List[ToolCallLocation]] = None
    rawInput: Optional[Any] = None
    rawOutput: Optional[Any] = None


class PlanEntry(BaseModel):
    content: str
    priority: PlanEntryPriority
    status: PlanEntryStatus


class AgentPlanUpdate(BaseModel):
    sessionUpdate: Literal["plan"]
    entries: List[PlanEntry]


class OtherSessionUpdate(_OpenModel):
    sessionUpdate: str


SessionUpdate = Annotated[
    Union[
        UserMessageChunk,
        AgentMessageChunk,
        AgentThoughtChunk,
        ToolCallStart,
        ToolCallProgress,
        AgentPlanUpdate,
        OtherSessionUpdate,
    ],
    Field(union_mode="left_to_right"),
]


class SessionNotification(BaseModel):
    sessionId: str
    update: SessionUpdate


# --- permissions -----------------------------------------------------------------

class ToolCallUpdate(BaseModel):
    toolCallId: str
    title: Optional[str] = None
    kind: Optional[ToolKind] = None
    status: Optional[ToolCallStatus] = None
    content: Optional[List[Any]] = None
    locations: Optional[List[ToolCallLocation]] = None
    rawInput: Optional[Any] = None
    rawOutput: Optional[Any] = None


class PermissionOption(BaseModel):
    optionId: str
    name: str
    kind: PermissionOptionKind


class RequestPermissionRequest(BaseModel):
    sessionId: str
    toolCall: ToolCallUpdate
    options: List[PermissionOption]


class AllowedOutcome(BaseModel):
    outcome: Literal["selected"] = "selected"
    optionId: str


class DeniedOutcome(BaseModel):
    outcome: Literal["cancelled"] = "cancelled"


class RequestPermissionResponse(BaseModel):
    outcome: Annotated[Union[AllowedOutcome, DeniedOutcome], Field(discriminator="outcome")]


# --- file system -----------------------------------------------------------------

class ReadTextFileRequest(BaseModel):
    sessionId: str
    path: str
    # 1-based line to start reading from.
    line: Optional[int] = None
    limit: Optional[int] = None


class ReadTextFileResponse(BaseModel):
    content: str


class WriteTextFileRequest(BaseModel):
    sessionId: str
    path: str
    content: str


class WriteTextFileResponse(BaseModel):
    pass


def dump(model: _BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)
