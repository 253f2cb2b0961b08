"""Client capability provider: the seam between the engine and a front-end.

A front-end implements :class:`ClientCapabilityProvider`; the engine calls
``create_client_session`` once per confirmed session and routes the agent's
requests and notifications for that session to the returned
:class:`SessionOperations`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Protocol

from .exceptions import RequestError
from .schema import (
    AllowedOutcome,
    DeniedOutcome,
    PermissionOption,
    ReadTextFileRequest,
    ReadTextFileResponse,
    RequestPermissionResponse,
    SessionUpdate,
    ToolCallUpdate,
    WriteTextFileRequest,
    WriteTextFileResponse,
)

if TYPE_CHECKING:
    from .session import ClientSession

logger = logging.getLogger(__name__)


class SessionOperations(Protocol):
    async def request_permissions(
        self, tool_call: ToolCallUpdate, options: List[PermissionOption]
    ) -> RequestPermissionResponse: ...

    # Called from the receive loop, in wire order. Must return promptly.
    async def notify(self, update: SessionUpdate) -> None: ...

    # Optional: only needed when the fs capabilities are declared
    # async def read_text_file(self, params: ReadTextFileRequest) -> ReadTextFileResponse: ...
    # async def write_text_file(self, params: WriteTextFileRequest) -> WriteTextFileResponse: ...


class ClientCapabilityProvider(Protocol):
    async def create_client_session(self, session: "ClientSession") -> SessionOperations: ...


class AutoApproveSessionOperations:
    """
    Demo operations: picks the first offered permission option, logs updates
    and serves file requests from the local disk.

    Selecting the first option is a placeholder policy, not a security
    decision. Anything beyond a demo should let a human or a policy engine
    choose.
    """

    def __init__(self, session: "ClientSession", log: logging.Logger | None = None) -> None:
        self.session = session
        self._logger = log or logger

    async def request_permissions(
        self, tool_call: ToolCallUpdate, options: List[PermissionOption]
    ) -> RequestPermissionResponse:
        if not options:
            self._logger.warning("Permission request for %s offered no options; cancelling", tool_call.toolCallId)
            return RequestPermissionResponse(outcome=DeniedOutcome())
        choice = options[0]
        self._logger.info(
            "Auto-selecting permission option %r for tool call %s (%s)",
            choice.optionId,
            tool_call.toolCallId,
            tool_call.title or "untitled",
        )
        return RequestPermissionResponse(outcome=AllowedOutcome(optionId=choice.optionId))

    async def notify(self, update: SessionUpdate) -> None:
        self._logger.info("Received notification: %s", update)

    async def read_text_file(self, params: ReadTextFileRequest) -> ReadTextFileResponse:
        path = self._resolve(params.path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise RequestError.invalid_params({"details": f"File not found: {params.path}"}) from None
        if params.line is None and params.limit is None:
            return ReadTextFileResponse(content=text)
        lines = text.splitlines(keepends=True)
        start = max((params.line or 1) - 1, 0)
        end = start + params.limit if params.limit is not None else None
        return ReadTextFileResponse(content="".join(lines[start:end]))

    async def write_text_file(self, params: WriteTextFileRequest) -> WriteTextFileResponse:
        path = self._resolve(params.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(params.content, encoding="utf-8")
        self._logger.info("Wrote %d characters to %s", len(params.content), path)
        return WriteTextFileResponse()

    def _resolve(self, raw: str) -> Path:
        path = Path(raw)
        if not path.is_absolute():
            path = Path(self.session.cwd) / path
        return path


class DefaultClientCapabilityProvider:
    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log

    async def create_client_session(self, session: "ClientSession") -> SessionOperations:
        return AutoApproveSessionOperations(session, self._logger)
