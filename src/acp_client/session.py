from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Set, Union

from pydantic import BaseModel, ValidationError

from .client import ClientCapabilityProvider, SessionOperations
from .connection import Connection
from .dispatcher import Event, EventDispatcher, Subscription
from .exceptions import AcpError, EngineClosedError, RequestError, UnknownSessionError
from .meta import AGENT_METHODS, CLIENT_METHODS, PROTOCOL_VERSION
from .schema import (
    AuthenticateRequest,
    AuthenticateResponse,
    CancelNotification,
    ClientCapabilities,
    ContentBlock,
    Implementation,
    InitializeRequest,
    InitializeResponse,
    McpServer,
    NewSessionRequest,
    NewSessionResponse,
    PromptRequest,
    PromptResponse,
    ReadTextFileRequest,
    RequestPermissionRequest,
    SessionNotification,
    SessionUpdate,
    WriteTextFileRequest,
    dump,
    text_block,
)
from .transport import Response, Transport

logger = logging.getLogger(__name__)

PromptContent = Union[str, ContentBlock, Dict[str, Any]]


@dataclass(slots=True, eq=False)
class ClientSession:
    """Handle for one agent-issued session."""

    session_id: str
    cwd: str
    mcp_servers: List[McpServer] = field(default_factory=list)
    _manager: Optional["ClientSideConnection"] = field(default=None, repr=False)

    def prompt(self, content: Sequence[PromptContent]) -> AsyncIterator[Event]:
        assert self._manager is not None
        return self._manager.prompt(self.session_id, content)

    async def cancel(self) -> None:
        assert self._manager is not None
        await self._manager.cancel(self.session_id)


class ClientSideConnection:
    """
    Client-side session manager. Owns the protocol :class:`Connection` and routes
    the agent's requests and notifications to the provider's per-session
    operations.

    Parameters:
    - provider: front-end specific :class:`ClientCapabilityProvider`
    - transport: framed stdio of the agent process
    - request_timeout: default timeout for control requests (not prompts)

    Agent requests for a session whose `session/new` is still being processed
    wait for the registration instead of failing.
    """

    def __init__(
        self,
        provider: ClientCapabilityProvider,
        transport: Transport,
        *,
        request_timeout: Optional[float] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ) -> None:
        self._provider = provider
        self._request_timeout = request_timeout
        self._dispatcher = dispatcher or EventDispatcher()
        self._sessions: Dict[str, ClientSession] = {}
        self._operations: Dict[str, SessionOperations] = {}
        self._initialize_response: Optional[InitializeResponse] = None
        # updates that arrive between a session/new response and registration
        self._creating = 0
        self._early_updates: Dict[str, List[SessionUpdate]] = {}
        self._session_ready = asyncio.Condition()
        self._background: Set[asyncio.Task[None]] = set()
        self._conn = Connection(self._create_handler(), transport)
        self._conn.add_close_callback(self._dispatcher.close)

    @property
    def connection(self) -> Connection:
        return self._conn

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    @property
    def initialize_response(self) -> Optional[InitializeResponse]:
        return self._initialize_response

    @property
    def sessions(self) -> Dict[str, ClientSession]:
        return dict(self._sessions)

    def start(self) -> None:
        self._conn.start()

    async def close(self) -> None:
        await self._conn.close()
        for task in list(self._background):
            task.cancel()

    # --- inbound (agent -> client) -----------------------------------------------

    def _create_handler(self):
        async def handler(method: str, params: Any, is_notification: bool) -> Any:
            if method == CLIENT_METHODS["session_update"]:
                p = SessionNotification.model_validate(params)
                await self._on_session_update(p.sessionId, p.update)
                return None
            if method == CLIENT_METHODS["session_request_permission"]:
                p = RequestPermissionRequest.model_validate(params)
                ops = await self._operations_for(p.sessionId)
                return await ops.request_permissions(p.toolCall, p.options)
            if method == CLIENT_METHODS["fs_read_text_file"]:
                p = ReadTextFileRequest.model_validate(params)
                read = getattr(await self._operations_for(p.sessionId), "read_text_file", None)
                if read is None:
                    raise RequestError.method_not_found(method)
                return await read(p)
            if method == CLIENT_METHODS["fs_write_text_file"]:
                p = WriteTextFileRequest.model_validate(params)
                write = getattr(await self._operations_for(p.sessionId), "write_text_file", None)
                if write is None:
                    raise RequestError.method_not_found(method)
                return await write(p)
            if is_notification:
                logger.debug("Ignoring notification %s", method)
                return None
            raise RequestError.method_not_found(method)

        return handler

    async def _operations_for(self, session_id: str) -> SessionOperations:
        ops = self._operations.get(session_id)
        if ops is None and self._creating:
            async with self._session_ready:
                await self._session_ready.wait_for(lambda: session_id in self._operations or not self._creating)
            ops = self._operations.get(session_id)
        if ops is None:
            raise RequestError.invalid_params({"details": f"Unknown session: {session_id}"})
        return ops

    async def _on_session_update(self, session_id: str, update: SessionUpdate) -> None:
        ops = self._operations.get(session_id)
        if ops is None:
            if self._creating:
                self._early_updates.setdefault(session_id, []).append(update)
            else:
                logger.warning("Dropping update for unknown session %s", session_id)
            return
        await self._deliver(session_id, ops, update)

    async def _deliver(self, session_id: str, ops: SessionOperations, update: SessionUpdate) -> None:
        self._dispatcher.publish(session_id, update)
        try:
            await ops.notify(update)
        except Exception:  # noqa: BLE001
            logger.exception("notify() failed for session %s", session_id)

    # --- outbound (client -> agent) ----------------------------------------------

    async def _request(self, method: str, params: BaseModel, timeout: Optional[float] = None) -> Any:
        return await self._conn.send_request(
            method,
            dump(params),
            timeout=timeout if timeout is not None else self._request_timeout,
        )

    async def handshake(
        self,
        capabilities: Optional[ClientCapabilities] = None,
        client_info: Optional[Implementation] = None,
        *,
        timeout: Optional[float] = None,
    ) -> InitializeResponse:
        params = InitializeRequest(
            protocolVersion=PROTOCOL_VERSION,
            clientCapabilities=capabilities or ClientCapabilities(),
            clientInfo=client_info,
        )
        resp = InitializeResponse.model_validate(await self._request(AGENT_METHODS["initialize"], params, timeout))
        if resp.protocolVersion != PROTOCOL_VERSION:
            logger.warning(
                "Protocol version mismatch requested=%s agent=%s", PROTOCOL_VERSION, resp.protocolVersion
            )
        self._initialize_response = resp
        logger.info(
            "Handshake complete: protocol=%s agent=%s",
            resp.protocolVersion,
            resp.agentInfo.name if resp.agentInfo else "unknown",
        )
        return resp

    async def authenticate(self, method_id: str, *, timeout: Optional[float] = None) -> AuthenticateResponse:
        resp = await self._request(AGENT_METHODS["authenticate"], AuthenticateRequest(methodId=method_id), timeout)
        return AuthenticateResponse.model_validate(resp or {})

    async def new_session(
        self,
        cwd: str,
        mcp_servers: Iterable[Union[McpServer, Dict[str, Any]]] = (),
        *,
        timeout: Optional[float] = None,
    ) -> ClientSession:
        if self._initialize_response is None:
            raise RuntimeError("Handshake has not completed; call handshake() before new_session()")
        params = NewSessionRequest(cwd=str(cwd), mcpServers=list(mcp_servers))
        self._creating += 1
        try:
            resp = NewSessionResponse.model_validate(await self._request(AGENT_METHODS["session_new"], params, timeout))
            session_id = resp.sessionId
            session = ClientSession(session_id, params.cwd, list(params.mcpServers), self)
            ops = await self._provider.create_client_session(session)
            self._dispatcher.register(session_id)
            # Replay anything the agent pushed before registration, then
            # register without yielding so later updates queue up behind it.
            while True:
                early = self._early_updates.pop(session_id, None)
                if not early:
                    break
                for update in early:
                    await self._deliver(session_id, ops, update)
            self._sessions[session_id] = session
            self._operations[session_id] = ops
        finally:
            self._creating -= 1
            if not self._creating and self._early_updates:
                logger.warning("Dropping updates for unknown sessions %s", sorted(self._early_updates))
                self._early_updates.clear()
            async with self._session_ready:
                self._session_ready.notify_all()
        logger.info("Session %s created (cwd=%s)", session_id, params.cwd)
        return session

    async def prompt(self, session_id: str, content: Sequence[PromptContent]) -> AsyncIterator[Event]:
        """
        Send ``session/prompt`` and yield the session's updates as they arrive,
        ending with exactly one PromptResponseEvent.

        Leaving the loop early drops the pending request and asks the agent to
        cancel the turn; the connection stays usable.
        """
        if session_id not in self._sessions:
            raise UnknownSessionError(session_id)
        blocks = [text_block(item) if isinstance(item, str) else item for item in content]
        params = PromptRequest(sessionId=session_id, prompt=blocks)
        sub = self._dispatcher.subscribe(session_id)
        # Prompt turns are unbounded; the agent ends them or session/cancel does.
        task = asyncio.create_task(
            self._conn.send_request(
                AGENT_METHODS["session_prompt"],
                dump(params),
                on_response=lambda resp: self._finish_prompt(sub, resp),
            ),
            name=f"acp_client.prompt.{session_id}",
        )
        task.add_done_callback(lambda t: self._complete_prompt(sub, t))
        try:
            async for event in sub.events():
                yield event
        finally:
            self._dispatcher.unsubscribe(sub)
            if not sub.done:
                task.cancel()
                self._spawn(self._cancel_quietly(session_id))

    def _finish_prompt(self, sub: Subscription, response: Response) -> None:
        # Ends the stream in wire order: frames after the response are not part of this turn.
        if response.error is not None:
            sub.fail(RequestError.from_error_obj(response.error))
            return
        try:
            result = PromptResponse.model_validate(response.result)
        except ValidationError as ve:
            sub.fail(ve)
            return
        sub.finish(result)

    def _complete_prompt(self, sub: Subscription, task: asyncio.Task[Any]) -> None:
        # Failures that never produced a response: engine closed, write failed, abandoned.
        if task.cancelled():
            sub.fail(EngineClosedError(f"Prompt for session {sub.session_id} was abandoned"))
            return
        exc = task.exception()
        if exc is not None:
            sub.fail(exc)

    async def cancel(self, session_id: str) -> None:
        await self._conn.send_notification(AGENT_METHODS["session_cancel"], dump(CancelNotification(sessionId=session_id)))

    async def _cancel_quietly(self, session_id: str) -> None:
        try:
            await self.cancel(session_id)
        except AcpError as exc:
            logger.debug("Could not cancel session %s: %s", session_id, exc)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
