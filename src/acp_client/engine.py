"""
AgentClient: spawn an agent, run the protocol over its stdio, tear it down.

Example:
    >>> config = ClientConfig(command=["codex-acp"])
    >>> async with AgentClient(config) as client:
    ...     session = await client.new_session("/tmp")
    ...     async for event in session.prompt(["hi"]):
    ...         print(event)
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Sequence, Union

from .client import ClientCapabilityProvider, DefaultClientCapabilityProvider
from .config import ClientConfig
from .connection import ConnectionState
from .dispatcher import Event
from .exceptions import StartupTimeoutError
from .process import AgentProcess, ProcessSupervisor
from .schema import AuthenticateResponse, Implementation, InitializeResponse, McpServer
from .session import ClientSession, ClientSideConnection, PromptContent
from .transport import Transport

logger = logging.getLogger(__name__)


class AgentClient:
    """
    One agent process, one protocol engine, any number of sessions.

    Front-ends differ only in the :class:`ClientCapabilityProvider` they pass
    and in how they consume prompt events. Status is reported through ``log``.
    """

    def __init__(
        self,
        config: ClientConfig,
        provider: Optional[ClientCapabilityProvider] = None,
        *,
        log: Optional[logging.Logger] = None,
        supervisor: Optional[ProcessSupervisor] = None,
    ) -> None:
        self.config = config
        self._provider = provider or DefaultClientCapabilityProvider(log)
        self._logger = log or logger
        self._supervisor = supervisor or ProcessSupervisor(config.stream_limit)
        self._process: Optional[AgentProcess] = None
        self._transport: Optional[Transport] = None
        self._conn: Optional[ClientSideConnection] = None
        self._stopping = False
        self._stopped = asyncio.Event()
        self._stop_task: Optional[asyncio.Task[None]] = None

    async def __aenter__(self) -> "AgentClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # --- state -------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._conn is not None and self._conn.connection.state is ConnectionState.RUNNING

    @property
    def process(self) -> Optional[AgentProcess]:
        return self._process

    @property
    def connection(self) -> ClientSideConnection:
        if self._conn is None:
            raise RuntimeError("AgentClient is not started")
        return self._conn

    @property
    def initialize_response(self) -> Optional[InitializeResponse]:
        return self._conn.initialize_response if self._conn is not None else None

    @property
    def agent_info(self) -> Optional[Implementation]:
        resp = self.initialize_response
        return resp.agentInfo if resp is not None else None

    # --- lifecycle -----------------------------------------------------------------

    async def start(self) -> InitializeResponse:
        """
        Spawn the agent, start the receive loop and complete the handshake
        within ``config.startup_timeout`` seconds.

        Raises:
            AgentNotFoundError / SpawnError: the agent could not be launched.
            StartupTimeoutError: the handshake did not finish in time.
            RequestError: the agent rejected ``initialize``.
        """
        if self._conn is not None or self._process is not None:
            raise RuntimeError("AgentClient already started")
        self._logger.info("Starting ACP session…")
        env = self.config.agent_env()
        if not env.get(self.config.credential_env):
            self._logger.warning("%s is empty; the agent may not respond.", self.config.credential_env)

        try:
            resp = await asyncio.wait_for(self._connect(env), self.config.startup_timeout)
        except asyncio.TimeoutError:
            self._logger.error("ACP session failed: no handshake within %ss", self.config.startup_timeout)
            await self.stop()
            raise StartupTimeoutError(self.config.startup_timeout) from None
        except (Exception, asyncio.CancelledError) as exc:
            self._logger.error("ACP session failed: %s", exc)
            await self.stop()
            raise
        self._logger.info("ACP protocol started successfully")
        return resp

    async def _connect(self, env: Dict[str, str]) -> InitializeResponse:
        self._process = await self._supervisor.spawn(self.config.command, env=env, cwd=self.config.cwd)
        self._transport = Transport(self._process.stdout, self._process.stdin)
        self._conn = ClientSideConnection(
            self._provider,
            self._transport,
            request_timeout=self.config.request_timeout,
        )
        self._conn.connection.add_close_callback(self._on_connection_closed)
        self._conn.start()
        return await self._conn.handshake(self.config.client_capabilities, self.config.client_info)

    def _on_connection_closed(self, reason: BaseException) -> None:
        if self._stopping:
            return
        self._logger.warning("Agent connection lost: %s", reason)
        self._stop_task = asyncio.create_task(self.stop(), name="acp_client.AgentClient.stop")

    async def stop(self) -> None:
        """Stop accepting requests, close the engine, terminate the agent, release streams."""
        if self._stopping:
            if self._stop_task is not asyncio.current_task():
                await self._stopped.wait()
            return
        self._stopping = True
        try:
            if self._conn is not None:
                await self._conn.close()
            if self._process is not None:
                await self._supervisor.terminate(self._process, self.config.shutdown_grace_period)
            if self._transport is not None:
                await self._transport.close()
        finally:
            self._stopped.set()

    async def wait_closed(self) -> None:
        """Return once the agent has gone away and teardown finished."""
        if self._conn is not None:
            await self._conn.connection.wait_closed()
        await self._stopped.wait()

    # --- sessions ----------------------------------------------------------------

    async def authenticate(self, method_id: str) -> AuthenticateResponse:
        return await self.connection.authenticate(method_id)

    async def new_session(
        self,
        cwd: Optional[str] = None,
        mcp_servers: Iterable[Union[McpServer, Dict[str, Any]]] = (),
    ) -> ClientSession:
        cwd = cwd or self.config.cwd or os.getcwd()
        session = await self.connection.new_session(os.path.abspath(cwd), mcp_servers)
        self._logger.info("Session created with ID: %s", session.session_id)
        return session

    def prompt(self, session_id: str, content: Sequence[PromptContent]) -> AsyncIterator[Event]:
        return self.connection.prompt(session_id, content)

    async def cancel(self, session_id: str) -> None:
        await self.connection.cancel(session_id)
