from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, ValidationError

from .exceptions import (
    EngineClosedError,
    MalformedMessageError,
    RequestError,
    RequestTimeoutError,
    TransportClosedError,
)
from .schema import dump
from .transport import JsonValue, Message, Notification, Request, Response, Transport

logger = logging.getLogger(__name__)

# (method, params, is_notification) -> result
MethodHandler = Callable[[str, Optional[JsonValue], bool], Awaitable[Optional[JsonValue]]]
CloseCallback = Callable[[BaseException], None]
# Runs inside the receive loop, before any later frame is processed.
ResponseCallback = Callable[[Response], None]


class ConnectionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


@dataclass(slots=True)
class _Pending:
    future: asyncio.Future[Any]
    method: str
    deadline: Optional[float] = None
    on_response: Optional[ResponseCallback] = None


class Connection:
    """
    JSON-RPC 2.0 engine over a :class:`Transport`.

    - Outgoing requests get integer ids starting at 0, never reused
    - Responses resolve pending futures by id; each entry is removed by whichever
      of response, timeout or shutdown claims it first
    - Agent requests are answered from tracked tasks so a slow handler never
      stalls the receive loop; notifications are handled inline, in wire order
    """

    def __init__(self, handler: MethodHandler, transport: Transport) -> None:
        self._handler = handler
        self._transport = transport
        self._next_request_id = 0
        self._pending: Dict[int, _Pending] = {}
        self._state = ConnectionState.IDLE
        self._recv_task: Optional[asyncio.Task[None]] = None
        self._request_tasks: Set[asyncio.Task[None]] = set()
        self._close_callbacks: List[CloseCallback] = []
        self._close_reason: Optional[BaseException] = None
        self._closed = asyncio.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def close_reason(self) -> Optional[BaseException]:
        return self._close_reason

    def add_close_callback(self, callback: CloseCallback) -> None:
        if self._state is ConnectionState.CLOSED:
            callback(self._close_reason or EngineClosedError())
            return
        self._close_callbacks.append(callback)

    def start(self) -> None:
        if self._state is not ConnectionState.IDLE:
            raise RuntimeError(f"Connection cannot be started from state {self._state.value!r}")
        self._state = ConnectionState.RUNNING
        self._recv_task = asyncio.create_task(self._receive_loop(), name="acp_client.Connection.receive")

    async def close(self) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        if self._state is ConnectionState.SHUTTING_DOWN:
            await self._closed.wait()
            return
        self._state = ConnectionState.SHUTTING_DOWN
        task = self._recv_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._finish(EngineClosedError("Connection closed"))
        # Do not close the transport here; lifecycle owned by caller

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # --- IO loops ----------------------------------------------------------------

    async def _receive_loop(self) -> None:
        reason: Optional[BaseException] = None
        try:
            async for item in self._transport.receive():
                if isinstance(item, MalformedMessageError):
                    await self._handle_malformed(item)
                    continue
                await self._process_message(item)
            logger.info("Agent closed the connection")
            reason = EngineClosedError("Agent closed the connection")
        except asyncio.CancelledError:
            return
        except Exception as exc:  # noqa: BLE001
            logger.exception("Receive loop failed")
            reason = EngineClosedError(f"Receive loop failed: {exc}")
            reason.__cause__ = exc
        finally:
            self._finish(reason or EngineClosedError("Connection closed"))

    def _finish(self, reason: BaseException) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED
        self._close_reason = reason
        for task in list(self._request_tasks):
            task.cancel()
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            if not entry.future.done():
                err = EngineClosedError(f"{entry.method!r} aborted: {reason}")
                err.__cause__ = reason
                entry.future.set_exception(err)
        if pending:
            logger.debug("Failed %d pending request(s): %s", len(pending), reason)
        self._closed.set()
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception:  # noqa: BLE001
                logger.exception("Close callback failed")

    async def _process_message(self, message: Message) -> None:
        if isinstance(message, Response):
            self._handle_response(message)
            return

        if isinstance(message, Request):
            task = asyncio.create_task(
                self._run_request(message), name=f"acp_client.Connection.request.{message.method}"
            )
            self._request_tasks.add(task)
            task.add_done_callback(self._request_tasks.discard)
            return

        try:
            await self._handler(message.method, message.params, True)
        except Exception:  # noqa: BLE001
            # Notifications do not produce responses
            logger.exception("Notification handler for %s failed", message.method)

    def _handle_response(self, message: Response) -> None:
        if message.id is None:
            logger.warning("Agent reported an error without a request id: %s", message.error)
            return
        entry = self._pending.pop(message.id, None)  # type: ignore[arg-type]
        if entry is None:
            logger.warning("Discarding response for unknown request id %r", message.id)
            return
        if entry.on_response is not None:
            try:
                entry.on_response(message)
            except Exception:  # noqa: BLE001
                logger.exception("Response callback for %s failed", entry.method)
        if entry.future.done():
            return
        if message.error is not None:
            entry.future.set_exception(RequestError.from_error_obj(message.error))
        else:
            entry.future.set_result(message.result)

    async def _run_request(self, message: Request) -> None:
        try:
            result = await self._handler(message.method, message.params, False)
            if isinstance(result, BaseModel):
                result = dump(result)
            response = Response(message.id, result=result)
        except RequestError as err:
            response = Response(message.id, error=err.to_error_obj())
        except ValidationError as ve:
            errors = json.loads(ve.json(include_url=False, include_input=False))
            response = Response(message.id, error=RequestError.invalid_params({"errors": errors}).to_error_obj())
        except Exception as err:  # noqa: BLE001
            logger.exception("Handler for %s failed", message.method)
            response = Response(message.id, error=RequestError.internal_error({"details": str(err)}).to_error_obj())
        try:
            await self._transport.send(response)
        except TransportClosedError as exc:
            logger.warning("Could not answer %s request %r: %s", message.method, message.id, exc)

    async def _handle_malformed(self, error: MalformedMessageError) -> None:
        logger.warning("Dropping malformed frame: %s", error)
        if error.request_id is None:
            return
        response = Response(error.request_id, error=RequestError.invalid_request({"details": str(error)}).to_error_obj())
        try:
            await self._transport.send(response)
        except TransportClosedError:
            pass

    # --- Public API --------------------------------------------------------------

    async def send_request(
        self,
        method: str,
        params: Optional[JsonValue] = None,
        *,
        timeout: Optional[float] = None,
        on_response: Optional[ResponseCallback] = None,
    ) -> Any:
        self._ensure_running(method)
        req_id = self._next_request_id
        self._next_request_id += 1
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[Any] = loop.create_future()
        deadline = loop.time() + timeout if timeout is not None else None
        self._pending[req_id] = _Pending(fut, method, deadline, on_response)
        try:
            try:
                await self._transport.send(Request(req_id, method, params))
            except TransportClosedError as exc:
                raise EngineClosedError(f"Cannot send {method!r}: {exc}") from exc
            if timeout is None:
                return await fut
            try:
                return await asyncio.wait_for(fut, timeout)
            except asyncio.TimeoutError:
                raise RequestTimeoutError(method, timeout) from None
        finally:
            self._pending.pop(req_id, None)

    async def send_notification(self, method: str, params: Optional[JsonValue] = None) -> None:
        self._ensure_running(method)
        try:
            await self._transport.send(Notification(method, params))
        except TransportClosedError as exc:
            raise EngineClosedError(f"Cannot send {method!r}: {exc}") from exc

    def _ensure_running(self, method: str) -> None:
        if self._state is not ConnectionState.RUNNING:
            if self._close_reason is not None:
                raise EngineClosedError(f"Cannot send {method!r}: {self._close_reason}")
            raise EngineClosedError(f"Cannot send {method!r}: connection is {self._state.value}")
