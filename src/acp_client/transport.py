from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Union

from .exceptions import MalformedMessageError, TransportClosedError

logger = logging.getLogger(__name__)

JsonValue = Any
RequestId = Union[int, str]


# --- Messages --------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Request:
    id: RequestId
    method: str
    params: Optional[JsonValue] = None


@dataclass(frozen=True, slots=True)
class Response:
    id: Optional[RequestId]
    result: Optional[JsonValue] = None
    error: Optional[dict] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass(frozen=True, slots=True)
class Notification:
    method: str
    params: Optional[JsonValue] = None


Message = Union[Request, Response, Notification]


def to_wire(message: Message) -> dict:
    obj: dict[str, Any] = {"jsonrpc": "2.0"}
    if isinstance(message, Request):
        obj.update(id=message.id, method=message.method, params=message.params)
    elif isinstance(message, Notification):
        obj.update(method=message.method, params=message.params)
    elif message.error is not None:
        obj.update(id=message.id, error=message.error)
    else:
        obj.update(id=message.id, result=message.result)
    return obj


def from_wire(obj: Any) -> Message:
    """Classify a decoded JSON document. Raises ``ValueError`` for shapes that
    are not a JSON-RPC request, response or notification."""
    if not isinstance(obj, dict):
        raise ValueError("message is not a JSON object")
    method = obj.get("method")
    has_id = "id" in obj
    if method is not None:
        if not isinstance(method, str):
            raise ValueError("method must be a string")
        if has_id:
            return Request(obj["id"], method, obj.get("params"))
        return Notification(method, obj.get("params"))
    if has_id:
        error = obj.get("error")
        if error is not None:
            return Response(obj["id"], error=error if isinstance(error, dict) else {"message": str(error)})
        return Response(obj["id"], result=obj.get("result"))
    raise ValueError("message has neither method nor id")


# --- Transport -------------------------------------------------------------------

class Transport:
    """
    Newline-delimited JSON frames over a pair of asyncio streams.

    - reader: peer -> local (the agent's stdout)
    - writer: local -> peer (the agent's stdin)

    Each frame is one compact JSON document followed by ``\\n``; JSON never
    contains a raw newline, so framing survives arbitrary read boundaries.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._write_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Message) -> None:
        data = (json.dumps(to_wire(message), separators=(",", ":")) + "\n").encode("utf-8")
        async with self._write_lock:
            if self._closed or self._writer.is_closing():
                raise TransportClosedError("Transport is closed")
            self._writer.write(data)
            try:
                await self._writer.drain()
            except (ConnectionError, RuntimeError) as exc:
                raise TransportClosedError(f"Peer closed the stream: {exc}") from exc
        logger.debug("--> %s", data[:-1].decode("utf-8", errors="replace"))

    async def receive(self) -> AsyncIterator[Union[Message, MalformedMessageError]]:
        while True:
            try:
                line = await self._reader.readline()
            except ValueError as exc:
                # Frame longer than the reader limit; the reader drops it.
                yield MalformedMessageError(f"Frame exceeds stream limit: {exc}")
                continue
            except (ConnectionError, asyncio.IncompleteReadError) as exc:
                logger.debug("Read side failed: %s", exc)
                return
            if not line:
                return
            if not line.strip():
                continue
            logger.debug("<-- %s", line.rstrip(b"\r\n").decode("utf-8", errors="replace"))
            try:
                obj = json.loads(line)
            except ValueError as exc:
                yield MalformedMessageError(f"Invalid JSON: {exc}", line)
                continue
            try:
                message = from_wire(obj)
            except ValueError as exc:
                request_id = obj.get("id") if isinstance(obj, dict) else None
                yield MalformedMessageError(f"Invalid message: {exc}", line, request_id)
                continue
            yield message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        async with self._write_lock:
            if not self._writer.is_closing():
                self._writer.close()
            try:
                await self._writer.wait_closed()
            except (ConnectionError, RuntimeError):
                # Peer already gone
                pass
