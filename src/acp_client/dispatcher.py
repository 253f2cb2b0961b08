"""Routes ``session/update`` payloads into per-prompt ordered event streams."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Union

from .exceptions import EngineClosedError, UnknownSessionError
from .schema import PromptResponse, SessionUpdate, StopReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionUpdateEvent:
    update: SessionUpdate


@dataclass(frozen=True, slots=True)
class PromptResponseEvent:
    response: PromptResponse

    @property
    def stop_reason(self) -> StopReason:
        return self.response.stopReason


Event = Union[SessionUpdateEvent, PromptResponseEvent]


@dataclass(frozen=True, slots=True)
class _Failure:
    error: BaseException


class Subscription:
    """Events for one prompt call. Finite, ends with one PromptResponseEvent."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._queue: asyncio.Queue[Union[Event, _Failure]] = asyncio.Queue()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def push(self, update: SessionUpdate) -> None:
        if not self._done:
            self._queue.put_nowait(SessionUpdateEvent(update))

    def finish(self, response: PromptResponse) -> None:
        if not self._done:
            self._done = True
            self._queue.put_nowait(PromptResponseEvent(response))

    def fail(self, error: BaseException) -> None:
        if not self._done:
            self._done = True
            self._queue.put_nowait(_Failure(error))

    async def events(self) -> AsyncIterator[Event]:
        while True:
            item = await self._queue.get()
            if isinstance(item, _Failure):
                raise item.error
            yield item
            if isinstance(item, PromptResponseEvent):
                return


class EventDispatcher:
    """
    One channel per session, keyed by session id. A channel has at most one
    live subscription (the running prompt). ``publish`` never suspends, so the
    receive loop keeps wire order without waiting on consumers.
    """

    def __init__(self) -> None:
        self._channels: Dict[str, Optional[Subscription]] = {}
        self._closed: Optional[BaseException] = None

    def register(self, session_id: str) -> None:
        self._channels.setdefault(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._channels

    def subscribe(self, session_id: str) -> Subscription:
        if self._closed is not None:
            raise EngineClosedError(f"Cannot prompt session {session_id}: {self._closed}")
        if session_id not in self._channels:
            raise UnknownSessionError(session_id)
        if self._channels[session_id] is not None:
            raise RuntimeError(f"Session {session_id} already has a prompt in progress")
        sub = Subscription(session_id)
        self._channels[session_id] = sub
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if self._channels.get(sub.session_id) is sub:
            self._channels[sub.session_id] = None

    def publish(self, session_id: str, update: SessionUpdate) -> bool:
        if session_id not in self._channels:
            logger.warning("Dropping update for unknown session %s", session_id)
            return False
        sub = self._channels[session_id]
        if sub is None:
            logger.debug("No prompt in progress for session %s; update not streamed", session_id)
            return False
        sub.push(update)
        return True

    def close(self, error: BaseException) -> None:
        if self._closed is not None:
            return
        self._closed = error
        for sub in self._channels.values():
            if sub is not None:
                sub.fail(error)
