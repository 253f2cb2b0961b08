# Ensure the src/ directory is on sys.path so tests can import the local 'acp_client' package
import asyncio
import json
import os
import sys
from typing import Any, Optional

import pytest_asyncio

SRC_DIR = os.path.join(os.path.dirname(__file__), "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


class Loopback:
    """
    A TCP socket pair standing in for an agent's stdio.

    The client side (``client_reader``/``client_writer``) is handed to the code
    under test; the test scripts the agent through :meth:`read_frame` and
    :meth:`write_frame` on the server side.
    """

    def __init__(self) -> None:
        self._server: Optional[asyncio.AbstractServer] = None
        self.server_reader: Optional[asyncio.StreamReader] = None
        self.server_writer: Optional[asyncio.StreamWriter] = None
        self.client_reader: Optional[asyncio.StreamReader] = None
        self.client_writer: Optional[asyncio.StreamWriter] = None

    async def __aenter__(self):
        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
            self.server_reader = reader
            self.server_writer = writer

        self._server = await asyncio.start_server(handle, host="127.0.0.1", port=0)
        host, port = self._server.sockets[0].getsockname()[:2]
        self.client_reader, self.client_writer = await asyncio.open_connection(host, port)

        # wait until server side is set
        for _ in range(100):
            if self.server_reader and self.server_writer:
                break
            await asyncio.sleep(0.01)
        assert self.server_reader and self.server_writer
        assert self.client_reader and self.client_writer
        return self

    async def __aexit__(self, exc_type, exc, tb):
        for writer in (self.client_writer, self.server_writer):
            if writer is None:
                continue
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, RuntimeError):
                pass
        if self._server:
            self._server.close()
            await self._server.wait_closed()

    async def read_frame(self, timeout: float = 5.0) -> Any:
        assert self.server_reader is not None
        line = await asyncio.wait_for(self.server_reader.readline(), timeout)
        assert line, "client closed the stream"
        return json.loads(line)

    async def write_frame(self, obj: Any) -> None:
        await self.write_raw(json.dumps(obj).encode("utf-8") + b"\n")

    async def write_raw(self, data: bytes) -> None:
        assert self.server_writer is not None
        self.server_writer.write(data)
        await self.server_writer.drain()

    async def close_agent_side(self) -> None:
        assert self.server_writer is not None
        self.server_writer.close()
        try:
            await self.server_writer.wait_closed()
        except (ConnectionError, RuntimeError):
            pass


@pytest_asyncio.fixture
async def loopback():
    async with Loopback() as lb:
        yield lb
