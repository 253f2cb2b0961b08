import asyncio
from typing import Any, List, Optional, Tuple

import pytest

from acp_client.connection import Connection, ConnectionState
from acp_client.exceptions import EngineClosedError, RequestError, RequestTimeoutError
from acp_client.schema import ReadTextFileResponse
from acp_client.transport import Transport


# --------------------- Test Doubles -----------------------

class RecordingHandler:
    __test__ = False

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any, bool]] = []

    async def __call__(self, method: str, params: Any, is_notification: bool) -> Optional[Any]:
        self.calls.append((method, params, is_notification))
        if method == "fs/read_text_file":
            return ReadTextFileResponse(content="file body")
        if method == "explode":
            raise RuntimeError("boom")
        if is_notification:
            return None
        raise RequestError.method_not_found(method)


def _connect(lb, handler=None) -> Connection:
    conn = Connection(handler or RecordingHandler(), Transport(lb.client_reader, lb.client_writer))
    conn.start()
    return conn


# ------------------------ Tests --------------------------

@pytest.mark.asyncio
async def test_request_ids_start_at_zero_and_increase(loopback):
    conn = _connect(loopback)
    seen = []
    for expected in range(3):
        task = asyncio.create_task(conn.send_request("session/new", {"cwd": "/tmp"}))
        frame = await loopback.read_frame()
        seen.append(frame["id"])
        await loopback.write_frame({"jsonrpc": "2.0", "id": frame["id"], "result": {"sessionId": f"s{expected}"}})
        assert await task == {"sessionId": f"s{expected}"}
    assert seen == [0, 1, 2]
    await conn.close()


@pytest.mark.asyncio
async def test_out_of_order_responses_resolve_matching_callers(loopback):
    conn = _connect(loopback)
    first = asyncio.create_task(conn.send_request("a"))
    second = asyncio.create_task(conn.send_request("b"))
    frames = [await loopback.read_frame(), await loopback.read_frame()]
    by_method = {f["method"]: f["id"] for f in frames}

    await loopback.write_frame({"jsonrpc": "2.0", "id": by_method["b"], "result": "for b"})
    await loopback.write_frame({"jsonrpc": "2.0", "id": by_method["a"], "result": "for a"})

    assert await first == "for a"
    assert await second == "for b"
    assert conn.pending_count == 0
    await conn.close()


@pytest.mark.asyncio
async def test_error_response_raises_request_error(loopback):
    conn = _connect(loopback)
    task = asyncio.create_task(conn.send_request("authenticate", {"methodId": "x"}))
    frame = await loopback.read_frame()
    await loopback.write_frame(
        {"jsonrpc": "2.0", "id": frame["id"], "error": {"code": -32000, "message": "Authentication required"}}
    )
    with pytest.raises(RequestError) as exc_info:
        await task
    assert exc_info.value.code == -32000
    await conn.close()


@pytest.mark.asyncio
async def test_zero_timeout_evicts_pending_and_ignores_late_response(loopback):
    conn = _connect(loopback)
    before = conn.pending_count
    with pytest.raises(RequestTimeoutError) as exc_info:
        await conn.send_request("session/new", {"cwd": "/tmp"}, timeout=0)
    assert exc_info.value.method == "session/new"
    assert conn.pending_count == before

    late = await loopback.read_frame()
    await loopback.write_frame({"jsonrpc": "2.0", "id": late["id"], "result": {"sessionId": "late"}})

    # The connection stays usable and the late response is discarded.
    task = asyncio.create_task(conn.send_request("ping"))
    frame = await loopback.read_frame()
    assert frame["id"] == late["id"] + 1
    await loopback.write_frame({"jsonrpc": "2.0", "id": frame["id"], "result": "pong"})
    assert await task == "pong"
    await conn.close()


@pytest.mark.asyncio
async def test_unmatched_response_is_discarded(loopback, caplog):
    conn = _connect(loopback)
    await loopback.write_frame({"jsonrpc": "2.0", "id": 4242, "result": {}})
    task = asyncio.create_task(conn.send_request("ping"))
    frame = await loopback.read_frame()
    await loopback.write_frame({"jsonrpc": "2.0", "id": frame["id"], "result": "pong"})
    assert await task == "pong"
    assert conn.state is ConnectionState.RUNNING
    assert "unknown request id 4242" in caplog.text
    await conn.close()


@pytest.mark.asyncio
async def test_agent_eof_fails_every_pending_request(loopback):
    conn = _connect(loopback)
    tasks = [asyncio.create_task(conn.send_request(f"m{i}")) for i in range(3)]
    for _ in tasks:
        await loopback.read_frame()
    assert conn.pending_count == 3

    await loopback.close_agent_side()

    results = await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), 5)
    assert all(isinstance(r, EngineClosedError) for r in results)
    # each caller gets its own exception instance
    assert len({id(r) for r in results}) == 3
    assert conn.pending_count == 0
    assert conn.state is ConnectionState.CLOSED
    with pytest.raises(EngineClosedError):
        await conn.send_request("after")
    with pytest.raises(EngineClosedError):
        await conn.send_notification("after")


@pytest.mark.asyncio
async def test_close_fails_pending_and_runs_callbacks(loopback):
    conn = _connect(loopback)
    reasons = []
    conn.add_close_callback(reasons.append)
    task = asyncio.create_task(conn.send_request("session/prompt"))
    await loopback.read_frame()

    await conn.close()

    with pytest.raises(EngineClosedError):
        await task
    assert len(reasons) == 1 and isinstance(reasons[0], EngineClosedError)
    assert conn.close_reason is reasons[0]
    # close is idempotent and late callbacks fire immediately
    await conn.close()
    conn.add_close_callback(reasons.append)
    assert len(reasons) == 2


@pytest.mark.asyncio
async def test_start_twice_is_rejected(loopback):
    conn = _connect(loopback)
    with pytest.raises(RuntimeError):
        conn.start()
    await conn.close()
    with pytest.raises(RuntimeError):
        conn.start()


@pytest.mark.asyncio
async def test_agent_request_is_answered_with_model_result(loopback):
    handler = RecordingHandler()
    conn = _connect(loopback, handler)
    await loopback.write_frame(
        {"jsonrpc": "2.0", "id": "r1", "method": "fs/read_text_file", "params": {"sessionId": "s1", "path": "a"}}
    )
    reply = await loopback.read_frame()
    assert reply == {"jsonrpc": "2.0", "id": "r1", "result": {"content": "file body"}}
    assert handler.calls == [("fs/read_text_file", {"sessionId": "s1", "path": "a"}, False)]
    await conn.close()


@pytest.mark.asyncio
async def test_handler_failure_becomes_internal_error(loopback):
    conn = _connect(loopback)
    await loopback.write_frame({"jsonrpc": "2.0", "id": 7, "method": "explode", "params": {}})
    reply = await loopback.read_frame()
    assert reply["id"] == 7
    assert reply["error"]["code"] == -32603
    assert reply["error"]["data"] == {"details": "boom"}
    assert conn.state is ConnectionState.RUNNING
    await conn.close()


@pytest.mark.asyncio
async def test_unknown_method_is_method_not_found(loopback):
    conn = _connect(loopback)
    await loopback.write_frame({"jsonrpc": "2.0", "id": 8, "method": "terminal/create", "params": {}})
    reply = await loopback.read_frame()
    assert reply["error"]["code"] == -32601
    assert reply["error"]["data"] == {"method": "terminal/create"}
    await conn.close()


@pytest.mark.asyncio
async def test_notifications_reach_handler_in_wire_order(loopback):
    handler = RecordingHandler()
    conn = _connect(loopback, handler)
    for i in range(5):
        await loopback.write_frame({"jsonrpc": "2.0", "method": "session/update", "params": {"n": i}})
    # a request after the notifications proves they were all consumed
    await loopback.write_frame({"jsonrpc": "2.0", "id": 1, "method": "fs/read_text_file", "params": {}})
    await loopback.read_frame()
    assert [c[1]["n"] for c in handler.calls[:5]] == list(range(5))
    assert all(c[2] for c in handler.calls[:5])
    await conn.close()


@pytest.mark.asyncio
async def test_malformed_frames_are_skipped(loopback):
    conn = _connect(loopback)
    await loopback.write_raw(b"{definitely not json\n")
    await loopback.write_frame({"jsonrpc": "2.0", "id": 5, "method": 12})
    reply = await loopback.read_frame()
    assert reply["id"] == 5
    assert reply["error"]["code"] == -32600

    task = asyncio.create_task(conn.send_request("ping"))
    frame = await loopback.read_frame()
    await loopback.write_frame({"jsonrpc": "2.0", "id": frame["id"], "result": "pong"})
    assert await task == "pong"
    await conn.close()
