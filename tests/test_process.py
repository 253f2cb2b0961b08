import asyncio
import logging
import signal
import sys

import pytest

from acp_client.exceptions import AgentNotFoundError
from acp_client.process import ProcessState, ProcessSupervisor

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX signals")

IGNORE_SIGTERM = (
    "import signal, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "print('ready', flush=True)\n"
    "time.sleep(60)\n"
)


@pytest.mark.asyncio
async def test_empty_command_fails_without_spawning(monkeypatch):
    calls = []

    async def fake_exec(*args, **kwargs):
        calls.append(args)
        raise AssertionError("should not spawn")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    supervisor = ProcessSupervisor()
    for command in (None, []):
        with pytest.raises(AgentNotFoundError):
            await supervisor.spawn(command)
    assert calls == []


@pytest.mark.asyncio
async def test_missing_executable_is_not_found(tmp_path):
    with pytest.raises(AgentNotFoundError) as exc_info:
        await ProcessSupervisor().spawn([str(tmp_path / "no-such-agent")])
    assert exc_info.value.command == [str(tmp_path / "no-such-agent")]


@posix_only
@pytest.mark.asyncio
async def test_cooperative_agent_exits_on_sigterm():
    supervisor = ProcessSupervisor()
    process = await supervisor.spawn([sys.executable, "-c", "import time; time.sleep(60)"])
    assert process.state is ProcessState.RUNNING
    code = await supervisor.terminate(process, grace_period=5)
    assert code == -signal.SIGTERM
    assert process.state is ProcessState.EXITED


@posix_only
@pytest.mark.asyncio
async def test_agent_ignoring_sigterm_is_killed():
    supervisor = ProcessSupervisor()
    process = await supervisor.spawn([sys.executable, "-c", IGNORE_SIGTERM])
    assert await asyncio.wait_for(process.stdout.readline(), 10) == b"ready\n"
    code = await asyncio.wait_for(supervisor.terminate(process, grace_period=0.2), 10)
    assert code == -signal.SIGKILL
    assert process.exit_code == -signal.SIGKILL


@pytest.mark.asyncio
async def test_stderr_goes_to_the_log_and_env_is_passed(caplog):
    caplog.set_level(logging.INFO, logger="acp_client.agent.stderr")
    script = "import os, sys; sys.stderr.write('agent says ' + os.environ['ACP_TEST_VALUE'] + '\\n')"
    supervisor = ProcessSupervisor()
    process = await supervisor.spawn([sys.executable, "-c", script], env={"ACP_TEST_VALUE": "hi"})
    assert await asyncio.wait_for(process.wait(), 10) == 0
    await supervisor.terminate(process)
    assert "agent says hi" in caplog.text
    # nothing leaked onto the protocol stream
    assert await process.stdout.read() == b""
