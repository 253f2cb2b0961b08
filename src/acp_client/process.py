from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import os
from typing import Mapping, Optional, Sequence

from .exceptions import AgentNotFoundError, SpawnError

logger = logging.getLogger(__name__)
stderr_logger = logging.getLogger("acp_client.agent.stderr")

# Large enough for agents that inline file contents or diffs in one frame.
DEFAULT_STREAM_LIMIT = 16 * 1024 * 1024


class ProcessState(enum.Enum):
    RUNNING = "running"
    EXITED = "exited"


class AgentProcess:
    """A spawned agent. Only :class:`ProcessSupervisor` terminates it."""

    def __init__(self, command: Sequence[str], proc: asyncio.subprocess.Process) -> None:
        self.command = list(command)
        self._proc = proc
        self._stderr_task: Optional[asyncio.Task[None]] = None

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def stdin(self) -> asyncio.StreamWriter:
        assert self._proc.stdin is not None
        return self._proc.stdin

    @property
    def stdout(self) -> asyncio.StreamReader:
        assert self._proc.stdout is not None
        return self._proc.stdout

    @property
    def exit_code(self) -> Optional[int]:
        return self._proc.returncode

    @property
    def state(self) -> ProcessState:
        return ProcessState.RUNNING if self._proc.returncode is None else ProcessState.EXITED

    async def wait(self) -> int:
        return await self._proc.wait()

    def __repr__(self) -> str:
        return f"<AgentProcess pid={self.pid} state={self.state.value} exit_code={self.exit_code}>"


class ProcessSupervisor:
    """Spawns the agent with piped stdio and tears it down in two phases."""

    def __init__(self, stream_limit: int = DEFAULT_STREAM_LIMIT) -> None:
        self._stream_limit = stream_limit

    async def spawn(
        self,
        command: Optional[Sequence[str]],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> AgentProcess:
        if not command:
            raise AgentNotFoundError("No agent command available; set an absolute path or install the agent in PATH")
        command = [str(part) for part in command]

        child_env = os.environ.copy()
        if env:
            child_env.update(env)

        logger.info("Starting agent: %s", command)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                # stdout carries protocol frames only; diagnostics go to the log
                stderr=asyncio.subprocess.PIPE,
                env=child_env,
                cwd=cwd,
                limit=self._stream_limit,
            )
        except FileNotFoundError as exc:
            raise AgentNotFoundError(f"Agent executable not found: {command[0]}", command) from exc
        except OSError as exc:
            raise SpawnError(f"Failed to start agent {command[0]}: {exc}", command) from exc

        process = AgentProcess(command, proc)
        if proc.stderr is not None:
            process._stderr_task = asyncio.create_task(
                _drain_stderr(proc.stderr, proc.pid), name=f"acp_client.agent.stderr.{proc.pid}"
            )
        logger.debug("Agent started pid=%s", proc.pid)
        return process

    async def terminate(self, process: AgentProcess, grace_period: float = 0.5) -> Optional[int]:
        """Close stdin, SIGTERM, wait ``grace_period`` seconds, then SIGKILL."""
        proc = process._proc
        if proc.stdin is not None and not proc.stdin.is_closing():
            proc.stdin.close()

        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), grace_period)
            except asyncio.TimeoutError:
                logger.warning("Agent pid=%s did not exit within %.1fs; killing it", proc.pid, grace_period)
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
        else:
            await proc.wait()

        if process._stderr_task is not None:
            # stderr hits EOF once the child is gone; bound the wait anyway in
            # case a grandchild inherited the pipe.
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(process._stderr_task, 1.0)
        logger.info("Agent pid=%s exited with code %s", proc.pid, proc.returncode)
        return proc.returncode


async def _drain_stderr(stream: asyncio.StreamReader, pid: int) -> None:
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            continue
        if not line:
            return
        stderr_logger.info("[agent %s] %s", pid, line.decode("utf-8", errors="replace").rstrip())
