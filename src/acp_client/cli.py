"""Command-line front-end: one-shot prompt or interactive chat against an agent."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from prompt_toolkit import PromptSession
from rich.console import Console
from rich.text import Text

from .client import AutoApproveSessionOperations, SessionOperations
from .config import ClientConfig
from .dispatcher import Event, PromptResponseEvent, SessionUpdateEvent
from .engine import AgentClient
from .exceptions import AcpError, EngineClosedError
from .schema import (
    AgentMessageChunk,
    AgentThoughtChunk,
    AllowedOutcome,
    DeniedOutcome,
    PermissionOption,
    RequestPermissionResponse,
    TextContentBlock,
    ToolCallProgress,
    ToolCallStart,
    ToolCallUpdate,
)
from .session import ClientSession

logger = logging.getLogger(__name__)


class TerminalSessionOperations(AutoApproveSessionOperations):
    """Asks the user on the terminal before the agent may use a tool."""

    async def request_permissions(
        self, tool_call: ToolCallUpdate, options: List[PermissionOption]
    ) -> RequestPermissionResponse:
        if not options:
            return RequestPermissionResponse(outcome=DeniedOutcome())
        print(f"\n[permission] {tool_call.title or tool_call.toolCallId}", file=sys.stderr)
        for idx, opt in enumerate(options, start=1):
            print(f"  {idx}) {opt.name} ({opt.kind})", file=sys.stderr)
        try:
            choice = (await asyncio.to_thread(input, "Permission choice (number): ")).strip()
        except EOFError:
            choice = ""
        if choice.isdigit() and 1 <= int(choice) <= len(options):
            selected = options[int(choice) - 1].optionId
            self._logger.info("permission.response session=%s selection=%s", self.session.session_id, selected)
            return RequestPermissionResponse(outcome=AllowedOutcome(optionId=selected))
        self._logger.info("permission.response session=%s cancelled", self.session.session_id)
        return RequestPermissionResponse(outcome=DeniedOutcome())

    async def notify(self, update) -> None:
        # Rendering happens in the prompt event loop.
        self._logger.debug("session.update %s %s", self.session.session_id, update.sessionUpdate)


class TerminalProvider:
    def __init__(self, auto_approve: bool = False) -> None:
        self._auto_approve = auto_approve

    async def create_client_session(self, session: ClientSession) -> SessionOperations:
        if self._auto_approve:
            return AutoApproveSessionOperations(session)
        return TerminalSessionOperations(session)


def create_console() -> Console:
    return Console(markup=False, highlight=False, soft_wrap=True)


def render_event(event: Event, console: Console, show_thoughts: bool = False) -> None:
    if isinstance(event, PromptResponseEvent):
        console.print(f"\n[{event.stop_reason}]")
        return
    assert isinstance(event, SessionUpdateEvent)
    update = event.update
    if isinstance(update, AgentMessageChunk):
        if isinstance(update.content, TextContentBlock):
            console.print(update.content.text, end="")
        else:
            console.print(Text(f"<{update.content.type}>", style="magenta"), end="")
    elif isinstance(update, AgentThoughtChunk):
        if show_thoughts and isinstance(update.content, TextContentBlock):
            console.print(Text(update.content.text, style="dim"), end="")
    elif isinstance(update, ToolCallStart):
        console.print(Text(f"\n[tool] {update.title}", style="cyan"))
    elif isinstance(update, ToolCallProgress):
        if update.status in ("completed", "failed"):
            style = "green" if update.status == "completed" else "red"
            console.print(Text(f"[tool {update.status}] {update.title or update.toolCallId}", style=style))


async def run_prompt(session: ClientSession, text: str, console: Console, show_thoughts: bool = False) -> None:
    async for event in session.prompt([text]):
        render_event(event, console, show_thoughts)


async def interactive_loop(
    session: ClientSession,
    console: Console,
    show_thoughts: bool = False,
    prompt_session: Optional[PromptSession] = None,
) -> None:
    """Read lines until EOF or /quit and send each one as a prompt turn."""
    prompt_session = prompt_session or PromptSession()
    console.print(f"Session created with ID: {session.session_id}\nYou can now send messages.")
    while True:
        try:
            line = await prompt_session.prompt_async("> ")
        except EOFError:
            return
        except KeyboardInterrupt:
            continue
        line = line.strip()
        if not line:
            continue
        if line in ("/quit", "/exit"):
            return
        try:
            await run_prompt(session, line, console, show_thoughts)
        except EngineClosedError as exc:
            console.print(Text(f"Error: agent connection closed: {exc}", style="red"))
            return
        except AcpError as exc:
            console.print(Text(f"Error: Failed to send message: {exc}", style="red"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="acp-client", description="Run an ACP agent over stdio and talk to it.")
    parser.add_argument("-p", "--prompt", help="Send one prompt, print the reply and exit")
    parser.add_argument("--cwd", help="Working directory for the session (default: current directory)")
    parser.add_argument("--yes", action="store_true", help="Auto-select the first permission option")
    parser.add_argument("--show-thoughts", action="store_true", help="Print agent thought chunks")
    parser.add_argument("--startup-timeout", type=float, help="Seconds to wait for the handshake")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for diagnostics on stderr",
    )
    parser.add_argument("agent_program", help="Agent executable")
    parser.add_argument("agent_args", nargs=argparse.REMAINDER, help="Arguments for the agent")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    overrides = {}
    if args.startup_timeout is not None:
        overrides["startup_timeout"] = args.startup_timeout
    if args.cwd:
        overrides["cwd"] = args.cwd
    config = ClientConfig.from_env([args.agent_program, *args.agent_args], **overrides)
    provider = TerminalProvider(auto_approve=args.yes)
    console = create_console()

    try:
        async with AgentClient(config, provider) as client:
            session = await client.new_session(args.cwd)
            if args.prompt is not None:
                await run_prompt(session, args.prompt, console, args.show_thoughts)
            else:
                await interactive_loop(session, console, args.show_thoughts)
    except AcpError as exc:
        print(f"ACP session failed: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))
