import asyncio
import logging
import os
import sys

from acp_client import (
    AgentClient,
    AgentMessageChunk,
    AutoApproveSessionOperations,
    ClientConfig,
    PromptResponseEvent,
    SessionUpdateEvent,
    TextContentBlock,
)


class MinimalProvider:
    async def create_client_session(self, session):
        return AutoApproveSessionOperations(session)


async def main(argv: list[str]) -> int:
    if not argv:
        print("usage: client.py AGENT [ARGS...]", file=sys.stderr)
        return 2
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    config = ClientConfig.from_env(argv)
    # 1) spawn + initialize
    async with AgentClient(config, MinimalProvider()) as client:
        print(f"Initialized with agent: {client.agent_info}", file=sys.stderr)
        # 2) new session
        session = await client.new_session(os.getcwd())
        # 3) prompt, streaming the reply
        async for event in session.prompt(["Hello from client"]):
            if isinstance(event, SessionUpdateEvent) and isinstance(event.update, AgentMessageChunk):
                if isinstance(event.update.content, TextContentBlock):
                    print(event.update.content.text, end="", flush=True)
            elif isinstance(event, PromptResponseEvent):
                print(f"\n[{event.stop_reason}]")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
