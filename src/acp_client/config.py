from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from .process import DEFAULT_STREAM_LIMIT
from .schema import ClientCapabilities, FileSystemCapability, Implementation

DEFAULT_STARTUP_TIMEOUT = 60.0
DEFAULT_SHUTDOWN_GRACE_PERIOD = 0.5
DEFAULT_CREDENTIAL_ENV = "OPENAI_API_KEY"


def default_client_capabilities() -> ClientCapabilities:
    return ClientCapabilities(fs=FileSystemCapability(readTextFile=True, writeTextFile=True))


def default_client_info() -> Implementation:
    from . import __version__

    return Implementation(name="acp-client", title="ACP Client", version=__version__)


@dataclass(slots=True)
class ClientConfig:
    """
    Everything needed to launch and talk to one agent.

    - command: argv of the agent, as a list; ``None``/empty means discovery found nothing
    - env: overrides merged on top of the current environment
    - credential_env: variable the agent reads its API key from; an empty value
      only produces a warning
    - startup_timeout: bound on spawn + protocol loop + handshake, in seconds
    - shutdown_grace_period: SIGTERM -> SIGKILL delay, in seconds
    - request_timeout: default timeout for control requests; prompts are unbounded
    """

    command: Optional[List[str]] = None
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    credential_env: str = DEFAULT_CREDENTIAL_ENV
    startup_timeout: float = DEFAULT_STARTUP_TIMEOUT
    shutdown_grace_period: float = DEFAULT_SHUTDOWN_GRACE_PERIOD
    request_timeout: Optional[float] = None
    stream_limit: int = DEFAULT_STREAM_LIMIT
    client_capabilities: ClientCapabilities = field(default_factory=default_client_capabilities)
    client_info: Optional[Implementation] = field(default_factory=default_client_info)

    @classmethod
    def from_env(
        cls,
        command: Optional[Sequence[str]],
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "ClientConfig":
        """Build a config, letting ``ACP_*`` variables override the defaults."""
        env = os.environ if environ is None else environ
        values: dict = {"command": list(command) if command else None}
        if env.get("ACP_STARTUP_TIMEOUT"):
            values["startup_timeout"] = float(env["ACP_STARTUP_TIMEOUT"])
        if env.get("ACP_SHUTDOWN_GRACE_PERIOD"):
            values["shutdown_grace_period"] = float(env["ACP_SHUTDOWN_GRACE_PERIOD"])
        if env.get("ACP_REQUEST_TIMEOUT"):
            values["request_timeout"] = float(env["ACP_REQUEST_TIMEOUT"])
        if env.get("ACP_CREDENTIAL_ENV"):
            values["credential_env"] = env["ACP_CREDENTIAL_ENV"]
        values.update(overrides)
        return cls(**values)

    def agent_env(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Environment overrides for the agent, with the credential passed through."""
        env = os.environ if environ is None else environ
        overrides = dict(self.env)
        overrides.setdefault(self.credential_env, env.get(self.credential_env, ""))
        return overrides
