from acp_client.config import DEFAULT_STARTUP_TIMEOUT, ClientConfig


def test_defaults():
    config = ClientConfig(command=["agent"])
    assert config.startup_timeout == DEFAULT_STARTUP_TIMEOUT
    assert config.request_timeout is None
    assert config.client_capabilities.fs.readTextFile
    assert config.client_info.name == "acp-client"


def test_from_env_reads_acp_variables():
    environ = {
        "ACP_STARTUP_TIMEOUT": "5",
        "ACP_SHUTDOWN_GRACE_PERIOD": "0.1",
        "ACP_REQUEST_TIMEOUT": "30",
        "ACP_CREDENTIAL_ENV": "ANTHROPIC_API_KEY",
    }
    config = ClientConfig.from_env(("agent", "--stdio"), environ)
    assert config.command == ["agent", "--stdio"]
    assert config.startup_timeout == 5.0
    assert config.shutdown_grace_period == 0.1
    assert config.request_timeout == 30.0
    assert config.credential_env == "ANTHROPIC_API_KEY"


def test_overrides_win_over_environment():
    config = ClientConfig.from_env(["agent"], {"ACP_STARTUP_TIMEOUT": "5"}, startup_timeout=1.5, cwd="/work")
    assert config.startup_timeout == 1.5
    assert config.cwd == "/work"


def test_from_env_without_command():
    assert ClientConfig.from_env(None, {}).command is None


def test_agent_env_passes_credential_through():
    config = ClientConfig(command=["agent"], env={"EXTRA": "1"})
    assert config.agent_env({"OPENAI_API_KEY": "sk-test"}) == {"EXTRA": "1", "OPENAI_API_KEY": "sk-test"}
    assert config.agent_env({}) == {"EXTRA": "1", "OPENAI_API_KEY": ""}

    explicit = ClientConfig(command=["agent"], env={"OPENAI_API_KEY": "from-config"})
    assert explicit.agent_env({"OPENAI_API_KEY": "sk-test"})["OPENAI_API_KEY"] == "from-config"
