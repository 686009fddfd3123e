"""
Tests for environment driven settings
"""

from conductor.infrastructure.config import AgentLoopConfig, EngineSettings, MemoryConfig


def test_defaults_without_environment(monkeypatch):
    for name in ("CONDUCTOR_LOG_LEVEL", "CONDUCTOR_MAX_ITERATIONS", "CONDUCTOR_TOOL_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)

    settings = EngineSettings.from_env()

    assert settings.log_level == "INFO"
    assert settings.agent == AgentLoopConfig()
    assert settings.memory == MemoryConfig()


def test_reads_conductor_variables(monkeypatch):
    monkeypatch.setenv("CONDUCTOR_LOG_FORMAT", "console")
    monkeypatch.setenv("CONDUCTOR_MAX_ITERATIONS", "4")
    monkeypatch.setenv("CONDUCTOR_MAX_TOOL_ATTEMPTS", "1")
    monkeypatch.setenv("CONDUCTOR_TOOL_TIMEOUT", "2.5")
    monkeypatch.setenv("CONDUCTOR_SHORT_TERM_TTL", "30")
    monkeypatch.setenv("CONDUCTOR_LONG_TERM_TOP_K", "8")

    settings = EngineSettings.from_env()

    assert settings.log_format == "console"
    assert settings.agent.max_iterations == 4
    assert settings.agent.max_tool_attempts == 1
    assert settings.agent.tool_timeout == 2.5
    assert settings.memory.short_term_ttl == 30.0
    assert settings.memory.long_term_top_k == 8


def test_timeouts_can_be_disabled(monkeypatch):
    monkeypatch.setenv("CONDUCTOR_TOOL_TIMEOUT", "none")
    monkeypatch.setenv("CONDUCTOR_DECISION_TIMEOUT", "0")

    settings = EngineSettings.from_env()

    assert settings.agent.tool_timeout is None
    assert settings.agent.decision_timeout is None
