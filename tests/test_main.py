"""
Tests for the command-line entry point.

Run with: pytest tests/test_main.py -v
"""

import main as cli
from config import SystemConfig
from conftest import FakeGateway, make_config
from run_state import RunState

_FirstContactSystem = cli.FirstContactSystem

ENV_VARS = (
    "ENTITY_A_PROVIDER", "ENTITY_B_PROVIDER", "ENTITY_A_MODEL", "ENTITY_B_MODEL",
    "CONTACT_ROUNDS", "PACE_SECONDS", "HISTORY_WINDOW", "LOG_DIR", "LOG_FILE", "EXPORT_DIR"
)


def interrupting_system(tmp_path):
    """System whose entity B is interrupted with Ctrl-C on its first call."""
    return _FirstContactSystem(
        system_config=SystemConfig(
            log_dir=str(tmp_path / "logs"),
            export_dir=str(tmp_path / "contacts")
        ),
        gateways={"openai": FakeGateway(), "gemini": FakeGateway([KeyboardInterrupt()])}
    )


class TestInterrupt:
    """Ctrl-C ends the run but keeps the exchanges recorded so far."""

    def test_run_contact_keeps_partial_log(self, tmp_path):
        system = interrupting_system(tmp_path)
        context = system.run_contact(make_config(rounds=2))

        assert system.interrupted
        assert context is system.protocol.context
        assert context.state == RunState.CANCELLED
        assert [e.exchange_id for e in context.exchanges] == ["1-A"]

    def test_main_prints_partial_log_and_exits_130(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai-key-0000000000")
        monkeypatch.setenv("GEMINI_API_KEY", "gemini-test-key-000000000000")
        monkeypatch.setattr(cli, "FirstContactSystem", lambda system_config: interrupting_system(tmp_path))

        code = cli.main(["--entity-a", "openai", "--entity-b", "gemini", "--rounds", "2", "--pace", "1"])

        out = capsys.readouterr().out
        assert code == 130
        assert "Entity A [OpenAI] (Round 1)" in out
        assert "Exchanges: 1" in out


class TestCompletedRun:
    def test_run_contact_returns_completed_context(self, tmp_path):
        system = cli.FirstContactSystem(
            system_config=SystemConfig(log_dir=str(tmp_path / "logs")),
            gateways={"openai": FakeGateway(), "gemini": FakeGateway()}
        )
        context = system.run_contact(make_config(rounds=1))

        assert not system.interrupted
        assert context.state == RunState.COMPLETED
        assert len(context.exchanges) == 2
