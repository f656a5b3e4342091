"""
Tests for configuration loading and validation.

Run with: pytest tests/test_config.py -v
"""

from dataclasses import replace

import pytest

from conftest import make_config
from config import (
    ConfigLoader,
    ConfigurationError,
    EntityConfig,
    SystemConfig,
    get_preset_config,
)
from prompts import SYSTEM_PROMPT_A, SYSTEM_PROMPT_B


class TestRunConfigurationValidation:
    def test_valid(self):
        config = make_config()
        assert config.validate() is config

    @pytest.mark.parametrize("rounds", [0, 300])
    def test_rounds_bounds(self, rounds):
        with pytest.raises(ConfigurationError):
            make_config(rounds=rounds).validate()

    @pytest.mark.parametrize("pace", [0.5, 61])
    def test_pace_bounds(self, pace):
        with pytest.raises(ConfigurationError):
            make_config(pace_seconds=pace).validate()

    @pytest.mark.parametrize("window", [0, 3])
    def test_history_window_must_be_even(self, window):
        with pytest.raises(ConfigurationError):
            make_config(history_window=window).validate()

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            make_config(provider_a="telepathy").validate()

    def test_missing_key_names_env_var(self):
        config = replace(make_config(provider_b="anthropic"), credentials={"openai": "k"})
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            config.validate()

    def test_only_assigned_providers_need_keys(self):
        config = replace(make_config(), credentials={"openai": "k1", "gemini": "k2"})
        assert config.validate() is config


class TestDefaults:
    def test_default_prompts_and_models(self):
        config = make_config()
        assert config.system_prompt_for("A") == SYSTEM_PROMPT_A
        assert config.system_prompt_for("B") == SYSTEM_PROMPT_B
        assert config.entity_a.resolved_model == "gpt-4o"

    def test_custom_prompt_and_model(self):
        config = replace(make_config(), entity_a=EntityConfig("openai", model="gpt-x", system_prompt="SYS"))
        assert config.system_prompt_for("A") == "SYS"
        assert config.entity_a.resolved_model == "gpt-x"

    def test_unknown_entity(self):
        with pytest.raises(KeyError):
            make_config().entity("C")


class TestConfigLoader:
    def test_run_config_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("GROQ_API_KEY", "gsk-env")
        monkeypatch.setenv("ENTITY_B_PROVIDER", "groq")
        monkeypatch.setenv("CONTACT_ROUNDS", "4")
        monkeypatch.setenv("PACE_SECONDS", "2.5")
        config = ConfigLoader.load_run_config_from_env()

        assert config.entity_b.provider == "groq"
        assert config.rounds == 4
        assert config.pace_seconds == 2.5
        assert config.api_key_for("groq") == "gsk-env"

    def test_malformed_number(self, monkeypatch):
        monkeypatch.setenv("CONTACT_ROUNDS", "many")
        with pytest.raises(ConfigurationError):
            ConfigLoader.load_run_config_from_env(validate=False)

    def test_system_config_creates_log_dir(self, tmp_path):
        log_dir = tmp_path / "logs"
        config = SystemConfig(log_dir=str(log_dir))
        assert log_dir.is_dir()
        assert config.log_file.endswith("first_contact.log")


class TestPresets:
    def test_apply_preset(self):
        config = get_preset_config("long_contact", make_config())
        assert config.rounds == 20
        assert config.history_window == 12
        assert config.validate() is config

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            get_preset_config("forever", make_config())
