"""
Configuration Module

Centralized configuration management for the first contact system.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional
import os
from pathlib import Path

from prompts import DEFAULT_SYSTEM_PROMPTS
from providers import PROVIDERS, get_provider_info

MIN_ROUNDS, MAX_ROUNDS = 1, 299
MIN_PACE_SECONDS, MAX_PACE_SECONDS = 1.0, 60.0
DEFAULT_ROUNDS = 6
DEFAULT_PACE_SECONDS = 3.0
DEFAULT_HISTORY_WINDOW = 8
DEFAULT_MAX_ATTEMPTS = 5


class ConfigurationError(ValueError):
    """Raised when a run configuration cannot be used."""


@dataclass
class SystemConfig:
    """Process-wide settings (logging and export locations)."""

    # Logging Configuration
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_file: Optional[str] = None

    # Export Configuration
    export_dir: str = "./contacts"

    def __post_init__(self):
        """Validate and setup configuration."""
        Path(self.log_dir).mkdir(parents=True, exist_ok=True)

        if self.log_file is None:
            self.log_file = str(Path(self.log_dir) / "first_contact.log")


@dataclass(frozen=True)
class EntityConfig:
    """Provider, model and prompt assignment for one entity."""

    provider: str
    model: Optional[str] = None
    system_prompt: Optional[str] = None

    @property
    def resolved_model(self) -> str:
        return self.model or get_provider_info(self.provider).default_model

    @property
    def color(self) -> str:
        """Identity color used to render this entity's marks."""
        return get_provider_info(self.provider).color


@dataclass(frozen=True)
class RunConfiguration:
    """
    Everything a run needs, fixed at session start.

    Credentials map provider id to API key; only providers actually assigned
    to an entity need one.
    """

    entity_a: EntityConfig
    entity_b: EntityConfig
    rounds: int = DEFAULT_ROUNDS
    pace_seconds: float = DEFAULT_PACE_SECONDS
    credentials: Mapping[str, str] = field(default_factory=dict)
    history_window: int = DEFAULT_HISTORY_WINDOW
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def entity(self, entity_id: str) -> EntityConfig:
        if entity_id == "A":
            return self.entity_a
        if entity_id == "B":
            return self.entity_b
        raise KeyError(f"Unknown entity: {entity_id}")

    def system_prompt_for(self, entity_id: str) -> str:
        return self.entity(entity_id).system_prompt or DEFAULT_SYSTEM_PROMPTS[entity_id]

    def providers_in_use(self) -> List[str]:
        return sorted({self.entity_a.provider, self.entity_b.provider})

    def api_key_for(self, provider: str) -> str:
        return self.credentials.get(provider, "")

    def validate(self) -> "RunConfiguration":
        """
        Check bounds and credentials.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If any setting is out of range or a key is missing
        """
        for entity_id, entity in (("A", self.entity_a), ("B", self.entity_b)):
            if entity.provider not in PROVIDERS:
                raise ConfigurationError(
                    f"Entity {entity_id}: unknown provider '{entity.provider}'. "
                    f"Available: {list(PROVIDERS.keys())}"
                )

        if not MIN_ROUNDS <= self.rounds <= MAX_ROUNDS:
            raise ConfigurationError(
                f"rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}, got {self.rounds}"
            )
        if not MIN_PACE_SECONDS <= self.pace_seconds <= MAX_PACE_SECONDS:
            raise ConfigurationError(
                f"pace_seconds must be between {MIN_PACE_SECONDS:g} and "
                f"{MAX_PACE_SECONDS:g}, got {self.pace_seconds}"
            )
        if self.history_window < 2 or self.history_window % 2:
            raise ConfigurationError(
                f"history_window must be a positive even number, got {self.history_window}"
            )
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {self.max_attempts}")

        missing = [p for p in self.providers_in_use() if not self.api_key_for(p)]
        if missing:
            names = ", ".join(get_provider_info(p).api_key_env for p in missing)
            raise ConfigurationError(f"Missing API key(s): {names}")

        return self


class ConfigLoader:
    """
    Loads configuration from environment variables and files.
    """

    @staticmethod
    def load_from_env() -> SystemConfig:
        """
        Load system configuration from environment variables.

        Returns:
            SystemConfig instance
        """
        return SystemConfig(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_dir=os.environ.get("LOG_DIR", "./logs"),
            log_file=os.environ.get("LOG_FILE"),
            export_dir=os.environ.get("EXPORT_DIR", "./contacts")
        )

    @staticmethod
    def load_credentials_from_env() -> Dict[str, str]:
        """Collect every provider API key present in the environment."""
        credentials = {}
        for provider_id, info in PROVIDERS.items():
            key = os.environ.get(info.api_key_env)
            if key:
                credentials[provider_id] = key
        return credentials

    @staticmethod
    def load_run_config_from_env(validate: bool = True) -> RunConfiguration:
        """
        Load the run configuration from environment variables.

        Args:
            validate: Validate before returning (callers applying overrides
                validate afterwards)

        Returns:
            RunConfiguration

        Raises:
            ConfigurationError: If values are malformed or out of range
        """
        try:
            rounds = int(os.environ.get("CONTACT_ROUNDS", str(DEFAULT_ROUNDS)))
            pace = float(os.environ.get("PACE_SECONDS", str(DEFAULT_PACE_SECONDS)))
            window = int(os.environ.get("HISTORY_WINDOW", str(DEFAULT_HISTORY_WINDOW)))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}")

        config = RunConfiguration(
            entity_a=EntityConfig(
                provider=os.environ.get("ENTITY_A_PROVIDER", "openai"),
                model=os.environ.get("ENTITY_A_MODEL") or None
            ),
            entity_b=EntityConfig(
                provider=os.environ.get("ENTITY_B_PROVIDER", "gemini"),
                model=os.environ.get("ENTITY_B_MODEL") or None
            ),
            rounds=rounds,
            pace_seconds=pace,
            credentials=ConfigLoader.load_credentials_from_env(),
            history_window=window
        )
        return config.validate() if validate else config


# Preset pacing for different contact lengths

PRESET_CONFIGS = {
    "quick_contact": {
        "rounds": 3,
        "pace_seconds": 2.0
    },
    "standard_contact": {
        "rounds": DEFAULT_ROUNDS,
        "pace_seconds": DEFAULT_PACE_SECONDS
    },
    "long_contact": {
        "rounds": 20,
        "pace_seconds": 5.0,
        "history_window": 12
    }
}


def get_preset_config(preset_name: str, base_config: RunConfiguration) -> RunConfiguration:
    """
    Apply a preset to a base run configuration.

    Args:
        preset_name: Name of preset configuration
        base_config: Base run configuration

    Returns:
        Updated RunConfiguration

    Raises:
        ValueError: If preset name is unknown
    """
    if preset_name not in PRESET_CONFIGS:
        raise ValueError(
            f"Unknown preset: {preset_name}. "
            f"Available: {list(PRESET_CONFIGS.keys())}"
        )

    return replace(base_config, **PRESET_CONFIGS[preset_name])
