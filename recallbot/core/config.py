# recallbot/core/config.py
"""Configuration loader and typed settings sections."""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

from .errors import ConfigError

CONFIG_ENV_VAR = "RECALLBOT_CONFIG"


class ConfigLoader:
    """Loads and saves configuration from YAML files."""

    @staticmethod
    def load(config_path: Optional[Path] = None) -> Dict[str, Any]:
        """
        Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses $RECALLBOT_CONFIG
                or falls back to config/default.yaml

        Returns:
            Configuration dictionary

        Raises:
            FileNotFoundError: If no configuration file can be found
            ConfigError: If the file is not a YAML mapping
        """
        if config_path is None and os.environ.get(CONFIG_ENV_VAR):
            config_path = Path(os.environ[CONFIG_ENV_VAR])

        if config_path is None:
            possible_paths = [
                Path("config/default.yaml"),
                Path(__file__).parent.parent.parent / "config" / "default.yaml",
            ]

            for path in possible_paths:
                if path.exists():
                    config_path = path
                    break

            if config_path is None:
                raise FileNotFoundError("Could not find default configuration file")

        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Malformed YAML in {config_path}: {e}")

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigError(f"Configuration root must be a mapping: {config_path}")

        return config

    @staticmethod
    def save(config: Dict[str, Any], config_path: Path):
        """Save configuration to file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(config, f, default_flow_style=False, indent=2, allow_unicode=True)


def _from_section(cls, section: Optional[Dict[str, Any]]):
    """Build a settings dataclass from a config section, rejecting unknown keys."""
    section = section or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{cls.__name__} section must be a mapping, got {type(section).__name__}")

    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        raise ConfigError(f"Unknown {cls.__name__} option(s): {', '.join(sorted(unknown))}")

    try:
        settings = cls(**section)
        settings.validate()
    except TypeError as e:
        # Wrong value types surface here when validate() compares them
        raise ConfigError(f"Invalid {cls.__name__}: {e}")

    return settings


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigError(message)


@dataclass
class SearchSettings:
    """Tunables for the fusion search engine."""

    rrf_k: int = 60
    results_per_query: int = 20
    result_limit: int = 20
    max_variants: int = 3
    max_workers: int = 4
    search_context_windows: bool = False
    filter_near_duplicates: bool = True
    near_duplicate_similarity: float = 0.98
    remove_emoji: bool = False
    entity_boost: float = 1.5

    # Confidence gates
    high_threshold: float = 0.5
    low_threshold: float = 0.35
    min_corroboration: int = 2

    @classmethod
    def from_dict(cls, section: Optional[Dict[str, Any]]) -> "SearchSettings":
        return _from_section(cls, section)

    def validate(self):
        _require(self.rrf_k >= 0, "search.rrf_k must be >= 0")
        _require(self.results_per_query > 0, "search.results_per_query must be positive")
        _require(self.result_limit > 0, "search.result_limit must be positive")
        _require(0 <= self.max_variants <= 3, "search.max_variants must be between 0 and 3")
        _require(self.max_workers > 0, "search.max_workers must be positive")
        _require(
            0.0 <= self.low_threshold <= self.high_threshold <= 1.0,
            "search thresholds must satisfy 0 <= low_threshold <= high_threshold <= 1",
        )
        _require(self.min_corroboration >= 1, "search.min_corroboration must be >= 1")
        _require(self.entity_boost >= 1.0, "search.entity_boost must be >= 1")
        _require(
            0.0 < self.near_duplicate_similarity <= 1.0,
            "search.near_duplicate_similarity must be in (0, 1]",
        )


@dataclass
class ContextSettings:
    """Tunables for context window assembly."""

    window_size: int = 2
    max_targets: int = 10
    center_max_chars: int = 500
    context_max_chars: int = 200
    char_budget: int = 16000

    @classmethod
    def from_dict(cls, section: Optional[Dict[str, Any]]) -> "ContextSettings":
        return _from_section(cls, section)

    def validate(self):
        _require(self.window_size >= 0, "context.window_size must be >= 0")
        _require(self.max_targets > 0, "context.max_targets must be positive")
        _require(self.center_max_chars > 0, "context.center_max_chars must be positive")
        _require(self.context_max_chars > 0, "context.context_max_chars must be positive")
        _require(self.char_budget > 0, "context.char_budget must be positive")


@dataclass
class IndexingSettings:
    """Tunables for the background embedding pipeline. Delays are in seconds."""

    enabled: bool = True
    batch_size: int = 100
    max_batches_per_run: int = 500
    delay_between_batches: float = 2.0
    idle_interval: float = 120.0
    active_interval: float = 5.0
    startup_delay: float = 10.0
    error_retry_delay: float = 60.0
    rate_limit_retry_delay: float = 60.0
    rate_limit_max_delay: float = 600.0
    max_rate_limit_retries: int = 5

    # Context (sliding-window) embeddings
    context_enabled: bool = True
    context_min_window: int = 5
    context_max_window: int = 15
    context_window_step: int = 3
    dialog_gap_minutes: float = 30.0

    @classmethod
    def from_dict(cls, section: Optional[Dict[str, Any]]) -> "IndexingSettings":
        return _from_section(cls, section)

    def validate(self):
        _require(self.batch_size > 0, "indexing.batch_size must be positive")
        _require(self.max_batches_per_run > 0, "indexing.max_batches_per_run must be positive")
        for name in (
            'delay_between_batches', 'idle_interval', 'active_interval', 'startup_delay',
            'error_retry_delay', 'rate_limit_retry_delay', 'rate_limit_max_delay',
        ):
            _require(getattr(self, name) >= 0, f"indexing.{name} must be >= 0")
        _require(
            self.rate_limit_max_delay >= self.rate_limit_retry_delay,
            "indexing.rate_limit_max_delay must be >= rate_limit_retry_delay",
        )
        _require(self.max_rate_limit_retries >= 0, "indexing.max_rate_limit_retries must be >= 0")
        _require(
            1 <= self.context_min_window <= self.context_max_window,
            "indexing.context_min_window must be between 1 and context_max_window",
        )
        _require(self.context_window_step > 0, "indexing.context_window_step must be positive")
        _require(self.dialog_gap_minutes > 0, "indexing.dialog_gap_minutes must be positive")
