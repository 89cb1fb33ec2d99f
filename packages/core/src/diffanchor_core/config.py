import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "max_lines_per_chunk": 1000,
    "context": {
        "enabled": True,
        "strategies": ["metadata-based", "git-history"],
        "strategy_timeout_seconds": 5,
        "overall_timeout_seconds": None,  # None = no ceiling on the whole fan-out
        "rollout": {
            "percentage": 100,
            "skip_large_diffs": True,
            "max_diff_lines": 5000,
        },
        "history": {
            "lookback_days": 90,
            "max_results": 100,
            "high_threshold": 0.7,
            "medium_threshold": 0.4,
        },
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: str = ".diffanchor.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .diffanchor.yml in the current directory (nested sections merged key by key)
      3. CLI argument overrides
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path}: expected a mapping at the top level")
        _deep_merge(config, file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")

    return config


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


@dataclass(frozen=True)
class HistorySettings:
    lookback_days: int = 90
    max_results: int = 100
    high_threshold: float = 0.7
    medium_threshold: float = 0.4

    def __post_init__(self):
        _require(self.lookback_days > 0, f"history.lookback_days must be positive, got {self.lookback_days}")
        _require(self.max_results > 0, f"history.max_results must be positive, got {self.max_results}")
        _require(
            0.0 <= self.medium_threshold <= self.high_threshold <= 1.0,
            "history thresholds must satisfy 0 <= medium_threshold <= high_threshold <= 1, "
            f"got medium={self.medium_threshold} high={self.high_threshold}",
        )

    @classmethod
    def from_config(cls, section: Optional[dict]) -> "HistorySettings":
        section = section or {}
        return cls(
            lookback_days=int(section.get("lookback_days", cls.lookback_days)),
            max_results=int(section.get("max_results", cls.max_results)),
            high_threshold=float(section.get("high_threshold", cls.high_threshold)),
            medium_threshold=float(section.get("medium_threshold", cls.medium_threshold)),
        )


@dataclass(frozen=True)
class RolloutSettings:
    percentage: int = 100
    skip_large_diffs: bool = True
    max_diff_lines: int = 5000

    def __post_init__(self):
        _require(0 <= self.percentage <= 100, f"rollout.percentage must be within 0-100, got {self.percentage}")
        _require(self.max_diff_lines > 0, f"rollout.max_diff_lines must be positive, got {self.max_diff_lines}")

    @classmethod
    def from_config(cls, section: Optional[dict]) -> "RolloutSettings":
        section = section or {}
        return cls(
            percentage=int(section.get("percentage", cls.percentage)),
            skip_large_diffs=bool(section.get("skip_large_diffs", cls.skip_large_diffs)),
            max_diff_lines=int(section.get("max_diff_lines", cls.max_diff_lines)),
        )


@dataclass(frozen=True)
class ContextSettings:
    enabled: bool = True
    strategies: tuple = ("metadata-based", "git-history")
    strategy_timeout_seconds: float = 5.0
    overall_timeout_seconds: Optional[float] = None
    rollout: RolloutSettings = RolloutSettings()
    history: HistorySettings = HistorySettings()

    def __post_init__(self):
        _require(
            self.strategy_timeout_seconds > 0,
            f"context.strategy_timeout_seconds must be positive, got {self.strategy_timeout_seconds}",
        )
        _require(
            self.overall_timeout_seconds is None or self.overall_timeout_seconds > 0,
            f"context.overall_timeout_seconds must be positive, got {self.overall_timeout_seconds}",
        )
        _require(
            all(isinstance(name, str) for name in self.strategies),
            f"context.strategies must be a list of strategy names, got {list(self.strategies)!r}",
        )

    @classmethod
    def from_config(cls, config: dict) -> "ContextSettings":
        """Build validated settings from the ``context`` section of a loaded config."""
        section = config.get("context") or {}
        overall = section.get("overall_timeout_seconds")
        strategies = section.get("strategies", cls.strategies) or ()
        _require(
            isinstance(strategies, (list, tuple)),
            f"context.strategies must be a list of strategy names, got {strategies!r}",
        )
        return cls(
            enabled=bool(section.get("enabled", cls.enabled)),
            strategies=tuple(strategies),
            strategy_timeout_seconds=float(section.get("strategy_timeout_seconds", cls.strategy_timeout_seconds)),
            overall_timeout_seconds=float(overall) if overall is not None else None,
            rollout=RolloutSettings.from_config(section.get("rollout")),
            history=HistorySettings.from_config(section.get("history")),
        )
