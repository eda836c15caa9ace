"""
Configuration file parsing and management.

Supports YAML configuration files (JSON by .json extension).
Merges configurations from multiple sources (custom → project → user → system → defaults).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from typing import Any

import yaml

from .common import vlog


# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    ".go-latest.yml",                                     # Project (highest priority)
    ".go-latest.yaml",
    os.path.expanduser("~/.config/go-latest/config.yml"),  # User global
    os.path.expanduser("~/.config/go-latest/config.yaml"),
    "/etc/go-latest/config.yml",                          # System global
    "/etc/go-latest/config.yaml",
]

DEFAULT_MAX_WORKERS = 0  # 0 = one worker per CPU
DEFAULT_RESOLVE_TIMEOUT = 120
DEFAULT_INSTALL_TIMEOUT = 1800

PREFERENCE_KEYS = (
    "max_workers",
    "toolchain_upgrades",
    "resolve_timeout_seconds",
    "install_timeout_seconds",
)


def _prefer(high: Any, low: Any, name: str) -> Any:
    """Value of name from high, unless high left it at its default without setting it."""
    value = getattr(high, name)
    default = next(f.default for f in fields(high) if f.name == name)
    if name in high.explicit or value != default:
        return value
    return getattr(low, name)


@dataclass(frozen=True)
class Preferences:
    """
    Run preferences.

    Attributes:
        max_workers: Maximum parallel workers (0 = number of CPUs)
        toolchain_upgrades: Re-install programs built with another Go toolchain
        resolve_timeout_seconds: Timeout for one latest-version query
        install_timeout_seconds: Timeout for one go install
    """
    max_workers: int = DEFAULT_MAX_WORKERS
    toolchain_upgrades: bool = False
    resolve_timeout_seconds: int = DEFAULT_RESOLVE_TIMEOUT
    install_timeout_seconds: int = DEFAULT_INSTALL_TIMEOUT
    # Keys a config file set, so an explicit default still wins a merge
    explicit: frozenset[str] = field(default=frozenset(), compare=False, repr=False)

    def __post_init__(self):
        """Validate preferences after initialization."""
        if self.max_workers < 0 or self.max_workers > 256:
            raise ValueError(
                f"Invalid max_workers: {self.max_workers}. "
                "Must be between 0 and 256 (0 = number of CPUs)"
            )

        if self.resolve_timeout_seconds < 1 or self.resolve_timeout_seconds > 600:
            raise ValueError(
                f"Invalid resolve_timeout_seconds: {self.resolve_timeout_seconds}. "
                "Must be between 1 and 600"
            )

        if self.install_timeout_seconds < 1 or self.install_timeout_seconds > 7200:
            raise ValueError(
                f"Invalid install_timeout_seconds: {self.install_timeout_seconds}. "
                "Must be between 1 and 7200"
            )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Preferences:
        """Create Preferences from dictionary."""
        if not isinstance(data, dict):
            raise ValueError(f"Invalid preferences: expected a mapping, got {type(data).__name__}")
        return Preferences(
            max_workers=data.get("max_workers", DEFAULT_MAX_WORKERS),
            toolchain_upgrades=bool(data.get("toolchain_upgrades", False)),
            resolve_timeout_seconds=data.get("resolve_timeout_seconds", DEFAULT_RESOLVE_TIMEOUT),
            install_timeout_seconds=data.get("install_timeout_seconds", DEFAULT_INSTALL_TIMEOUT),
            explicit=frozenset(key for key in PREFERENCE_KEYS if key in data),
        )


@dataclass(frozen=True)
class Config:
    """
    Complete configuration for go-latest.

    Attributes:
        version: Config schema version
        gobin: Program directory override (empty = derive from environment)
        go_binary: Go command used for queries and installs
        exclude: Program names that are never upgraded
        preferences: Run preferences
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    gobin: str = ""
    go_binary: str = "go"
    exclude: tuple[str, ...] = ()
    preferences: Preferences = field(default_factory=Preferences)
    source: str = ""
    explicit: frozenset[str] = field(default=frozenset(), compare=False, repr=False)

    def __post_init__(self):
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")
        if not self.go_binary:
            raise ValueError("go_binary must not be empty")

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary."""
        exclude = data.get("exclude") or []
        if isinstance(exclude, str):
            exclude = [exclude]

        return Config(
            version=data.get("version", 1),
            gobin=os.path.expanduser(data.get("gobin") or ""),
            go_binary=data.get("go_binary") or "go",
            exclude=tuple(str(name) for name in exclude),
            preferences=Preferences.from_dict(data.get("preferences") or {}),
            source=source,
            explicit=frozenset(key for key in ("gobin", "go_binary") if data.get(key)),
        )

    def merge_with(self, other: Config) -> Config:
        """
        Merge this config with another, preferring values from this config.

        A value this config set explicitly wins even when it equals the
        default, so a project file can turn toolchain_upgrades off or
        max_workers back to 0 (auto).

        Args:
            other: Other config to merge (lower priority)

        Returns:
            New merged Config object
        """
        prefs = self.preferences
        other_prefs = other.preferences

        merged_preferences = Preferences(
            **{name: _prefer(prefs, other_prefs, name) for name in PREFERENCE_KEYS},
            explicit=prefs.explicit | other_prefs.explicit,
        )

        merged_exclude = tuple(dict.fromkeys(self.exclude + other.exclude))

        return Config(
            version=self.version,
            gobin=_prefer(self, other, "gobin"),
            go_binary=_prefer(self, other, "go_binary"),
            exclude=merged_exclude,
            preferences=merged_preferences,
            source=self.source or other.source,
            explicit=self.explicit | other.explicit,
        )


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Returns:
        Parsed configuration dictionary, or None if the file is invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return None


def _load_json(file_path: str) -> dict[str, Any] | None:
    """
    Load JSON configuration file.

    Returns:
        Parsed configuration dictionary, or None if the file is invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError):
        return None


def load_config_file(file_path: str, verbose: bool = False) -> Config | None:
    """
    Load configuration from a single file.

    Args:
        file_path: Path to configuration file (.json is read as JSON, anything else as YAML)
        verbose: Enable verbose logging

    Returns:
        Config object, or None if file cannot be loaded
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    if file_path.endswith(".json"):
        data = _load_json(file_path)
    else:
        data = _load_yaml(file_path)

    if data is None:
        vlog(f"Invalid config file: {file_path}", verbose)
        return None

    try:
        config = Config.from_dict(data, source=file_path)
        vlog(f"Loaded config successfully: {file_path}", verbose)
        return config
    except (ValueError, TypeError) as e:
        vlog(f"Config validation failed for {file_path}: {e}", verbose)
        return None


def load_config(
    custom_path: str | None = None,
    verbose: bool = False,
) -> Config:
    """
    Load and merge configuration from all sources.

    Configuration precedence (highest to lowest):
    1. Custom path (if provided)
    2. Project .go-latest.yml
    3. User ~/.config/go-latest/config.yml
    4. System /etc/go-latest/config.yml
    5. Default configuration

    Args:
        custom_path: Optional path to custom configuration file
        verbose: Enable verbose logging

    Returns:
        Merged Config object (never None, returns defaults if no config found)

    Raises:
        ValueError: If custom_path is provided but file cannot be loaded
    """
    configs: list[Config] = []

    if custom_path:
        config = load_config_file(custom_path, verbose)
        if config is None:
            raise ValueError(f"Could not load config from specified path: {custom_path}")
        configs.append(config)

    for location in CONFIG_LOCATIONS:
        config = load_config_file(location, verbose)
        if config is not None:
            configs.append(config)

    if not configs:
        vlog("No config files found, using defaults", verbose)
        return Config()

    merged = configs[0]
    for config in configs[1:]:
        merged = merged.merge_with(config)

    vlog(f"Merged {len(configs)} config files", verbose)
    return merged
