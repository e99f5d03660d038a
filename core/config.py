"""Configuration loading."""

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib

import tomli_w

from core.utils import deep_merge

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".llmcoder.toml"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "keymaps": {
        "trigger": "c-n",
        "accept": "tab",
    },
    "ghost_text": {
        "hl_group": "comment",
        "enabled": True,
    },
    "server": {
        "cmd": "~/.local/share/llmcoder/launch.sh",
        "filetypes": ["text", "markdown", "lua", "python", "javascript", "typescript"],
    },
    "auto_trigger": {
        "enabled": False,
        "delay_ms": 500,
    },
    "logging": {
        "level": "INFO",
        "file": "~/.llmcoder/llmcoder.log",
    },
}


def _normalize_cmd(value: Any) -> List[str]:
    """Accept the launch command as a string or a list of arguments."""
    if isinstance(value, str):
        parts = shlex.split(value)
    else:
        parts = [str(part) for part in value or []]
    if parts:
        parts[0] = os.path.expanduser(parts[0])
    return parts


@dataclass(frozen=True)
class Config:
    """Application configuration."""
    # Keymaps
    trigger_key: str
    accept_key: str
    # Ghost text overlay
    ghost_text_hl_group: str
    ghost_text_enabled: bool
    # Backend server
    server_cmd: List[str]
    server_filetypes: List[str]
    # Auto trigger
    auto_trigger_enabled: bool
    auto_trigger_delay_ms: int
    # Logging
    log_level: str = "INFO"
    log_file: str = field(default="~/.llmcoder/llmcoder.log")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Config":
        """Build a config from a nested settings mapping merged over the defaults."""
        merged = deep_merge(DEFAULT_SETTINGS, data)
        return cls(
            trigger_key=merged["keymaps"]["trigger"],
            accept_key=merged["keymaps"]["accept"],
            ghost_text_hl_group=merged["ghost_text"]["hl_group"],
            ghost_text_enabled=bool(merged["ghost_text"]["enabled"]),
            server_cmd=_normalize_cmd(merged["server"]["cmd"]),
            server_filetypes=list(merged["server"]["filetypes"]),
            auto_trigger_enabled=bool(merged["auto_trigger"]["enabled"]),
            auto_trigger_delay_ms=int(merged["auto_trigger"]["delay_ms"]),
            log_level=str(merged["logging"]["level"]).upper(),
            log_file=os.path.expanduser(merged["logging"]["file"]),
        )

    def to_mapping(self) -> Dict[str, Any]:
        """Convert back to the nested layout used by the config file."""
        return {
            "keymaps": {
                "trigger": self.trigger_key,
                "accept": self.accept_key,
            },
            "ghost_text": {
                "hl_group": self.ghost_text_hl_group,
                "enabled": self.ghost_text_enabled,
            },
            "server": {
                "cmd": list(self.server_cmd),
                "filetypes": list(self.server_filetypes),
            },
            "auto_trigger": {
                "enabled": self.auto_trigger_enabled,
                "delay_ms": self.auto_trigger_delay_ms,
            },
            "logging": {
                "level": self.log_level,
                "file": self.log_file,
            },
        }


DEFAULT_CONFIG = Config.from_mapping({})


def load_settings(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Read the raw settings table from the config file.

    Returns an empty dict when the file is missing or cannot be parsed.
    """
    path = config_path or CONFIG_PATH
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}


def get_config(overrides: Optional[Mapping[str, Any]] = None, config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from ~/.llmcoder.toml if present, else use defaults.

    Caller-supplied ``overrides`` deep-merge over the file values, which
    deep-merge over the defaults.

    Args:
        overrides: Nested settings supplied by the caller.
        config_path: Alternative config file location.

    Returns:
        The loaded configuration.
    """
    settings = deep_merge(load_settings(config_path), overrides)
    try:
        return Config.from_mapping(settings)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Invalid configuration, using defaults: {e}")
        return Config.from_mapping(overrides or {})


def save_config(config: Config, config_path: Optional[Path] = None) -> Path:
    """
    Save configuration to ~/.llmcoder.toml.

    Args:
        config: The configuration to save.
        config_path: Alternative config file location.

    Returns:
        The path written.
    """
    path = config_path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "wb") as f:
        tomli_w.dump(config.to_mapping(), f)
    return path
