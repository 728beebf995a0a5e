import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from rehoboam.loop.errors import ConfigError
from rehoboam.loop.host import DEFAULT_AGENT_COMMAND, HostKind
from rehoboam.loop.models import LoopRole
from rehoboam.loop.workspace import DEFAULT_DIR_NAME
from rehoboam.telemetry import ENDPOINT_ENV

CONFIG_ENV = "REHOBOAM_CONFIG"
PANE_ENV = "TMUX_PANE"


def default_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".config" / "rehoboam" / "config.yaml"


class Config:
    """
    YAML configuration for rehoboam.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path).expanduser() if config_path else default_config_path()
        self.config = self.load_config()

    def load_config(self) -> dict:
        """
        Loads the configuration from a YAML file.

        Returns:
            A dictionary containing the configuration; empty when the file
            does not exist.
        """
        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise ConfigError(f"Cannot read config {self.config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config {self.config_path} must be a mapping, got {type(data).__name__}")
        return data

    def get(self, key: str, default=None):
        """
        Gets a configuration value.

        Args:
            key: Dotted key of the configuration value (e.g. "loop.max_iterations").
            default: The default value to return if the key is not found.

        Returns:
            The configuration value.
        """
        value = self.config
        for k in key.split("."):
            if not isinstance(value, dict) or k not in value:
                return default
            value = value[k]
        return default if value is None else value


@dataclass
class Settings:
    """Resolved settings: YAML values over built-in defaults, environment on top."""
    max_iterations: int = 50
    stop_word: str = "DONE"
    role: LoopRole = LoopRole.AUTO
    dir_name: str = DEFAULT_DIR_NAME
    archive_on_complete: bool = True
    git_checkpoint: bool = False
    task_queue: bool = False
    judge: bool = False
    agent_host: HostKind = HostKind.SUBPROCESS
    agent_command: list[str] = field(default_factory=lambda: list(DEFAULT_AGENT_COMMAND))
    poll_interval: float = 2.0
    agent_timeout: Optional[float] = None
    pane_id: str = ""
    telemetry_endpoint: Optional[str] = None
    service_name: str = "rehoboam"
    discovery_home: Optional[Path] = None


def _as_bool(key: str, value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "on", "1", "false", "no", "off", "0"):
        return value.strip().lower() in ("true", "yes", "on", "1")
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


def _as_number(key: str, value, kind=float):
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be a number, got {value!r}") from e


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Read the YAML config and the environment into Settings.

    Raises:
        ConfigError: If the file is not a mapping or a value has the wrong type.
    """
    config = Config(config_path)
    defaults = Settings()

    command = config.get("agent.command", defaults.agent_command)
    if isinstance(command, str):
        command = shlex.split(command)
    if not isinstance(command, list) or not command or not all(isinstance(c, str) for c in command):
        raise ConfigError(f"agent.command must be a non-empty list of strings, got {command!r}")

    try:
        role = LoopRole.parse(str(config.get("loop.role", defaults.role.value)))
        host = HostKind(str(config.get("agent.host", defaults.agent_host.value)).lower())
    except ValueError as e:
        raise ConfigError(str(e)) from e

    timeout = config.get("agent.timeout")
    home = config.get("discovery.home")

    return Settings(
        max_iterations=_as_number("loop.max_iterations", config.get("loop.max_iterations", defaults.max_iterations), int),
        stop_word=str(config.get("loop.stop_word", defaults.stop_word)),
        role=role,
        dir_name=str(config.get("loop.dir_name", defaults.dir_name)),
        archive_on_complete=_as_bool("loop.archive_on_complete", config.get("loop.archive_on_complete", True)),
        git_checkpoint=_as_bool("loop.git_checkpoint", config.get("loop.git_checkpoint", False)),
        task_queue=_as_bool("loop.task_queue", config.get("loop.task_queue", False)),
        judge=_as_bool("loop.judge", config.get("loop.judge", False)),
        agent_host=host,
        agent_command=command,
        poll_interval=_as_number("agent.poll_interval", config.get("agent.poll_interval", defaults.poll_interval)),
        agent_timeout=_as_number("agent.timeout", timeout) if timeout is not None else None,
        pane_id=os.environ.get(PANE_ENV, ""),
        telemetry_endpoint=os.environ.get(ENDPOINT_ENV) or config.get("telemetry.endpoint"),
        service_name=str(config.get("telemetry.service_name", defaults.service_name)),
        discovery_home=Path(home).expanduser() if home else None,
    )
