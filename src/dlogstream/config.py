"""Global configuration — XDG paths, YAML file, env vars, defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from dlogstream.command import DEFAULT_TEMPLATES
from dlogstream.transport.base import TransportKind

CONFIG_FILENAME = "config.yaml"


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "dlogstream"
    return Path.home() / ".local" / "share" / "dlogstream"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "dlogstream"
    return Path.home() / ".config" / "dlogstream"


@dataclass
class DlogStreamConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    sdb_path: str = "sdb"
    default_commands: dict[TransportKind, str] = field(
        default_factory=lambda: dict(DEFAULT_TEMPLATES)
    )
    settle_delay: float = 1.0
    ssh_connect_timeout: float = 20.0
    ssh_keepalive_interval: float = 10.0
    device_connect_timeout: float = 10.0
    web_host: str = "127.0.0.1"  # Loopback only
    web_port: int = 3001

    @property
    def capture_dir(self) -> Path:
        """Where save-to-file captures are written."""
        return self.data_dir / "captures"

    @classmethod
    def load(cls, path: str | Path | None = None) -> DlogStreamConfig:
        """Load config from a YAML file, then environment variables."""
        config = cls()

        config_path = Path(path) if path else config.config_dir / CONFIG_FILENAME
        if config_path.is_file():
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
            if not isinstance(data, dict):
                raise ValueError("Config YAML must be a mapping")
            config.apply(data)

        env_sdb = os.environ.get("DLOGSTREAM_SDB_PATH")
        if env_sdb:
            config.sdb_path = env_sdb

        env_delay = os.environ.get("DLOGSTREAM_SETTLE_DELAY")
        if env_delay:
            config.settle_delay = float(env_delay)

        env_port = os.environ.get("DLOGSTREAM_WEB_PORT")
        if env_port:
            config.web_port = int(env_port)

        return config

    def apply(self, data: dict) -> None:
        """Overlay values from a parsed config mapping."""
        if "sdb_path" in data:
            self.sdb_path = str(data["sdb_path"])
        for key in (
            "settle_delay",
            "ssh_connect_timeout",
            "ssh_keepalive_interval",
            "device_connect_timeout",
        ):
            if key in data:
                setattr(self, key, float(data[key]))
        if "web_port" in data:
            self.web_port = int(data["web_port"])
        if "data_dir" in data:
            self.data_dir = Path(data["data_dir"]).expanduser()

        commands = data.get("default_commands") or {}
        if not isinstance(commands, dict):
            raise ValueError("default_commands must be a mapping")
        for name, template in commands.items():
            # Raises ValueError for anything but local/remote
            self.default_commands[TransportKind(name)] = str(template)
