from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import json
import os

from .errors import ConfigurationError

CONFIG_FILE_NAME = "config.json"
DEFAULT_BIND_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_OUTPUT_DIR = "output"


@dataclass(frozen=True)
class UploadConfig:
    destination: str

    @classmethod
    def from_dict(cls, data: object) -> "UploadConfig":
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{CONFIG_FILE_NAME} must contain a JSON object"
            )
        destination = data.get("destination")
        if not isinstance(destination, str) or not destination.strip():
            raise ConfigurationError(
                f'{CONFIG_FILE_NAME} must contain a non-empty string key "destination"'
            )
        return cls(destination=destination.strip())

    @classmethod
    def load(cls, directory: str | os.PathLike | None = None) -> "UploadConfig":
        path = Path(directory or os.getcwd()) / CONFIG_FILE_NAME
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigurationError(f"{path} not found") from exc
        except OSError as exc:
            raise ConfigurationError(f"cannot read {path}: {exc}") from exc
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ConfigurationError(f"{path} is not valid JSON: {exc}") from exc
        return cls.from_dict(data)


def _env_port(environ: dict[str, str] | None = None) -> int:
    env = os.environ if environ is None else environ
    value = (env.get("PORT") or "").strip()
    if not value:
        return DEFAULT_PORT
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid PORT environment value '{value}'") from exc


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_BIND_HOST
    port: int = DEFAULT_PORT
    output_dir: str = DEFAULT_OUTPUT_DIR

    def __post_init__(self) -> None:
        if not (1 <= int(self.port) <= 65535):
            raise ValueError(f"--port must be in range 1-65535, got {self.port}")

    @classmethod
    def from_env(
        cls,
        *,
        host: str | None = None,
        port: int | None = None,
        output_dir: str | None = None,
        environ: dict[str, str] | None = None,
    ) -> "ServerConfig":
        return cls(
            host=(host or "").strip() or DEFAULT_BIND_HOST,
            port=_env_port(environ) if port is None else port,
            output_dir=output_dir or DEFAULT_OUTPUT_DIR,
        )
