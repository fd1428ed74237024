"""YAML configuration loader and validated ripper settings."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

# Bytes batched in memory before each write to a track file.
DEFAULT_WRITE_BUFFER_SIZE = 256 * 1024
MIN_WRITE_BUFFER_SIZE = 32 * 1024
MAX_WRITE_BUFFER_SIZE = 4 * 1024 * 1024

DEFAULT_USER_AGENT = "iTunes/12.9.2 (Macintosh; OS X 10.14.3) AppleWebKit/606.4.5"


def clamp_write_buffer_size(size: Optional[int]) -> int:
    """Clamp a configured write buffer size into the supported range.

    ``None`` and 0 mean "not configured" and yield the default.
    """
    if not size:
        return DEFAULT_WRITE_BUFFER_SIZE
    size = int(size)
    clamped = max(MIN_WRITE_BUFFER_SIZE, min(MAX_WRITE_BUFFER_SIZE, size))
    if clamped != size:
        logger.warning(f"write_buffer_size {size} out of range, using {clamped}")
    return clamped


class RipperSettings(BaseModel):
    """Settings consumed by the ripper service."""

    url: str
    dir: str = "."
    write_buffer_size: int = DEFAULT_WRITE_BUFFER_SIZE
    connect_timeout: float = 5.0
    header_timeout: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    metadata_topic: str = "stream_metadata"

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("stream url must not be empty")
        return value

    @field_validator("write_buffer_size", mode="before")
    @classmethod
    def _clamp_buffer(cls, value: Any) -> int:
        return clamp_write_buffer_size(value)


# Config keys holding filesystem paths, resolved against the config file's directory.
PATH_KEYS = ("ripper.dir", "logging.file_path")


class RipperConfig:
    """Icyripper YAML configuration with dot-notation access.

    The ``ripper`` section feeds RipperSettings; the ``logging`` section is
    read by the command line bootstrap.
    """

    def __init__(self, config_path: str):
        """Load the configuration.

        Args:
            config_path: YAML file to read
        """
        self.config_file = Path(config_path)

        if not self.config_file.is_file():
            raise FileNotFoundError(f"Config file not found: {self.config_file}")

        logger.info(f"Reading config from {self.config_file}")
        self.config = self._read()

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Config file {self.config_file} is not valid YAML: {e}")
        except OSError as e:
            raise ValueError(f"Cannot read config file {self.config_file}: {e}")

        if not data:
            raise ValueError(f"Config file {self.config_file} is empty")
        if not isinstance(data, dict):
            raise ValueError(f"Config file {self.config_file} must contain a mapping")

        self.config = data
        self._absolutize_paths()
        logger.info(f"Config sections: {', '.join(sorted(data))}")
        return data

    def _absolutize_paths(self) -> None:
        base = self.config_file.parent
        for key_path in PATH_KEYS:
            path = self.get(key_path)
            if path and not os.path.isabs(path):
                self.set(key_path, str(base / path))

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up a value by dotted path, e.g. ``config.get('ripper.url')``.

        Returns ``default`` when any segment is missing or is not a mapping.
        """
        node: Any = self.config
        for key in key_path.split('.'):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def set(self, key_path: str, value: Any) -> None:
        """Assign a value by dotted path, creating intermediate sections."""
        *parents, leaf = key_path.split('.')
        node = self.config
        for key in parents:
            if not isinstance(node.get(key), dict):
                node[key] = {}
            node = node[key]
        node[leaf] = value
        logger.debug(f"Config {key_path} = {value!r}")

    def get_settings(self, **overrides: Any) -> RipperSettings:
        """Build validated ripper settings, letting non-None overrides win."""
        values = dict(self.get('ripper', {}) or {})
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RipperSettings(**values)
