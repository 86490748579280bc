import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    COMMIT_MESSAGE,
    CONFIG_FILE,
    DEFAULT_INTERVAL,
    XML_CLIENT,
)

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '15s', '2m') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)?s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "s"
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


@dataclass
class SyncConfig:
    """Synchronization loop settings.

    Attributes:
        interval (int): Seconds to sleep between two cycles.
        commit_message (str): Log message used for every commit.
    """

    interval: int = DEFAULT_INTERVAL
    commit_message: str = COMMIT_MESSAGE


@dataclass
class SvnConfig:
    """Subversion client settings.

    Attributes:
        binary (str): Name or path of the `svn` executable.
        trust_server_cert (bool): Whether to accept unknown server certificates.
        default_client (str): Client kind used when none is given on the command line.
    """

    binary: str = "svn"
    trust_server_cert: bool = False
    default_client: str = XML_CLIENT


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
        log_backups (int): Number of rotated log files to keep.
    """

    max_log_size: int = 5 * 1024 * 1024
    log_backups: int = 5


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        sync (SyncConfig): Loop settings.
        svn (SvnConfig): Client settings.
        limits (LimitsConfig): Resource limits.
    """

    sync: SyncConfig = field(default_factory=SyncConfig)
    svn: SvnConfig = field(default_factory=SvnConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from defaults and the given (or global) TOML file.

        Args:
            path (Path | None): An explicit config file. Defaults to the global
                                config file when omitted.

        Returns:
            Config: The fully merged configuration object.
        """
        instance = cls()
        source = path if path is not None else CONFIG_FILE
        if source.exists():
            instance._merge_from_file(source)
        elif path is not None:
            logger.warning(f"Config file {path} not found. Using defaults.")
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if not data:
                return

            if "sync" in data:
                self.sync = self._update_dataclass("sync", self.sync, data["sync"])
            if "svn" in data:
                self.svn = self._update_dataclass("svn", self.svn, data["svn"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "interval":
                    filtered_updates[k] = parse_time(v)
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
