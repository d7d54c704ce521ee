"""Fetcher configuration from config.yaml and environment variables."""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from core.errors import ConfigurationError
from kline_fetcher.batch import DEFAULT_MAX_CONCURRENCY
from kline_fetcher.fetch import DEFAULT_CHUNK_SIZE

DEFAULT_ARCHIVE_ROOT = "https://data.binance.vision/data/spot"

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off", "")


def _parse_bool(name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: Any) -> int:
    if isinstance(raw, bool):
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", cause=e)


def _parse_timeout(name: str, raw: Any) -> Optional[float]:
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}", cause=e)


@dataclass
class FetcherConfig:
    """Archive download configuration.

    Load with FetcherConfig.load_config(), which layers environment variables
    over config.yaml over the dataclass defaults.
    """

    archive_root: str = DEFAULT_ARCHIVE_ROOT
    output_dir: Path = field(default_factory=Path.cwd)
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    chunk_size: int = DEFAULT_CHUNK_SIZE
    request_timeout_seconds: Optional[float] = None  # None = client default
    overwrite: bool = False

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
        self.validate()

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If any value is out of range
        """
        if not self.archive_root or not self.archive_root.startswith("https://"):
            raise ConfigurationError(
                f"archive_root must be an https URL, got {self.archive_root!r}"
            )
        if self.max_concurrency < 1:
            raise ConfigurationError(
                f"max_concurrency must be >= 1, got {self.max_concurrency}"
            )
        if self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.request_timeout_seconds is not None and self.request_timeout_seconds <= 0:
            raise ConfigurationError(
                f"request_timeout_seconds must be > 0, got {self.request_timeout_seconds}"
            )

    @classmethod
    def from_env(cls, base: Optional["FetcherConfig"] = None) -> "FetcherConfig":
        """Load configuration from environment variables.

        Optional environment variables (unset ones keep the base value):
            KLINE_ARCHIVE_ROOT: https://data.binance.vision/data/spot (default)
            KLINE_OUTPUT_DIR: current working directory (default)
            KLINE_MAX_CONCURRENCY: 8 (default)
            KLINE_CHUNK_SIZE: 65536 (default, bytes)
            KLINE_REQUEST_TIMEOUT: unset (default, seconds)
            KLINE_OVERWRITE: false (default)

        Raises:
            ConfigurationError: If a variable cannot be parsed
        """
        base = base or cls()
        overrides: Dict[str, Any] = {}

        archive_root = os.getenv("KLINE_ARCHIVE_ROOT")
        if archive_root:
            overrides["archive_root"] = archive_root
        output_dir = os.getenv("KLINE_OUTPUT_DIR")
        if output_dir:
            overrides["output_dir"] = Path(output_dir)
        if os.getenv("KLINE_MAX_CONCURRENCY") is not None:
            overrides["max_concurrency"] = _parse_int(
                "KLINE_MAX_CONCURRENCY", os.getenv("KLINE_MAX_CONCURRENCY")
            )
        if os.getenv("KLINE_CHUNK_SIZE") is not None:
            overrides["chunk_size"] = _parse_int(
                "KLINE_CHUNK_SIZE", os.getenv("KLINE_CHUNK_SIZE")
            )
        if os.getenv("KLINE_REQUEST_TIMEOUT") is not None:
            overrides["request_timeout_seconds"] = _parse_timeout(
                "KLINE_REQUEST_TIMEOUT", os.getenv("KLINE_REQUEST_TIMEOUT")
            )
        if os.getenv("KLINE_OVERWRITE") is not None:
            overrides["overwrite"] = _parse_bool(
                "KLINE_OVERWRITE", os.getenv("KLINE_OVERWRITE")
            )

        return replace(base, **overrides)

    @classmethod
    def from_yaml(cls, config_path: Path) -> "FetcherConfig":
        """Load configuration from the 'fetcher:' section of a YAML file.

        Raises:
            ConfigurationError: If the file is missing, malformed or has
                unknown keys
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}", cause=e)

        if not isinstance(yaml_data, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping")
        fetcher_data = yaml_data.get("fetcher") or {}
        if not isinstance(fetcher_data, dict):
            raise ConfigurationError(f"'fetcher' section of {config_path} must be a mapping")

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(fetcher_data) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in 'fetcher' section of {config_path}: {', '.join(unknown)}"
            )

        values: Dict[str, Any] = {}
        if "archive_root" in fetcher_data:
            values["archive_root"] = str(fetcher_data["archive_root"])
        if "output_dir" in fetcher_data:
            values["output_dir"] = Path(str(fetcher_data["output_dir"]))
        if "max_concurrency" in fetcher_data:
            values["max_concurrency"] = _parse_int(
                "max_concurrency", fetcher_data["max_concurrency"]
            )
        if "chunk_size" in fetcher_data:
            values["chunk_size"] = _parse_int("chunk_size", fetcher_data["chunk_size"])
        if "request_timeout_seconds" in fetcher_data:
            values["request_timeout_seconds"] = _parse_timeout(
                "request_timeout_seconds", fetcher_data["request_timeout_seconds"]
            )
        if "overwrite" in fetcher_data:
            values["overwrite"] = _parse_bool("overwrite", fetcher_data["overwrite"])

        return cls(**values)

    @classmethod
    def load_config(
        cls,
        config_path: Optional[Path] = None,
        load_env_file: bool = True,
    ) -> "FetcherConfig":
        """Load configuration from config.yaml and environment variables.

        Configuration priority (highest to lowest):
        1. Environment variables (after .env is loaded)
        2. config.yaml file (under 'fetcher:' key), when config_path is given
        3. Dataclass defaults
        """
        if load_env_file:
            load_dotenv()
        base = cls.from_yaml(config_path) if config_path else cls()
        return cls.from_env(base)
