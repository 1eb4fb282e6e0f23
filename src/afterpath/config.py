"""Unified configuration loaded from .afterpath.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".afterpath.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "afterpath" / "config.toml"


class StorageConfig(BaseModel):
    """[storage] section."""

    directory: str = "./.afterpath-data"
    key_prefix: str = "after_"


class ImagesConfig(BaseModel):
    """[images] section."""

    target_width: int = 1200
    quality: int = 85
    background: str = "#FDFBF7"
    preview_width: int = 400

    @field_validator("target_width", "preview_width")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive pixel count")
        return value


class SubmissionsConfig(BaseModel):
    """[submissions] section."""

    submit_delay: float = 0.0


class AfterpathConfig(BaseModel):
    """Top-level configuration."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    submissions: SubmissionsConfig = Field(default_factory=SubmissionsConfig)

    @property
    def data_dir(self) -> Path:
        return Path(self.storage.directory).expanduser()


def load_config(path: str | Path | None = None) -> AfterpathConfig:
    """Load configuration from TOML + env vars.

    Search order:
    1. Explicit path (if provided)
    2. .afterpath.toml in CWD
    3. ~/.config/afterpath/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged AfterpathConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    try:
        config = AfterpathConfig.model_validate(data) if data else AfterpathConfig()
    except ValueError as exc:
        logger.warning("Invalid configuration, using defaults: %s", exc)
        config = AfterpathConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: AfterpathConfig, **cli_kwargs: object) -> AfterpathConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "data_dir": ("storage", "directory"),
        "image_width": ("images", "target_width"),
        "submit_delay": ("submissions", "submit_delay"),
    }

    for key, value in cli_kwargs.items():
        if value is None or key not in mapping:
            continue
        section, field = mapping[key]
        data[section][field] = str(value) if isinstance(value, Path) else value

    return AfterpathConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Read a TOML file, returning {} on parse errors."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: AfterpathConfig) -> AfterpathConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    data_dir = os.environ.get("AFTERPATH_DATA_DIR")
    if data_dir is not None:
        data["storage"]["directory"] = data_dir

    width_raw = os.environ.get("AFTERPATH_IMAGE_WIDTH")
    if width_raw is not None:
        try:
            data["images"]["target_width"] = int(width_raw)
        except ValueError:
            logger.warning("Ignoring non-integer AFTERPATH_IMAGE_WIDTH=%r", width_raw)

    delay_raw = os.environ.get("AFTERPATH_SUBMIT_DELAY")
    if delay_raw is not None:
        try:
            data["submissions"]["submit_delay"] = float(delay_raw)
        except ValueError:
            logger.warning("Ignoring non-numeric AFTERPATH_SUBMIT_DELAY=%r", delay_raw)

    try:
        return AfterpathConfig.model_validate(data)
    except ValueError as exc:
        logger.warning("Invalid environment overrides, ignoring them: %s", exc)
        return config
