"""
scribepoint.config - YAML config loading and validation.

Handles locating and loading scribepoint.yaml, applying defaults, and
validating all parameters.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from scribepoint.exceptions import ConfigError

CONFIG_FILENAME = "scribepoint.yaml"
CONFIG_ENV_VAR = "SCRIBEPOINT_CONFIG"

VARIANTS = ("fast", "accurate")


class ScribeConfig(BaseModel):
    """Resolved configuration for dictation sessions."""

    engine_path: Path = Path("whisper-cli")
    fast_model: Path = Path("~/whisper.cpp/models/ggml-base.en.bin")
    accurate_model: Path = Path("~/whisper.cpp/models/ggml-medium.en.bin")
    language: str | None = None
    engine_extra_args: str = ""

    vocabulary_file: Path | None = None

    recorder: str = "sox"
    input_source: str = ""
    reset_input_source: bool = False
    warmup: bool = False
    warmup_seconds: float = Field(default=0.3, gt=0.0)

    temp_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    pid_dir: Path | None = None

    poll_interval: float = Field(default=1.0, gt=0.0)
    grace_period: float = Field(default=0.1, ge=0.0)
    recorder_exit_timeout: float = Field(default=2.0, ge=0.0)

    @field_validator(
        "engine_path",
        "fast_model",
        "accurate_model",
        "vocabulary_file",
        "temp_dir",
        "pid_dir",
    )
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        if v is None:
            return v
        return Path(v).expanduser()

    @field_validator("recorder")
    @classmethod
    def validate_recorder(cls, v: str) -> str:
        valid = {"sox", "ffmpeg"}
        if v not in valid:
            raise ValueError(f"recorder must be one of: {valid}")
        return v

    @field_validator("input_source", mode="before")
    @classmethod
    def strip_input_source(cls, v: str | None) -> str:
        return (v or "").strip()

    def model_for(self, variant: str) -> Path:
        """Return the model file used by a pipeline variant."""
        if variant == "fast":
            return self.fast_model
        if variant == "accurate":
            return self.accurate_model
        raise ValueError(f"Unknown variant: {variant} (expected one of {VARIANTS})")

    def audio_path_for(self, variant: str) -> Path:
        """Return the well-known transient audio file for a variant."""
        if variant not in VARIANTS:
            raise ValueError(f"Unknown variant: {variant} (expected one of {VARIANTS})")
        return self.temp_dir / f"scribepoint-{variant}.wav"


def default_config_path() -> Path:
    """Return the config path used when none is given explicitly."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "scribepoint" / CONFIG_FILENAME


def load_config(path: Path | None = None) -> ScribeConfig:
    """Load and validate configuration.

    An explicitly given file must exist; a missing default file yields the
    built-in defaults.

    Raises:
        ConfigError: If the file is missing, unparsable or invalid
    """
    explicit = path is not None
    config_file = path if explicit else default_config_path()

    if not config_file.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_file}")
        return ScribeConfig()

    try:
        with open(config_file, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"{config_file} must contain a mapping, got {type(raw_config).__name__}")

    try:
        return ScribeConfig(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}:\n{e}") from e


def create_default_config() -> dict[str, Any]:
    """Create a default config mapping for a new installation."""
    return {
        "engine_path": "~/whisper.cpp/build/bin/whisper-cli",
        "fast_model": "~/whisper.cpp/models/ggml-base.en.bin",
        "accurate_model": "~/whisper.cpp/models/ggml-medium.en.bin",
        "language": None,
        "vocabulary_file": None,
        "recorder": "sox",
        "input_source": "",
        "reset_input_source": False,
        "warmup": False,
    }


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
