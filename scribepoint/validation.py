"""
scribepoint.validation - Dependency checks and validation utilities.

Validates the recorder, engine, models and vocabulary file before a
dictation session is started.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any

from scribepoint.exceptions import DependencyError, ValidationError

RECORDER_HINTS = {
    "sox": "Install with: apt install sox libsox-fmt-pulse (Linux) or brew install sox (macOS)",
    "ffmpeg": "Install with: apt install ffmpeg (Linux) or brew install ffmpeg (macOS)",
}


def check_recorder(recorder: str) -> str:
    """Check that the recorder binary is on PATH.

    Returns:
        Resolved path of the recorder

    Raises:
        DependencyError: If the recorder is not installed
    """
    path = shutil.which(recorder)
    if not path:
        raise DependencyError(
            recorder,
            f"{recorder} not found in PATH",
            RECORDER_HINTS.get(recorder),
        )
    return path


def check_engine(engine_path: Path) -> str:
    """Check that the whisper.cpp executable exists and is runnable.

    Args:
        engine_path: Absolute path, relative path, or bare command name

    Returns:
        Resolved path of the engine

    Raises:
        DependencyError: If the engine cannot be found or executed
    """
    if engine_path.parent == Path("."):
        resolved = shutil.which(str(engine_path))
        if not resolved:
            raise DependencyError(
                "whisper.cpp",
                f"{engine_path} not found in PATH",
                "Build whisper.cpp and set engine_path to build/bin/whisper-cli",
            )
        return resolved

    if not engine_path.is_file():
        raise DependencyError("whisper.cpp", f"Engine not found: {engine_path}")
    if not os.access(engine_path, os.X_OK):
        raise DependencyError("whisper.cpp", f"Engine is not executable: {engine_path}")
    return str(engine_path)


def check_model(model_path: Path) -> dict[str, Any]:
    """Check that a ggml model file exists and is non-empty.

    Returns:
        Dict with 'path' and 'size_mb'

    Raises:
        ValidationError: If the model is missing or empty
    """
    if not model_path.exists():
        raise ValidationError(f"Model not found: {model_path}")
    if not model_path.is_file():
        raise ValidationError(f"Not a file: {model_path}")

    size = model_path.stat().st_size
    if size == 0:
        raise ValidationError(f"Model file is empty: {model_path}")

    return {"path": str(model_path), "size_mb": size // (1024 * 1024)}


def check_vocabulary(path: Path | None) -> dict[str, Any]:
    """Check the optional vocabulary file.

    Returns:
        Dict with 'configured' and, when configured, 'path'

    Raises:
        ValidationError: If a configured file is missing or unreadable
    """
    if path is None:
        return {"configured": False}
    if not path.is_file():
        raise ValidationError(f"Vocabulary file not found: {path}")
    if not os.access(path, os.R_OK):
        raise ValidationError(f"Vocabulary file not readable: {path}")
    return {"configured": True, "path": str(path)}


def validate_config(config: Any) -> list[tuple[str, bool, str]]:
    """Run every check against a ScribeConfig.

    Returns:
        Rows of (check name, passed, detail)
    """
    rows: list[tuple[str, bool, str]] = []

    try:
        rows.append(("recorder", True, check_recorder(config.recorder)))
    except DependencyError as e:
        detail = f"{e.message}. {e.install_hint}" if e.install_hint else e.message
        rows.append(("recorder", False, detail))

    try:
        rows.append(("engine", True, check_engine(config.engine_path)))
    except DependencyError as e:
        detail = f"{e.message}. {e.install_hint}" if e.install_hint else e.message
        rows.append(("engine", False, detail))

    for variant in ("fast", "accurate"):
        try:
            model = check_model(config.model_for(variant))
            rows.append((f"{variant} model", True, f"{model['path']} ({model['size_mb']} MB)"))
        except ValidationError as e:
            rows.append((f"{variant} model", False, str(e)))

    try:
        vocab = check_vocabulary(config.vocabulary_file)
        rows.append(("vocabulary", True, vocab.get("path", "not configured")))
    except ValidationError as e:
        rows.append(("vocabulary", False, str(e)))

    return rows
