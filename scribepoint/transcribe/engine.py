"""
scribepoint.transcribe.engine - whisper.cpp invocation.

Builds the engine command line for a pipeline variant and starts it as a
named asynchronous process. Timestamps and progress output are disabled so
stdout carries plain transcript text only.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from scribepoint.config import VARIANTS, ScribeConfig
from scribepoint.process import ExitCallback, ManagedProcess, ProcessSupervisor

TRANSCRIBE_PROCESSES = {variant: f"transcribe-{variant}" for variant in VARIANTS}


def process_name(variant: str) -> str:
    """Return the logical process name of a variant's engine."""
    try:
        return TRANSCRIBE_PROCESSES[variant]
    except KeyError:
        raise ValueError(f"Unknown variant: {variant} (expected one of {VARIANTS})") from None


def build_transcribe_command(
    engine_path: Path,
    model_path: Path,
    audio_path: Path,
    prompt: str | None = None,
    language: str | None = None,
    extra_args: str = "",
) -> list[str]:
    """Build the whisper.cpp command line.

    Args:
        engine_path: whisper-cli executable
        model_path: ggml model file
        audio_path: 16kHz mono WAV to transcribe
        prompt: Optional vocabulary hint, passed via --prompt
        language: Optional language code (-l)
        extra_args: Additional shell-style arguments

    Returns:
        Argument vector. The prompt is a single element, so quotes in it
        reach the engine unchanged.
    """
    cmd = [
        str(engine_path),
        "-m",
        str(model_path),
        "-f",
        str(audio_path),
        "--no-timestamps",
        "--no-prints",
    ]
    if language:
        cmd.extend(["-l", language])
    if extra_args:
        cmd.extend(shlex.split(extra_args))
    if prompt:
        cmd.extend(["--prompt", prompt])
    return cmd


def format_command(cmd: list[str]) -> str:
    """Render an argument vector as a copy-pasteable shell command."""
    return shlex.join(cmd)


class TranscriptionLauncher:
    """Starts the engine for a session without blocking."""

    def __init__(self, supervisor: ProcessSupervisor, config: ScribeConfig) -> None:
        self.supervisor = supervisor
        self.config = config

    def command_for(self, variant: str, audio_path: Path, prompt: str | None = None) -> list[str]:
        return build_transcribe_command(
            engine_path=self.config.engine_path,
            model_path=self.config.model_for(variant),
            audio_path=audio_path,
            prompt=prompt,
            language=self.config.language,
            extra_args=self.config.engine_extra_args,
        )

    def launch(
        self,
        variant: str,
        audio_path: Path,
        on_exit: ExitCallback,
        prompt: str | None = None,
    ) -> ManagedProcess:
        """Start transcription of `audio_path`; `on_exit` receives the result.

        Raises:
            ProcessStartError: If the engine cannot be launched
        """
        command = self.command_for(variant, audio_path, prompt)
        return self.supervisor.start(
            process_name(variant), command, on_exit=on_exit, capture_output=True
        )
