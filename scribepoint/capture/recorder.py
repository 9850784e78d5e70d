"""
scribepoint.capture.recorder - Recorder process control.

Starts sox/ffmpeg under the "record-audio" name, blocks in a cancellable
wait until the user stops recording, then interrupts the recorder so it
flushes and closes the WAV file.
"""

from __future__ import annotations

import subprocess
import threading
import time
from pathlib import Path
from typing import Callable

from scribepoint.config import ScribeConfig
from scribepoint.logging import logger
from scribepoint.process import ManagedProcess, ProcessSupervisor

RECORD_PROCESS = "record-audio"
SAMPLE_RATE = 16000
PRE_STEP_TIMEOUT = 2.0


def _sox_input(input_source: str) -> list[str]:
    if input_source:
        return ["-t", "pulseaudio", input_source]
    return ["-d"]


def build_record_command(recorder: str, output_path: Path, input_source: str = "") -> list[str]:
    """Build the recorder invocation: 16kHz, mono, 16-bit, no progress output.

    Args:
        recorder: "sox" or "ffmpeg"
        output_path: WAV file to write
        input_source: Named PulseAudio source; empty for the default device
    """
    if recorder == "sox":
        return [
            "sox",
            "-q",
            *_sox_input(input_source),
            "-r",
            str(SAMPLE_RATE),
            "-c",
            "1",
            "-b",
            "16",
            str(output_path),
        ]

    if recorder == "ffmpeg":
        return [
            "ffmpeg",
            "-nostdin",
            "-hide_banner",
            "-nostats",
            "-loglevel",
            "error",
            "-y",
            "-f",
            "pulse",
            "-i",
            input_source or "default",
            "-acodec",
            "pcm_s16le",
            "-ar",
            str(SAMPLE_RATE),
            "-ac",
            "1",
            str(output_path),
        ]

    raise ValueError(f"Unknown recorder: {recorder}")


def build_warmup_command(recorder: str, input_source: str = "", seconds: float = 0.3) -> list[str]:
    """Build a short capture that discards its audio."""
    if recorder == "sox":
        return ["sox", "-q", *_sox_input(input_source), "-n", "trim", "0", str(seconds)]
    return [
        "ffmpeg",
        "-nostdin",
        "-hide_banner",
        "-loglevel",
        "quiet",
        "-f",
        "pulse",
        "-i",
        input_source or "default",
        "-t",
        str(seconds),
        "-f",
        "null",
        "-",
    ]


def build_reset_source_command(input_source: str = "") -> list[str]:
    """Build a command that wakes a suspended input source."""
    return ["pactl", "suspend-source", input_source or "@DEFAULT_SOURCE@", "0"]


def run_best_effort(command: list[str], timeout: float = PRE_STEP_TIMEOUT) -> None:
    """Run `command` to completion; failures and timeouts are logged and ignored.

    A command still running after `timeout` seconds is killed.
    """
    try:
        subprocess.run(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            start_new_session=True,
        )
    except subprocess.TimeoutExpired:
        logger.debug(f"Pre-step {command[0]} timed out after {timeout}s")
    except (OSError, ValueError) as e:
        logger.debug(f"Ignoring failed pre-step {command[0]}: {e}")


class CaptureController:
    """Drives the record phase of a session."""

    def __init__(self, supervisor: ProcessSupervisor, config: ScribeConfig) -> None:
        self.supervisor = supervisor
        self.config = config

    def prepare(self) -> None:
        """Run the optional device pre-steps, finishing before recording starts."""
        if self.config.reset_input_source:
            run_best_effort(build_reset_source_command(self.config.input_source))
        if self.config.warmup:
            seconds = self.config.warmup_seconds
            run_best_effort(
                build_warmup_command(self.config.recorder, self.config.input_source, seconds),
                timeout=seconds + PRE_STEP_TIMEOUT,
            )

    def start(self, output_path: Path) -> ManagedProcess:
        """Start the recorder, replacing any recording in progress.

        Raises:
            ProcessStartError: If the recorder binary cannot be launched
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        command = build_record_command(
            self.config.recorder, output_path, self.config.input_source
        )
        return self.supervisor.start(RECORD_PROCESS, command, stale_files=(output_path,))

    def wait_for_cancel(self, cancel: threading.Event) -> None:
        """Block until `cancel` is set or the user presses Ctrl-C.

        Exit events of other processes are dispatched while waiting.
        """
        warned = False
        try:
            while not cancel.wait(self.config.poll_interval):
                self.supervisor.dispatch()
                if not warned and not self.supervisor.is_alive(RECORD_PROCESS):
                    logger.warning("Recorder is no longer running; waiting for stop")
                    warned = True
        except KeyboardInterrupt:
            logger.debug("Recording stopped by keyboard interrupt")
        cancel.set()

    def finish(self) -> None:
        """Interrupt the recorder and wait for it to close the file."""
        self.supervisor.interrupt(RECORD_PROCESS)
        if not self.supervisor.wait(RECORD_PROCESS, timeout=self.config.recorder_exit_timeout):
            logger.warning(
                f"Recorder did not exit within {self.config.recorder_exit_timeout}s; "
                "audio may be truncated"
            )
        time.sleep(self.config.grace_period)

    def record(
        self,
        output_path: Path,
        cancel: threading.Event,
        on_started: Callable[[], None] | None = None,
    ) -> None:
        """Record into `output_path` until cancelled."""
        self.prepare()
        self.start(output_path)
        if on_started is not None:
            on_started()
        self.wait_for_cancel(cancel)
        self.finish()
