"""
Test configuration and shared fixtures.

External tools are replaced by small Python scripts so the real supervisor,
capture and completion paths run:
- the fake engine reads its behaviour from the "model" file it is given
- the fake recorder writes a WAV stub and exits cleanly on SIGINT
"""

from __future__ import annotations

import io
import json
import sys
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
from rich.console import Console

from scribepoint.config import ScribeConfig
from scribepoint.process import ProcessSupervisor
from scribepoint.status import StatusReporter

FAKE_ENGINE = """\
import json
import sys
import time

args = sys.argv[1:]
with open(args[args.index("-m") + 1]) as f:
    behaviour = json.load(f)
time.sleep(behaviour.get("sleep", 0))
out = behaviour.get("stdout", "")
if behaviour.get("echo_prompt") and "--prompt" in args:
    out = args[args.index("--prompt") + 1]
if "stdout_hex" in behaviour:
    sys.stdout.buffer.write(bytes.fromhex(behaviour["stdout_hex"]))
else:
    sys.stdout.write(out)
sys.stdout.flush()
time.sleep(behaviour.get("linger", 0))
sys.exit(behaviour.get("exit", 0))
"""

FAKE_RECORDER = """\
import signal
import sys
import time

signal.signal(signal.SIGINT, lambda *args: sys.exit(0))
with open(sys.argv[1], "wb") as f:
    f.write(b"RIFF\\x00\\x00\\x00\\x00WAVE")
while True:
    time.sleep(0.05)
"""


@pytest.fixture
def fake_engine(tmp_path: Path) -> Path:
    """Executable stand-in for whisper-cli."""
    script = tmp_path / "bin" / "fake-whisper"
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text(f"#!{sys.executable}\n{FAKE_ENGINE}")
    script.chmod(0o755)
    return script


@pytest.fixture
def model_file(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a fake model file that scripts the engine's behaviour."""

    def make(name: str = "fast", **behaviour: Any) -> Path:
        path = tmp_path / "models" / f"ggml-{name}.bin"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(behaviour))
        return path

    return make


@pytest.fixture
def fake_recorder(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Route recorder commands to a script that behaves like sox."""
    script = tmp_path / "bin" / "fake-recorder.py"
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text(FAKE_RECORDER)

    def build(recorder: str, output_path: Path, input_source: str = "") -> list[str]:
        return [sys.executable, str(script), str(output_path)]

    monkeypatch.setattr("scribepoint.capture.recorder.build_record_command", build)
    return script


@pytest.fixture
def make_config(tmp_path: Path, fake_engine: Path, model_file) -> Callable[..., ScribeConfig]:
    """Factory for configs wired to the fake engine with fast timings."""

    def make(
        fast: dict[str, Any] | None = None,
        accurate: dict[str, Any] | None = None,
        **overrides: Any,
    ) -> ScribeConfig:
        values: dict[str, Any] = {
            "engine_path": fake_engine,
            "fast_model": model_file("fast", **(fast or {"stdout": "hello world"})),
            "accurate_model": model_file("accurate", **(accurate or {"stdout": "hello world"})),
            "temp_dir": tmp_path / "tmp",
            "poll_interval": 0.02,
            "grace_period": 0.0,
            "recorder_exit_timeout": 2.0,
        }
        values.update(overrides)
        return ScribeConfig(**values)

    return make


@pytest.fixture
def status() -> StatusReporter:
    """Status reporter printing into a buffer instead of the terminal."""
    return StatusReporter(Console(file=io.StringIO(), width=200))


@pytest.fixture
def supervisor() -> Iterator[ProcessSupervisor]:
    sup = ProcessSupervisor()
    yield sup
    sup.shutdown()
    sup.drain(timeout=5)
