"""Tests for scribepoint.pipeline module."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable

import pytest

from scribepoint.document import TextBuffer
from scribepoint.exceptions import ConfigError, ProcessStartError
from scribepoint.pipeline import Dictation, preview
from scribepoint.process import ProcessExit
from scribepoint.session import Session, SessionState
from scribepoint.status import StatusReporter


def dictate(
    dictation: Dictation,
    document,
    variant: str = "fast",
    position: int | None = None,
    delay: float = 0.2,
) -> Session:
    """Run a session whose recording is stopped after `delay` seconds."""
    cancel = threading.Event()
    threading.Timer(delay, cancel.set).start()
    return dictation.run(variant, document, position, cancel)


def output_of(status: StatusReporter) -> str:
    return status.console.file.getvalue()


@pytest.fixture
def make_dictation(
    make_config, fake_recorder: Path, status: StatusReporter
) -> Callable[..., Dictation]:
    created: list[Dictation] = []

    def make(**config_kwargs) -> Dictation:
        dictation = Dictation(make_config(**config_kwargs), status=status)
        created.append(dictation)
        return dictation

    yield make

    for dictation in created:
        dictation.supervisor.shutdown()
        dictation.wait(timeout=10)


class TestPreview:
    def test_short_text_unchanged(self) -> None:
        assert preview("hello world") == "hello world"

    def test_whitespace_collapsed(self) -> None:
        assert preview("hello\n  world") == "hello world"

    def test_long_text_truncated(self) -> None:
        result = preview("word " * 50, length=20)
        assert len(result) == 20
        assert result.endswith("...")


class TestSuccessfulSession:
    def test_transcript_inserted_at_marker(self, make_dictation, status) -> None:
        dictation = make_dictation(fast={"stdout": "  great work,\n"})
        buffer = TextBuffer("Dear team, thanks.")

        session = dictate(dictation, buffer, position=11)
        assert dictation.wait(timeout=10)

        assert buffer.text == "Dear team, great work, thanks."
        assert buffer.point == 11 + len("great work, ")
        assert session.state == SessionState.INSERTED
        assert session.transcript == "great work,"
        assert "Transcription complete" in output_of(status)

    def test_default_position_is_point(self, make_dictation) -> None:
        dictation = make_dictation()
        buffer = TextBuffer("abc")
        buffer.point = 1

        dictate(dictation, buffer)
        dictation.wait(timeout=10)

        assert buffer.text == "ahello world bc"

    def test_accurate_variant_uses_accurate_model(self, make_dictation) -> None:
        dictation = make_dictation(
            fast={"stdout": "from fast"}, accurate={"stdout": "from accurate"}
        )
        buffer = TextBuffer("")

        dictate(dictation, buffer, variant="accurate")
        dictation.wait(timeout=10)

        assert buffer.text == "from accurate "

    def test_status_sequence(self, make_dictation, status) -> None:
        dictation = make_dictation()
        dictate(dictation, TextBuffer(""))
        dictation.wait(timeout=10)

        out = output_of(status)
        assert out.index("Recording (fast)") < out.index("Processing with the fast model")
        assert out.index("Processing with the fast model") < out.index("Transcription complete")

    def test_cleanup_after_success(self, make_dictation) -> None:
        dictation = make_dictation()
        session = dictate(dictation, TextBuffer(""))
        assert session.audio_path.exists()

        dictation.wait(timeout=10)

        assert not session.audio_path.exists()
        assert session.sink.closed
        assert dictation.active_sessions() == []


class TestEmptyOutput:
    def test_whitespace_output_reports_no_output(self, make_dictation, status) -> None:
        dictation = make_dictation(fast={"stdout": "  \n\t \n"})
        buffer = TextBuffer("untouched")

        session = dictate(dictation, buffer, position=0)
        dictation.wait(timeout=10)

        assert buffer.text == "untouched"
        assert session.state == SessionState.EMPTY
        assert "No transcription output" in output_of(status)
        assert not session.audio_path.exists()
        assert session.sink.closed


class TestAbnormalExit:
    @pytest.mark.parametrize("variant", ["fast", "accurate"])
    def test_error_reported_for_both_variants(self, make_dictation, status, variant) -> None:
        dictation = make_dictation(
            fast={"stdout": "partial", "exit": 3}, accurate={"stdout": "partial", "exit": 3}
        )
        buffer = TextBuffer("untouched")

        session = dictate(dictation, buffer, variant=variant)
        dictation.wait(timeout=10)

        assert buffer.text == "untouched"
        assert session.state == SessionState.FAILED
        assert "Transcription error: exited abnormally with code 3" in output_of(status)
        assert not session.audio_path.exists()
        assert session.sink.closed

    def test_signal_termination_is_not_an_error(self, make_dictation, status) -> None:
        dictation = make_dictation(fast={"stdout": "", "sleep": 30})
        session = dictate(dictation, TextBuffer(""))

        dictation.supervisor.stop("transcribe-fast")
        dictation.wait(timeout=10)

        assert session.state == SessionState.EMPTY
        assert "Transcription error" not in output_of(status)


class TestDocumentChanges:
    def test_position_follows_edits_before_marker(self, make_dictation) -> None:
        dictation = make_dictation()
        buffer = TextBuffer("alpha beta")

        dictate(dictation, buffer, position=6)
        buffer.insert(0, "## ")
        buffer.delete(3, 5)
        dictation.wait(timeout=10)

        assert buffer.text == "## pha hello world beta"

    def test_edits_after_marker_do_not_move_it(self, make_dictation) -> None:
        dictation = make_dictation()
        buffer = TextBuffer("alpha beta")

        dictate(dictation, buffer, position=5)
        buffer.insert(10, " gamma")
        dictation.wait(timeout=10)

        assert buffer.text == "alphahello world  beta gamma"

    def test_closed_document_is_skipped_silently(self, make_dictation, status) -> None:
        dictation = make_dictation()
        buffer = TextBuffer("text")

        session = dictate(dictation, buffer)
        buffer.close()
        dictation.wait(timeout=10)

        assert session.state == SessionState.DISCARDED
        assert buffer.text == "text"
        assert "error" not in output_of(status).lower()
        assert not session.audio_path.exists()

    def test_insert_failure_reports_transcript(self, make_dictation, status) -> None:
        class ReadOnlyBuffer(TextBuffer):
            def insert_at(self, marker, text):
                raise PermissionError("read-only")

        dictation = make_dictation()
        session = dictate(dictation, ReadOnlyBuffer("text"))
        dictation.wait(timeout=10)

        out = output_of(status)
        assert "Could not insert transcript: read-only" in out
        assert "hello world" in out
        assert "Transcription complete" not in out
        assert session.state == SessionState.FAILED
        assert not session.audio_path.exists()


class TestVocabulary:
    def write_vocab(self, tmp_path: Path, words: int) -> Path:
        path = tmp_path / "vocab.txt"
        path.write_text(" ".join(f"term{i}" for i in range(words)))
        return path

    def test_no_warning_at_limit(self, make_dictation, status, tmp_path: Path) -> None:
        dictation = make_dictation(vocabulary_file=self.write_vocab(tmp_path, 150))
        dictate(dictation, TextBuffer(""))
        dictation.wait(timeout=10)
        assert "advisory limit" not in output_of(status)

    def test_warning_over_limit(self, make_dictation, status, tmp_path: Path) -> None:
        dictation = make_dictation(vocabulary_file=self.write_vocab(tmp_path, 151))
        dictate(dictation, TextBuffer(""))
        dictation.wait(timeout=10)

        out = output_of(status)
        assert "151 words" in out
        assert "advisory limit of 150" in out
        assert out.index("advisory limit") < out.index("Processing with")

    def test_prompt_with_quotes_reaches_engine(
        self, make_dictation, tmp_path: Path
    ) -> None:
        vocab = tmp_path / "vocab.txt"
        vocab.write_text('  Terms: "Kubernetes", O\'Reilly  \n')
        dictation = make_dictation(vocabulary_file=vocab, fast={"echo_prompt": True})
        buffer = TextBuffer("")

        dictate(dictation, buffer)
        dictation.wait(timeout=10)

        assert buffer.text == 'Terms: "Kubernetes", O\'Reilly '

    def test_unreadable_vocabulary_is_config_error(
        self, make_dictation, tmp_path: Path
    ) -> None:
        directory = tmp_path / "vocab-dir"
        directory.mkdir()
        dictation = make_dictation(vocabulary_file=directory)

        with pytest.raises(ConfigError):
            dictation.begin("fast", TextBuffer(""))


class TestRestart:
    def test_restart_leaves_one_session(self, make_dictation, status) -> None:
        dictation = make_dictation(fast={"stdout": "late", "sleep": 30})
        buffer = TextBuffer("")

        first = dictate(dictation, buffer)
        first_engine = dictation.supervisor.get("transcribe-fast")
        second = dictate(dictation, buffer)
        second_engine = dictation.supervisor.get("transcribe-fast")

        first_engine.popen.wait(timeout=5)
        for _ in range(50):
            if first.finished:
                break
            dictation.supervisor.dispatch(timeout=0.1)

        assert first.state == SessionState.EMPTY
        assert dictation.active_sessions("fast") == [second]
        assert second_engine is not first_engine
        assert second_engine.is_alive()
        assert not first_engine.is_alive()
        assert second.audio_path.exists()

        dictation.supervisor.shutdown()
        dictation.wait(timeout=10)
        assert not second.audio_path.exists()
        assert buffer.text == ""

    def test_variants_run_independently(self, make_dictation) -> None:
        dictation = make_dictation(
            fast={"stdout": "quick", "sleep": 2}, accurate={"stdout": "careful"}
        )
        buffer = TextBuffer("[] ()")

        dictate(dictation, buffer, variant="fast", position=1)
        dictate(dictation, buffer, variant="accurate", position=4)
        assert len(dictation.active_sessions()) == 2
        dictation.wait(timeout=10)

        assert buffer.text == "[quick ] (careful )"


class TestCompletionHandler:
    def test_handler_runs_once(self, make_dictation, status) -> None:
        dictation = make_dictation()
        buffer = TextBuffer("")
        session = dictate(dictation, buffer)
        dictation.wait(timeout=10)

        dictation.handle_exit(session, ProcessExit("transcribe-fast", 0, "again"))

        assert buffer.text == "hello world "
        assert output_of(status).count("Transcription complete") == 1

    def test_session_without_audio_leaves_successor_file(self, make_dictation) -> None:
        dictation = make_dictation()
        session = dictation.begin("fast", TextBuffer(""))
        session.audio_path.parent.mkdir(parents=True, exist_ok=True)
        session.audio_path.write_bytes(b"successor recording")

        dictation.handle_exit(session, ProcessExit("transcribe-fast", 0, ""))

        assert session.state == SessionState.EMPTY
        assert session.audio_path.read_bytes() == b"successor recording"

    def test_undecodable_output_is_inserted(self, make_dictation) -> None:
        dictation = make_dictation(fast={"stdout_hex": b"caf\xc3 ok".hex()})
        buffer = TextBuffer("")

        session = dictate(dictation, buffer)
        dictation.wait(timeout=10)

        assert session.state == SessionState.INSERTED
        assert buffer.text == "caf\ufffd ok "

    def test_log_lines_carry_session_id(self, make_dictation, caplog) -> None:
        caplog.set_level(logging.INFO, logger="scribepoint")
        dictation = make_dictation()

        session = dictate(dictation, TextBuffer(""))
        dictation.wait(timeout=10)

        messages = [r.getMessage() for r in caplog.records]
        assert f"[{session.id}] Processing with the fast model..." in messages
        assert f"[{session.id}] Transcription complete" in messages


class TestCancel:
    def test_cancel_discards_partial_transcript(self, make_dictation, status) -> None:
        dictation = make_dictation(fast={"stdout": "partial words", "linger": 30})
        buffer = TextBuffer("draft")

        session = dictate(dictation, buffer)
        time.sleep(0.5)
        dictation.cancel()
        assert dictation.wait(timeout=10)

        out = output_of(status)
        assert session.state == SessionState.CANCELLED
        assert buffer.text == "draft"
        assert "Transcription cancelled" in out
        assert "Transcription complete" not in out
        assert not session.audio_path.exists()
        assert session.sink.closed

    def test_cancel_without_sessions(self, make_dictation) -> None:
        dictation = make_dictation()
        dictation.cancel()
        assert dictation.wait(timeout=1)


class TestStartFailures:
    def test_missing_engine(self, make_dictation, status, tmp_path: Path) -> None:
        dictation = make_dictation(engine_path=tmp_path / "no-whisper")
        buffer = TextBuffer("")

        with pytest.raises(ProcessStartError):
            dictate(dictation, buffer)

        assert "transcribe-fast" in output_of(status)
        assert dictation.active_sessions() == []
        assert not dictation.config.audio_path_for("fast").exists()
        assert buffer.text == ""

    def test_unknown_variant(self, make_dictation) -> None:
        with pytest.raises(ValueError):
            make_dictation().begin("medium", TextBuffer(""))
