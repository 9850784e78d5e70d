"""
scribepoint.pipeline - Record → transcribe → insert orchestration.

Dictation ties the pieces together for the "fast" and "accurate" variants,
which differ only in the model handed to the engine:

1. begin: mark the insertion position and load the vocabulary hint
2. record: run the recorder until the user cancels
3. transcribe: start the engine asynchronously and return
4. on exit (dispatched on the caller's thread): validate the output, insert
   it at the marker if the document still exists, and always clean up the
   audio file and output sink
"""

from __future__ import annotations

import threading

from scribepoint.capture.recorder import CaptureController
from scribepoint.config import VARIANTS, ScribeConfig
from scribepoint.document import Document
from scribepoint.exceptions import ConfigError, DocumentError, ProcessStartError
from scribepoint.logging import logger
from scribepoint.process import ProcessExit, ProcessSupervisor
from scribepoint.session import Session, SessionState, file_stamp, remove_transient_file
from scribepoint.status import StatusReporter
from scribepoint.transcribe.engine import TranscriptionLauncher, format_command
from scribepoint.vocabulary import load_vocabulary

PREVIEW_LENGTH = 80


def preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    """Shorten text for a one-line status display."""
    text = " ".join(text.split())
    if len(text) <= length:
        return text
    return text[: length - 3] + "..."


class Dictation:
    """Runs dictation sessions against a shared process supervisor."""

    def __init__(
        self,
        config: ScribeConfig,
        supervisor: ProcessSupervisor | None = None,
        status: StatusReporter | None = None,
    ) -> None:
        self.config = config
        self.supervisor = supervisor or ProcessSupervisor(pid_dir=config.pid_dir)
        self.status = status or StatusReporter()
        self.capture = CaptureController(self.supervisor, config)
        self.launcher = TranscriptionLauncher(self.supervisor, config)
        self._sessions: list[Session] = []

    def active_sessions(self, variant: str | None = None) -> list[Session]:
        """Sessions that have not reached a terminal state."""
        return [
            s
            for s in self._sessions
            if not s.finished and (variant is None or s.variant == variant)
        ]

    def begin(self, variant: str, document: Document, position: int | None = None) -> Session:
        """Create a session anchored at `position` (None = current point).

        Raises:
            ValueError: If the variant is unknown
            ConfigError: If the vocabulary file cannot be read
            DocumentError: If the position is outside the document
        """
        if variant not in VARIANTS:
            raise ValueError(f"Unknown variant: {variant} (expected one of {VARIANTS})")

        try:
            vocabulary = load_vocabulary(self.config.vocabulary_file)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read vocabulary file {self.config.vocabulary_file}: {e}") from e

        session = Session(
            variant=variant,
            document=document,
            marker=document.create_marker(position),
            audio_path=self.config.audio_path_for(variant),
            vocabulary=vocabulary,
        )
        self._sessions.append(session)
        logger.debug(f"[{session.id}] New {variant} session, audio {session.audio_path}")
        return session

    def record(self, session: Session, cancel: threading.Event) -> None:
        """Record until `cancel` is set (or Ctrl-C), then finalize the file.

        Raises:
            ProcessStartError: If the recorder cannot be launched
        """

        def started() -> None:
            self.status.info(
                f"Recording ({session.variant})... press Enter or Ctrl-C to stop", tag=session.id
            )
            warning = session.vocabulary.warning()
            if warning:
                self.status.warning(warning, tag=session.id)

        try:
            self.capture.record(session.audio_path, cancel, on_started=started)
        except ProcessStartError as e:
            self._abort(session, str(e))
            raise
        session.audio_stamp = file_stamp(session.audio_path)

    def transcribe(self, session: Session) -> None:
        """Start the engine for `session` and return immediately.

        Raises:
            ProcessStartError: If the engine cannot be launched
        """
        session.state = SessionState.TRANSCRIBING
        self.status.info(f"Processing with the {session.variant} model...", tag=session.id)
        try:
            handle = self.launcher.launch(
                session.variant,
                session.audio_path,
                on_exit=lambda event: self.handle_exit(session, event),
                prompt=session.vocabulary.prompt,
            )
        except ProcessStartError as e:
            self._abort(session, str(e))
            raise
        logger.debug(f"[{session.id}] {format_command(handle.command)}")

    def run(
        self,
        variant: str,
        document: Document,
        position: int | None = None,
        cancel: threading.Event | None = None,
    ) -> Session:
        """Record, then start transcription; completion is handled by wait()."""
        session = self.begin(variant, document, position)
        self.record(session, cancel or threading.Event())
        self.transcribe(session)
        return session

    def wait(self, timeout: float | None = None) -> bool:
        """Dispatch completions until no process is outstanding."""
        return self.supervisor.drain(timeout=timeout)

    def cancel(self) -> None:
        """Stop every running process; transcripts still in flight are discarded.

        The exit events are handled by the next wait(), which cleans up
        without inserting anything.
        """
        for session in self.active_sessions():
            session.cancelled = True
        self.supervisor.shutdown()

    def handle_exit(self, session: Session, event: ProcessExit) -> None:
        """React once to the termination of the session's engine."""
        if session.finished:
            logger.debug(f"[{session.id}] Ignoring repeated exit event: {event.description}")
            return

        try:
            session.sink.write(event.output)

            if session.cancelled:
                session.state = SessionState.CANCELLED
                self.status.warning("Transcription cancelled, output discarded", tag=session.id)
                return

            if event.kind not in ("finished", "signaled"):
                session.state = SessionState.FAILED
                session.error = event.description
                self.status.error(f"Transcription error: {event.description}", tag=session.id)
                return

            text = session.sink.getvalue().strip()
            if not text:
                session.state = SessionState.EMPTY
                self.status.warning("No transcription output", tag=session.id)
                return

            session.transcript = text
            self.insert(session, text)
            if session.state != SessionState.FAILED:
                self.status.success("Transcription complete", tag=session.id)
                self.status.detail(preview(text))
        finally:
            self._cleanup(session)

    def insert(self, session: Session, text: str) -> bool:
        """Insert `text` plus a trailing space at the session's marker.

        A document that no longer exists is skipped silently.

        Returns:
            True if the text was inserted
        """
        document = session.document
        if not document.exists():
            session.state = SessionState.DISCARDED
            logger.info(f"[{session.id}] Destination document is gone, transcript dropped")
            return False

        try:
            point = document.insert_at(session.marker, text + " ")
        except (DocumentError, OSError) as e:
            session.state = SessionState.FAILED
            session.error = str(e)
            self.status.warning(f"Could not insert transcript: {e}", tag=session.id)
            self.status.detail(text)
            return False

        session.state = SessionState.INSERTED
        logger.debug(f"[{session.id}] Inserted {len(text)} chars, point now {point}")
        return True

    def _abort(self, session: Session, reason: str) -> None:
        session.state = SessionState.FAILED
        session.error = reason
        self.status.error(reason, tag=session.id)
        self._cleanup(session)

    def _cleanup(self, session: Session) -> None:
        session.sink.discard()
        if remove_transient_file(session.audio_path, session.audio_stamp):
            logger.debug(f"[{session.id}] Removed {session.audio_path}")
        if session in self._sessions:
            self._sessions.remove(session)
