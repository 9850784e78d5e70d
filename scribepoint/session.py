"""
scribepoint.session - Per-invocation session state.

A Session lives from recording start until cleanup after transcription
and owns the transient audio file and the transcription output sink.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from scribepoint.document import Document, Marker
from scribepoint.logging import logger
from scribepoint.vocabulary import VocabularyHint


class SessionState(Enum):
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    INSERTED = "inserted"
    DISCARDED = "discarded"
    EMPTY = "empty"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = {
    SessionState.INSERTED,
    SessionState.DISCARDED,
    SessionState.EMPTY,
    SessionState.FAILED,
    SessionState.CANCELLED,
}


class OutputSink:
    """In-memory buffer receiving a process's standard output."""

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self.closed = False

    def write(self, text: str) -> None:
        if self.closed:
            raise ValueError("write to discarded output sink")
        self._chunks.append(text)

    def getvalue(self) -> str:
        return "".join(self._chunks)

    def discard(self) -> None:
        self._chunks.clear()
        self.closed = True


FileStamp = tuple[int, int]


def file_stamp(path: Path) -> FileStamp | None:
    """Return the (inode, mtime_ns) identity of a file, or None if absent."""
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return (st.st_ino, st.st_mtime_ns)


def remove_transient_file(path: Path, stamp: FileStamp | None) -> bool:
    """Delete a transient file if it is still the one identified by `stamp`.

    Absence is not an error. Without a stamp the caller never owned a file
    at `path`, so whatever is there belongs to another session. A file whose
    identity no longer matches the stamp belongs to a newer session. Both
    are left in place.

    Returns:
        True if a file was removed
    """
    current = file_stamp(path)
    if current is None:
        return False
    if stamp is None:
        logger.debug(f"Leaving {path} in place, this session recorded no audio")
        return False
    if current != stamp:
        logger.debug(f"Leaving {path} in place, it was replaced by a newer recording")
        return False
    path.unlink(missing_ok=True)
    return True


@dataclass(eq=False)
class Session:
    """One end-to-end dictation, from recording start to cleanup."""

    variant: str
    document: Document
    marker: Marker
    audio_path: Path
    vocabulary: VocabularyHint = field(default_factory=VocabularyHint)
    sink: OutputSink = field(default_factory=OutputSink)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: SessionState = SessionState.RECORDING
    audio_stamp: FileStamp | None = None
    transcript: str | None = None
    error: str | None = None
    cancelled: bool = False

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES
