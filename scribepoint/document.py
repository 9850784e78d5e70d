"""
scribepoint.document - Destination documents and tracked locations.

The pipeline inserts text through the Document protocol. A Marker is a
location that follows edits made before it, so a transcript lands where
the cursor was at recording start even if the document changed while
transcription ran.

Two implementations are provided:
- TextBuffer: an in-memory document whose markers are adjusted on every edit
- FileDocument: a text file on disk whose markers are resolved against the
  file's current content by diffing it with a snapshot
"""

from __future__ import annotations

import difflib
import os
import shutil
import tempfile
import weakref
from pathlib import Path
from typing import Protocol

from scribepoint.exceptions import DocumentError


class Marker(Protocol):
    @property
    def position(self) -> int: ...


class Document(Protocol):
    def exists(self) -> bool: ...

    def create_marker(self, position: int | None = None) -> Marker: ...

    def insert_at(self, marker: Marker, text: str) -> int: ...


def parse_position(text: str, where: str | None) -> int:
    """Convert a position argument into a character offset within `text`.

    Args:
        text: Document content
        where: Character offset ("42"), 1-based "LINE:COL", or None/"end"

    Returns:
        Character offset

    Raises:
        DocumentError: If the position is malformed or out of range
    """
    if where is None or where == "end":
        return len(text)

    try:
        if ":" in where:
            line_str, col_str = where.split(":", 1)
            line, col = int(line_str), int(col_str)
        else:
            offset = int(where)
            if not 0 <= offset <= len(text):
                raise DocumentError(f"Offset {offset} outside document (0-{len(text)})")
            return offset
    except ValueError as e:
        raise DocumentError(f"Invalid position: {where!r}") from e

    lines = text.split("\n")
    if not 1 <= line <= len(lines):
        raise DocumentError(f"Line {line} outside document (1-{len(lines)})")
    if not 1 <= col <= len(lines[line - 1]) + 1:
        raise DocumentError(f"Column {col} outside line {line}")
    return sum(len(s) + 1 for s in lines[: line - 1]) + col - 1


def map_offset(old: str, new: str, offset: int) -> int:
    """Map an offset in `old` to the equivalent offset in `new`.

    Text inserted exactly at the offset does not move it; text deleted
    around it collapses it to the start of the replacement. Only the span
    between the common prefix and suffix is diffed.
    """
    if old == new:
        return offset

    prefix = len(os.path.commonprefix([old, new]))
    if offset <= prefix:
        return offset

    limit = min(len(old), len(new)) - prefix
    suffix = 0
    while suffix < limit and old[-1 - suffix] == new[-1 - suffix]:
        suffix += 1
    old_end = len(old) - suffix
    if offset >= old_end:
        return offset + len(new) - len(old)

    changed = _map_changed(old[prefix:old_end], new[prefix : len(new) - suffix], offset - prefix)
    return prefix + changed


def _map_changed(old: str, new: str, offset: int) -> int:
    matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            if i1 <= offset <= i2:
                return j1 + (offset - i1)
        elif tag == "insert":
            if i1 == offset:
                return j1
        elif i1 <= offset < i2:
            return j1
    return len(new)


class BufferMarker:
    """Location in a TextBuffer, adjusted by the buffer on every edit."""

    def __init__(self, buffer: TextBuffer, position: int) -> None:
        self.buffer = buffer
        self.position = position

    def __repr__(self) -> str:
        return f"<BufferMarker {self.position} in {self.buffer.name}>"


class TextBuffer:
    """In-memory text document with a point and self-adjusting markers."""

    def __init__(self, text: str = "", name: str = "buffer") -> None:
        self.name = name
        self._text = text
        self.point = len(text)
        self._markers: weakref.WeakSet[BufferMarker] = weakref.WeakSet()
        self._open = True

    @property
    def text(self) -> str:
        return self._text

    def exists(self) -> bool:
        return self._open

    def close(self) -> None:
        self._open = False

    def _check(self, *positions: int) -> None:
        if not self._open:
            raise DocumentError(f"Buffer {self.name} is closed")
        for pos in positions:
            if not 0 <= pos <= len(self._text):
                raise DocumentError(f"Position {pos} outside buffer (0-{len(self._text)})")

    def create_marker(self, position: int | None = None) -> BufferMarker:
        pos = self.point if position is None else position
        self._check(pos)
        marker = BufferMarker(self, pos)
        self._markers.add(marker)
        return marker

    def insert(self, position: int, text: str) -> None:
        self._check(position)
        self._text = self._text[:position] + text + self._text[position:]
        for marker in self._markers:
            if marker.position > position:
                marker.position += len(text)
        if self.point > position:
            self.point += len(text)

    def delete(self, start: int, end: int) -> None:
        self._check(start, end)
        if end < start:
            start, end = end, start
        self._text = self._text[:start] + self._text[end:]
        removed = end - start
        for marker in self._markers:
            if marker.position >= end:
                marker.position -= removed
            elif marker.position > start:
                marker.position = start
        if self.point >= end:
            self.point -= removed
        elif self.point > start:
            self.point = start

    def insert_at(self, marker: Marker, text: str) -> int:
        if getattr(marker, "buffer", None) is not self:
            raise DocumentError(f"Marker does not belong to buffer {self.name}")
        position = marker.position
        self.insert(position, text)
        self.point = position + len(text)
        return self.point


class FileMarker:
    """Location in a FileDocument, resolved against the file's current text."""

    def __init__(self, document: FileDocument, offset: int, snapshot: str) -> None:
        self.document = document
        self.offset = offset
        self.snapshot = snapshot

    @property
    def position(self) -> int:
        if not self.document.exists():
            return self.offset
        return map_offset(self.snapshot, self.document.read(), self.offset)


class FileDocument:
    """Text file on disk used as an insertion destination."""

    def __init__(self, path: Path, encoding: str = "utf-8") -> None:
        self.path = path
        self.encoding = encoding

    @property
    def name(self) -> str:
        return self.path.name

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> str:
        try:
            with open(self.path, encoding=self.encoding, newline="") as f:
                return f.read()
        except FileNotFoundError as e:
            raise DocumentError(f"Document not found: {self.path}") from e

    def create_marker(self, position: int | None = None) -> FileMarker:
        text = self.read()
        pos = len(text) if position is None else position
        if not 0 <= pos <= len(text):
            raise DocumentError(f"Position {pos} outside {self.name} (0-{len(text)})")
        return FileMarker(self, pos, text)

    def insert_at(self, marker: Marker, text: str) -> int:
        if not isinstance(marker, FileMarker) or marker.document is not self:
            raise DocumentError(f"Marker does not belong to {self.name}")
        current = self.read()
        position = map_offset(marker.snapshot, current, marker.offset)
        self._write(current[:position] + text + current[position:])
        return position + len(text)

    def _write(self, content: str) -> None:
        """Replace the file content atomically via a temp file and rename."""
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding=self.encoding,
            newline="",
            dir=self.path.parent,
            delete=False,
            suffix=".tmp",
        ) as tmp:
            tmp_path = Path(tmp.name)
            try:
                tmp.write(content)
            except Exception:
                tmp_path.unlink(missing_ok=True)
                raise
        if self.path.exists():
            shutil.copymode(self.path, tmp_path)
        tmp_path.replace(self.path)
