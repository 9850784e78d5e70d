"""
scribepoint.vocabulary - Vocabulary hint loading.

A vocabulary file is plain text whose trimmed contents bias the engine
toward known terms. Its word count is checked against an advisory limit
only to warn; long prompts are still passed through.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from scribepoint.logging import logger

VOCABULARY_WORD_LIMIT = 150


@dataclass(frozen=True)
class VocabularyHint:
    """Optional prompt text plus its whitespace-delimited word count."""

    prompt: str | None = None
    word_count: int | None = None

    @property
    def over_limit(self) -> bool:
        return self.word_count is not None and self.word_count > VOCABULARY_WORD_LIMIT

    def warning(self) -> str | None:
        """Return the advisory warning for an over-long vocabulary, if any."""
        if not self.over_limit:
            return None
        return (
            f"Vocabulary has {self.word_count} words, above the advisory limit of "
            f"{VOCABULARY_WORD_LIMIT}; transcription may be slower or less accurate"
        )


def load_vocabulary(path: Path | None) -> VocabularyHint:
    """Read a vocabulary file into a hint.

    Args:
        path: Vocabulary file, or None when no vocabulary is configured

    Returns:
        VocabularyHint; empty when the path is unset, missing or blank

    Raises:
        OSError: If the file exists but cannot be read
    """
    if path is None or not path.exists():
        if path is not None:
            logger.debug(f"Vocabulary file not found: {path}")
        return VocabularyHint()

    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return VocabularyHint()

    return VocabularyHint(prompt=text, word_count=len(text.split()))
