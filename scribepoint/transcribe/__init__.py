"""
scribepoint.transcribe - whisper.cpp transcription launcher.

Builds the engine invocation for a pipeline variant and starts it as a
named asynchronous process whose stdout is the plain transcript.
"""

from __future__ import annotations
