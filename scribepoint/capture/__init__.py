"""
scribepoint.capture - Microphone capture.

Runs the external recorder (sox or ffmpeg) until the user cancels and
leaves a finalized 16kHz mono WAV for transcription.
"""

from __future__ import annotations
