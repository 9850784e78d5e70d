"""
Scribepoint - offline dictation into text documents.

Records microphone audio on command, transcribes it with a local
whisper.cpp engine and inserts the transcript back into the document at
the position the cursor had when recording started: record → transcribe
→ insert → clean up.
"""

__version__ = "0.1.0"
