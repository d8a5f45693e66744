"""Database models for the clinical logbook."""

from logbook.models.base import Base
from logbook.models.log_entry import AIContextCategory, ChatMessage, ChatRole, LogEntry
from logbook.models.recording import AudioRecording, TranscriptionStatus

__all__ = [
    "Base",
    "LogEntry",
    "AIContextCategory",
    "ChatMessage",
    "ChatRole",
    "AudioRecording",
    "TranscriptionStatus",
]
