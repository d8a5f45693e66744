"""API dependencies."""

from logbook.api.dependencies.auth import User, get_current_active_user, get_current_user
from logbook.api.dependencies.services import get_recording_service, get_transcription_queue

__all__ = [
    "User",
    "get_current_user",
    "get_current_active_user",
    "get_recording_service",
    "get_transcription_queue",
]
