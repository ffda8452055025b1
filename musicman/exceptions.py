"""
Custom exceptions for MusicMan.

Every error a command can hit is a ``MusicManError``; the dispatcher turns
them into a reply using ``message_key``. Only ``ConfigurationError`` is
allowed to stop the process, and only during startup.
"""
from typing import Optional


class MusicManError(Exception):
    """Base exception for MusicMan."""
    message_key = "GENERIC_ERROR"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message_key)
        self.detail = message

    @property
    def reply_detail(self) -> str:
        """Text substituted into the ``{detail}`` field of the reply."""
        return self.detail or ""


class ConfigurationError(MusicManError):
    """Raised when startup configuration is missing or invalid."""
    message_key = "CONFIG_ERROR"


class ArgumentError(MusicManError):
    """Raised when a command is invoked with too few or malformed arguments."""
    message_key = "ARGUMENT_ERROR"

    def __init__(self, usage: str):
        super().__init__(usage)
        self.usage = usage


class NoVoiceChannelError(MusicManError):
    """Raised when ``join`` is used by someone outside any voice channel."""
    message_key = "NO_VOICE_CHANNEL"


class NotConnectedError(MusicManError):
    """Raised when a playback command needs a voice session that does not exist."""
    message_key = "NOT_CONNECTED"


class AlreadyConnectedError(MusicManError):
    """Raised when ``join`` is used while the guild already has a session."""
    message_key = "ALREADY_CONNECTED"


class ExternalServiceError(MusicManError):
    """Raised when the voice gateway or the audio node fails or times out."""
    message_key = "EXTERNAL_ERROR"

    def __init__(self, operation: str, message: Optional[str] = None):
        super().__init__(message or operation)
        self.operation = operation

    @property
    def reply_detail(self) -> str:
        return self.operation


class NotFoundError(MusicManError):
    """Raised when a search returns no tracks."""
    message_key = "NOT_FOUND"

    def __init__(self, query: str):
        super().__init__(query)
        self.query = query


class QueueFullError(MusicManError):
    """Raised when the guild queue is at ``max_queue_size``."""
    message_key = "QUEUE_FULL"
