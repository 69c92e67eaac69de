"""Error taxonomy for the interview flow.

Only PersistenceWriteFailed ever stops the candidate, and only at submit time.
Everything else is turned into an advisory and the interview carries on.
"""
from dataclasses import dataclass


class InterviewError(Exception):
    """Base class for interview flow errors."""

    kind = "error"


class MediaUnavailable(InterviewError):
    kind = "media_unavailable"


# Raised by the acquirer when enumeration finds no input device at all.
NoDeviceError = MediaUnavailable


class MediaPermissionDenied(InterviewError):
    kind = "media_permission_denied"


class MediaDeviceBusy(InterviewError):
    kind = "media_device_busy"


class CaptureTooShort(InterviewError):
    kind = "capture_too_short"


class TranscriptionFailed(InterviewError):
    kind = "transcription_failed"


class PersistenceWriteFailed(InterviewError):
    kind = "persistence_write_failed"


class SessionNotFound(InterviewError):
    kind = "session_not_found"


class SessionUnavailable(InterviewError):
    """The session exists but cannot be conducted in its current status."""

    kind = "session_unavailable"

    def __init__(self, message: str, redirect: str):
        super().__init__(message)
        self.redirect = redirect


@dataclass(frozen=True)
class Advisory:
    """Non-fatal, user-visible warning."""

    kind: str
    message: str

    @classmethod
    def from_error(cls, err: InterviewError) -> "Advisory":
        return cls(kind=err.kind, message=str(err))

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}
