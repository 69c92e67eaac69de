"""Camera / microphone acquisition.

The physical devices live in the candidate's browser. ``SocketMediaDevices``
reaches them through acknowledged Socket.IO calls; ``MediaAcquirer`` decides
what to ask for and how to degrade. Nothing here ever stops the interview:
every failure ends in an advisory and a text-only or audio-only session.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from socketio.exceptions import TimeoutError as SocketTimeoutError

from interview_conductor.config.settings import MEDIA_CALL_TIMEOUT_SEC
from interview_conductor.models.errors import (
    Advisory,
    MediaDeviceBusy,
    MediaPermissionDenied,
    MediaUnavailable,
)

logger = logging.getLogger(__name__)

PERMISSION_DENIED = "PermissionDenied"
DEVICE_BUSY = "DeviceBusy"
NOT_FOUND = "NotFound"
CONSTRAINT_UNSATISFIABLE = "ConstraintUnsatisfiable"
OTHER = "Other"
NO_DEVICE = "NoDevice"

# Browser DOMException names -> failure class
_ERROR_NAMES = {
    "NotAllowedError": PERMISSION_DENIED,
    "PermissionDeniedError": PERMISSION_DENIED,
    "SecurityError": PERMISSION_DENIED,
    "NotReadableError": DEVICE_BUSY,
    "TrackStartError": DEVICE_BUSY,
    "NotFoundError": NOT_FOUND,
    "DevicesNotFoundError": NOT_FOUND,
    "OverconstrainedError": CONSTRAINT_UNSATISFIABLE,
    "ConstraintNotSatisfiedError": CONSTRAINT_UNSATISFIABLE,
}

_ADVISORIES = {
    NO_DEVICE: (MediaUnavailable, "No camera or microphone found. Interview will proceed in text-only mode."),
    NOT_FOUND: (MediaUnavailable, "Camera or microphone not found. Interview will proceed in text-only mode."),
    PERMISSION_DENIED: (MediaPermissionDenied, "Media access denied. Interview will proceed in text-only mode."),
    DEVICE_BUSY: (MediaDeviceBusy, "Media devices are busy. Interview will proceed in text-only mode."),
    CONSTRAINT_UNSATISFIABLE: (
        MediaUnavailable,
        "Unable to access camera and microphone with basic settings. Interview will proceed in text-only mode.",
    ),
    OTHER: (MediaUnavailable, "Media setup failed. Interview will proceed in text-only mode."),
}


def classify_media_error(name: Optional[str]) -> str:
    return _ERROR_NAMES.get(name or "", OTHER)


def advisory_for(failure: str) -> Advisory:
    err_cls, message = _ADVISORIES.get(failure, _ADVISORIES[OTHER])
    return Advisory.from_error(err_cls(message))


class MediaAccessError(Exception):
    """A getUserMedia/enumerateDevices failure as reported by the browser."""

    def __init__(self, name: str, message: str = ""):
        super().__init__(f"{name}: {message}" if message else name)
        self.name = name
        self.message = message


class MediaStream:
    """Live stream handle. ``stop`` releases every track and is idempotent."""

    def __init__(self, audio: bool, video: bool, on_release: Optional[Callable[[], None]] = None):
        self.audio = bool(audio)
        self.video = bool(video)
        self._on_release = on_release
        self.active = True

    def stop(self):
        if not self.active:
            return
        self.active = False
        if self._on_release:
            self._on_release()


class SocketMediaDevices:
    """Device access through the candidate's browser over Socket.IO acks."""

    def __init__(self, socketio, sid: str, timeout: int = MEDIA_CALL_TIMEOUT_SEC):
        self.socketio = socketio
        self.sid = sid
        self.timeout = timeout

    def _call(self, event, *args):
        try:
            return self.socketio.call(event, *args, to=self.sid, timeout=self.timeout)
        except SocketTimeoutError as e:
            raise MediaAccessError("TimeoutError", f"browser did not answer {event}") from e

    def enumerate_devices(self) -> List[str]:
        reply = self._call("enumerate_devices") or []
        return [d.get("kind") if isinstance(d, dict) else str(d) for d in reply]

    def get_user_media(self, constraints: dict) -> MediaStream:
        reply = self._call("get_user_media", constraints) or {}
        if not reply.get("ok"):
            err = reply.get("error") or {}
            raise MediaAccessError(err.get("name") or "Error", err.get("message") or "")
        tracks = reply.get("tracks") or []
        return MediaStream(
            audio="audio" in tracks,
            video="video" in tracks,
            on_release=lambda: self.socketio.emit("release_media", {}, to=self.sid),
        )


@dataclass
class MediaAcquisition:
    stream: Optional[MediaStream] = None
    failure: Optional[str] = None
    advisories: List[Advisory] = field(default_factory=list)

    @property
    def audio(self) -> bool:
        return bool(self.stream and self.stream.audio)

    @property
    def video(self) -> bool:
        return bool(self.stream and self.stream.video)

    @property
    def text_only(self) -> bool:
        return self.stream is None

    def to_dict(self) -> dict:
        return {
            "audio": self.audio,
            "video": self.video,
            "text_only": self.text_only,
            "failure": self.failure,
            "advisories": [a.to_dict() for a in self.advisories],
        }


def build_constraints(has_video: bool, has_audio: bool, minimal: bool = False) -> dict:
    if minimal:
        return {"video": has_video, "audio": has_audio}
    return {
        "video": {"width": {"ideal": 1280}, "height": {"ideal": 720}, "facingMode": "user"} if has_video else False,
        "audio": {"echoCancellation": True, "noiseSuppression": True} if has_audio else False,
    }


class MediaAcquirer:
    """Owns the stream handle from acquisition until ``release``."""

    def __init__(self, devices):
        self.devices = devices
        self.stream: Optional[MediaStream] = None

    def acquire(self) -> MediaAcquisition:
        self.release()
        try:
            kinds = self.devices.enumerate_devices()
        except MediaAccessError as err:
            return self._failed(classify_media_error(err.name), err)

        has_video = "videoinput" in kinds
        has_audio = "audioinput" in kinds
        logger.info("available devices: video=%s audio=%s", has_video, has_audio)
        if not has_video and not has_audio:
            return self._failed(NO_DEVICE)

        try:
            stream = self.devices.get_user_media(build_constraints(has_video, has_audio))
        except MediaAccessError as err:
            failure = classify_media_error(err.name)
            if failure != CONSTRAINT_UNSATISFIABLE:
                return self._failed(failure, err)
            logger.info("constraints not satisfiable, retrying with defaults")
            try:
                stream = self.devices.get_user_media(build_constraints(has_video, has_audio, minimal=True))
            except MediaAccessError as retry_err:
                return self._failed(CONSTRAINT_UNSATISFIABLE, retry_err)

        if not stream.audio and not stream.video:
            stream.stop()
            return self._failed(OTHER)

        self.stream = stream
        result = MediaAcquisition(stream=stream)
        if not stream.video:
            result.advisories.append(Advisory.from_error(MediaUnavailable(
                "Camera not available, but microphone is ready. You can proceed with audio-only interview.")))
        elif not stream.audio:
            result.advisories.append(Advisory.from_error(MediaUnavailable(
                "Microphone not available, but camera is ready. You can proceed with video-only interview.")))
        return result

    def release(self):
        if self.stream is not None:
            self.stream.stop()
            self.stream = None

    @staticmethod
    def _failed(failure: str, err: Optional[Exception] = None) -> MediaAcquisition:
        logger.warning("media setup failed: %s (%s)", failure, err)
        return MediaAcquisition(failure=failure, advisories=[advisory_for(failure)])
