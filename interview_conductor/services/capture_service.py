"""Per-question capture buffers fed by browser MediaRecorder chunks."""
import logging
from typing import Callable, Dict, List, Optional

from interview_conductor.config.settings import RECORDER_TIMESLICE_MS

logger = logging.getLogger(__name__)

AUDIO = "audio"
COMBINED = "av"


class CaptureRecorder:
    """Buffers chunks for the question being captured.

    Combined audio+video chunks are kept per question for archival; audio-only
    chunks feed transcription and are dropped once their transcript is merged.
    The stream is borrowed from the media acquirer, never released here.
    """

    def __init__(self, stream=None, control: Optional[Callable[[str, dict], None]] = None):
        self.stream = stream
        self._control = control
        self.recording = False
        self.question: Optional[int] = None
        self._takes: Dict[int, int] = {}
        self._chunks: Dict[int, List[bytes]] = {}
        self._audio: Dict[int, List[bytes]] = {}

    @property
    def available(self) -> bool:
        return self.stream is not None and self.stream.active

    @property
    def has_audio(self) -> bool:
        return self.available and self.stream.audio

    def take_of(self, question_index: int) -> int:
        return self._takes.get(question_index, 0)

    def start_capture(self, question_index: int) -> int:
        """Start (or restart) capture for a question. Returns the take number."""
        self.stop_capture()
        self.reset(question_index)
        self.question = question_index
        take = self._takes[question_index] = self.take_of(question_index) + 1
        self.recording = True
        if self.available:
            self._send("capture_start", {
                "question_index": question_index,
                "take": take,
                "timeslice": RECORDER_TIMESLICE_MS,
                "audio": self.stream.audio,
                "video": self.stream.video,
            })
        else:
            logger.info("recording not available, continuing interview (question %d)", question_index)
        return take

    def stop_capture(self) -> bool:
        if not self.recording:
            return False
        self.recording = False
        if self.available:
            self._send("capture_stop", {"question_index": self.question, "take": self.take_of(self.question)})
        return True

    def push(self, question_index: int, take: int, kind: str, data: bytes) -> bool:
        """Store a chunk.

        Chunks for any question other than the current one, or from an earlier
        take of it (the browser flushes its last chunk after a restart), are dropped.
        """
        if not self.available or not data:
            return False
        if question_index != self.question or take != self.take_of(question_index):
            logger.debug("dropping chunk for question %s take %s (current %s take %s)",
                         question_index, take, self.question, self.take_of(self.question))
            return False
        target = self._audio if kind == AUDIO else self._chunks
        target.setdefault(question_index, []).append(bytes(data))
        return True

    def reset(self, question_index: int):
        self._chunks[question_index] = []
        self._audio[question_index] = []

    def chunks(self, question_index: int) -> List[bytes]:
        return list(self._chunks.get(question_index, []))

    def audio_chunks(self, question_index: int) -> List[bytes]:
        return list(self._audio.get(question_index, []))

    def discard_audio(self, question_index: int, take: int):
        """Drop a question's transcription buffer once its transcript has been merged."""
        if self.take_of(question_index) != take:
            return
        if self.recording and self.question == question_index:
            return
        self._audio.pop(question_index, None)

    def clear(self):
        self.stop_capture()
        self._chunks.clear()
        self._audio.clear()

    def _send(self, event: str, payload: dict):
        if self._control:
            self._control(event, payload)
