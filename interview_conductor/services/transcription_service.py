"""Sends a question's captured audio to speech-to-text and merges the result."""
import itertools
import logging
import threading
from typing import Callable, Dict, List, Optional

from interview_conductor.config.settings import MIN_AUDIO_BYTES
from interview_conductor.models.errors import Advisory, CaptureTooShort, TranscriptionFailed
from interview_conductor.services.speech_service import SpeechService

logger = logging.getLogger(__name__)

AUDIO_MIME = "audio/webm; codecs=opus"


class TranscriptionBridge:
    """One current transcription per question; a newer one supersedes the older write."""

    def __init__(
        self,
        transcriber: Optional[Callable[..., str]] = None,
        advise: Optional[Callable[[Advisory], None]] = None,
        min_bytes: int = MIN_AUDIO_BYTES,
        lock=None,
    ):
        self.transcriber = transcriber or SpeechService.transcribe_audio
        self._advise = advise
        self.min_bytes = min_bytes
        self._lock = lock or threading.RLock()
        self._tokens = itertools.count(1)
        self._latest: Dict[int, int] = {}
        self._in_flight: Dict[int, int] = {}

    def busy(self, question_index: int) -> bool:
        with self._lock:
            return question_index in self._in_flight

    def invalidate(self, question_index: int):
        """Make any in-flight transcription of this question drop its result."""
        with self._lock:
            self._latest[question_index] = next(self._tokens)
            self._in_flight.pop(question_index, None)

    def transcribe(self, session, question_index: int, audio_chunks: List[bytes]) -> Optional[str]:
        """Transcribe and store into ``session.transcripts``. Never raises."""
        payload = b"".join(audio_chunks)
        if len(payload) < self.min_bytes:
            err = CaptureTooShort(f"audio for question {question_index} is {len(payload)} bytes")
            logger.info("skipping transcription: %s", err)
            return None

        with self._lock:
            token = next(self._tokens)
            self._latest[question_index] = token
            self._in_flight[question_index] = token

        logger.info("transcribing question %d: %d bytes (%s) language=%s",
                    question_index, len(payload), AUDIO_MIME, session.language)
        try:
            text = self.transcriber(payload, session.language, f"question_{question_index}.webm")
        except Exception as e:
            logger.warning("transcription failed for question %d: %s", question_index, e)
            with self._lock:
                current = self._latest.get(question_index) == token
                if self._in_flight.get(question_index) == token:
                    del self._in_flight[question_index]
            if current and self._advise:
                self._advise(Advisory.from_error(TranscriptionFailed(
                    "Speech-to-text conversion failed. You can still continue the interview.")))
            return None

        text = (text or "").strip()
        with self._lock:
            if self._latest.get(question_index) != token:
                logger.info("discarding superseded transcript for question %d", question_index)
                return None
            self._in_flight.pop(question_index, None)
            if not text:
                logger.info("no speech recognized for question %d", question_index)
                return None
            session.transcripts[question_index] = text
        logger.info("transcription completed for question %d", question_index)
        return text
