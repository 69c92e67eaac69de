"""Drives one candidate through the timed interview.

    Idle -> Preparing(q) -> Recording(q) -> Reviewing(q) -> Preparing(q+1) | Completed -> Submitted

Preparing and Recording carry their own countdown; the timer engine
guarantees only one runs at a time. Timer callbacks and Socket.IO handlers
arrive on different threads, so every transition happens under one
re-entrant lock, and a timer callback whose countdown is no longer the
active state's countdown is ignored. Vendor calls run outside the lock.
"""
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from interview_conductor.config.settings import TRANSCRIBE_FLUSH_DELAY_SEC
from interview_conductor.models.errors import (
    Advisory,
    PersistenceWriteFailed,
    SessionUnavailable,
)
from interview_conductor.models.interview import COMPLETED, IN_PROGRESS, PENDING, InterviewSession
from interview_conductor.models.session_state import (
    AUTO,
    LOAD,
    USER,
    Completed,
    Idle,
    Preparing,
    Recording,
    Reviewing,
    SessionState,
    Submitted,
    Transition,
    describe,
)
from interview_conductor.services.capture_service import CaptureRecorder
from interview_conductor.services.question_service import resolve_questions
from interview_conductor.services.timer_service import TimerEngine
from interview_conductor.services.transcription_service import TranscriptionBridge

logger = logging.getLogger(__name__)

SUBMITTED_REDIRECT = "/ai-interview?submitted=true"


class SessionController:

    def __init__(
        self,
        session_id: str,
        repository,
        scheduler,
        acquirer=None,
        notify: Optional[Callable[[str, dict], None]] = None,
        transcriber: Optional[Callable[..., str]] = None,
    ):
        self.session_id = session_id
        self.repository = repository
        self.scheduler = scheduler
        self.acquirer = acquirer
        self._notify = notify
        self._lock = threading.RLock()

        self.timers = TimerEngine(scheduler, lock=self._lock)
        self.recorder = CaptureRecorder(control=self._send)
        self.bridge = TranscriptionBridge(transcriber, advise=self._advise, lock=self._lock)

        self.session: Optional[InterviewSession] = None
        self.media = None
        self.state: SessionState = Idle()
        self.history: List[Transition] = [Transition(Idle.name, None, LOAD)]
        self.advisories: List[Advisory] = []
        # question -> take whose transcription is waiting out the flush delay
        self._flushes: Dict[int, int] = {}
        self._closed = False

    # ---- lifecycle -------------------------------------------------------

    def load(self) -> SessionState:
        """Resolve questions, set up media (best effort) and enter Preparing(0)."""
        with self._lock:
            if not isinstance(self.state, Idle):
                return self.state
            record = self.repository.get_session(self.session_id)
            if record.status == PENDING:
                raise SessionUnavailable("Interview has not been started yet.",
                                         redirect=f"/ai-interview/{self.session_id}/prepare")
            if record.status != IN_PROGRESS:
                raise SessionUnavailable("This interview is no longer available.", redirect="/ai-interview")
            questions, language = resolve_questions(record.notes, record.language)
            self.session = InterviewSession(id=record.id, status=record.status,
                                            questions=questions, language=language)

        try:
            self._setup_media()
        except Exception:
            self.close()
            raise

        with self._lock:
            if self._closed or not isinstance(self.state, Idle):
                return self.state
            self._enter_preparing(0, LOAD)
            return self.state

    def close(self):
        """Clear the countdown, stop capture and release media. Safe on every exit path."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.timers.cancel()
            self.recorder.clear()
            if self.acquirer is not None:
                self.acquirer.release()
            self.recorder.stream = None

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- candidate actions -----------------------------------------------

    def skip_preparation(self) -> bool:
        with self._lock:
            state = self.state
            if self._closed or not isinstance(state, Preparing):
                return False
            state.countdown.cancel()
            self._enter_recording(state.question, USER)
            return True

    def stop_recording(self) -> bool:
        with self._lock:
            state = self.state
            if self._closed or not isinstance(state, Recording):
                return False
            self._enter_reviewing(state.question, USER)
            return True

    def record_again(self) -> bool:
        """Re-record the question under review; its previous capture is discarded."""
        with self._lock:
            state = self.state
            if self._closed or not isinstance(state, Reviewing):
                return False
            self._enter_recording(state.question, USER)
            return True

    def next_question(self) -> bool:
        with self._lock:
            state = self.state
            if self._closed or not isinstance(state, Reviewing):
                return False
            nxt = state.question + 1
            if nxt < len(self.session.questions):
                self.recorder.reset(nxt)
                self._enter_preparing(nxt, USER)
            else:
                self.timers.cancel()
                self._set_state(Completed(), USER)
            return True

    def submit(self) -> bool:
        """Persist the transcript bundle. Failure leaves the session Completed for a retry.

        A last answer still inside its flush delay is transcribed first so it is
        part of the bundle.
        """
        with self._lock:
            pending = list(self._flushes.items()) if isinstance(self.state, Completed) else []
        for question, take in pending:
            self._transcribe(question, take)

        with self._lock:
            if isinstance(self.state, Submitted):
                return True
            if not isinstance(self.state, Completed):
                return False
            session = self.session
            session.completed_at = datetime.now(timezone.utc).isoformat()
            notes = json.dumps(session.bundle(), ensure_ascii=False)
            try:
                self.repository.update_session(self.session_id, status=COMPLETED, notes=notes)
            except PersistenceWriteFailed as e:
                logger.warning("submit of interview %s failed: %s", self.session_id, e)
                self._advise(Advisory.from_error(PersistenceWriteFailed(
                    "Failed to submit interview. Please try again.")))
                return False
            session.status = COMPLETED
            self._set_state(Submitted(), USER)
        self.close()
        self._send("navigate", {"to": SUBMITTED_REDIRECT})
        return True

    def add_chunk(self, question_index: int, take: int, kind: str, data: bytes) -> bool:
        with self._lock:
            if self._closed:
                return False
            return self.recorder.push(question_index, take, kind, data)

    # ---- transitions -----------------------------------------------------

    def _enter_preparing(self, question: int, trigger: str):
        countdown = self.timers.start_preparation(self._on_preparation_expired, self._on_tick)
        self._set_state(Preparing(question, countdown), trigger)

    def _enter_recording(self, question: int, trigger: str):
        self.bridge.invalidate(question)
        self.recorder.start_capture(question)
        countdown = self.timers.start_recording(self._on_recording_expired, self._on_tick)
        self._set_state(Recording(question, countdown), trigger)

    def _enter_reviewing(self, question: int, trigger: str):
        self.timers.cancel()
        captured = self.recorder.stop_capture()
        self._set_state(Reviewing(question), trigger)
        if captured and self.recorder.has_audio:
            take = self.recorder.take_of(question)
            self._flushes[question] = take
            # give the browser's final dataavailable chunk time to arrive
            self.scheduler.call_later(TRANSCRIBE_FLUSH_DELAY_SEC, self._transcribe, question, take)

    def _on_preparation_expired(self, countdown):
        with self._lock:
            state = self.state
            if self._closed or not isinstance(state, Preparing) or state.countdown is not countdown:
                return
            self._enter_recording(state.question, AUTO)

    def _on_recording_expired(self, countdown):
        with self._lock:
            state = self.state
            if self._closed or not isinstance(state, Recording) or state.countdown is not countdown:
                return
            self._enter_reviewing(state.question, AUTO)

    def _on_tick(self, countdown):
        question = getattr(self.state, "question", None)
        self._send("timer_tick", {"phase": countdown.phase, "remaining": countdown.remaining, "question": question})

    def _transcribe(self, question: int, take: int):
        with self._lock:
            if self._closed or self._flushes.get(question) != take or self.recorder.take_of(question) != take:
                return
            del self._flushes[question]
            chunks = self.recorder.audio_chunks(question)
            session = self.session
        self._broadcast_busy(question)
        self.bridge.transcribe(session, question, chunks)
        with self._lock:
            self.recorder.discard_audio(question, take)
            self._broadcast()

    # ---- notifications ---------------------------------------------------

    def _set_state(self, state: SessionState, trigger: str):
        self.state = state
        self.history.append(Transition(state.name, state.question, trigger))
        logger.info("interview %s -> %s(%s) [%s]", self.session_id, state.name, state.question, trigger)
        self._broadcast()

    def _setup_media(self):
        if self.acquirer is None:
            return
        result = self.acquirer.acquire()
        with self._lock:
            if self._closed:
                # candidate left while the browser was still prompting
                self.acquirer.release()
                return
            self.media = result
            self.recorder.stream = result.stream
            for advisory in result.advisories:
                self._advise(advisory)

    def _advise(self, advisory: Advisory):
        self.advisories.append(advisory)
        self._send("advisory", advisory.to_dict())

    def _broadcast_busy(self, question: int):
        self._send("session_state", dict(self.snapshot(), transcribing=True, transcribing_question=question))

    def _broadcast(self):
        self._send("session_state", self.snapshot())

    def _send(self, event: str, payload: dict):
        if self._notify:
            self._notify(event, payload)

    def snapshot(self) -> dict:
        with self._lock:
            out = describe(self.state)
            session = self.session
            question = self.state.question
            out.update({
                "interview_id": self.session_id,
                "question_count": len(session.questions) if session else 0,
                "question_text": session.questions[question] if session and question is not None else None,
                "language": session.language if session else None,
                "transcripts": {str(k): v for k, v in sorted(session.transcripts.items())} if session else {},
                "transcribing": question is not None and self.bridge.busy(question),
                "media": self.media.to_dict() if self.media is not None else None,
            })
            return out
