import heapq
import itertools
import json

import pytest

from interview_conductor.app import create_app
from interview_conductor.extensions import db
from interview_conductor.models.interview import IN_PROGRESS, Interview
from interview_conductor.services.media_service import MediaAccessError, MediaStream
from interview_conductor.services.timer_service import Job


class ManualScheduler:
    """Deterministic clock: nothing fires until ``advance`` is called."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def every(self, interval, callback):
        job = Job()
        self._push(self.now + interval, job, interval, callback, ())
        return job

    def call_later(self, delay, callback, *args):
        job = Job()
        self._push(self.now + delay, job, None, callback, args)
        return job

    def _push(self, due, job, interval, callback, args):
        heapq.heappush(self._queue, (due, next(self._seq), job, interval, callback, args))

    def advance(self, seconds):
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            due, _, job, interval, callback, args = heapq.heappop(self._queue)
            if job.cancelled:
                continue
            self.now = due
            callback(*args)
            if interval is not None and not job.cancelled:
                self._push(due + interval, job, interval, callback, args)
        self.now = target

    def pending(self):
        return [entry for entry in self._queue if not entry[2].cancelled]


class FakeDevices:
    """Scripted browser: a device list plus a queue of getUserMedia outcomes."""

    def __init__(self, kinds=(), outcomes=None):
        self.kinds = list(kinds)
        self.outcomes = list(outcomes or [])
        self.requests = []
        self.released = 0

    def enumerate_devices(self):
        return list(self.kinds)

    def get_user_media(self, constraints):
        self.requests.append(constraints)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, str):
            raise MediaAccessError(outcome, "scripted failure")
        if outcome is None:
            audio = bool(constraints.get("audio"))
            video = bool(constraints.get("video"))
        else:
            audio, video = outcome
        return MediaStream(audio=audio, video=video, on_release=self._on_release)

    def _on_release(self):
        self.released += 1


class FakeRepository:
    def __init__(self, record=None, fail_updates=0):
        self.record = record
        self.fail_updates = fail_updates
        self.updates = []

    def get_session(self, interview_id):
        from interview_conductor.models.errors import SessionNotFound
        if self.record is None or self.record.id != interview_id:
            raise SessionNotFound(f"Interview {interview_id} not found")
        return self.record

    def update_session(self, interview_id, status=None, notes=None):
        from interview_conductor.models.errors import PersistenceWriteFailed
        if self.fail_updates:
            self.fail_updates -= 1
            raise PersistenceWriteFailed("database unavailable")
        self.updates.append({"id": interview_id, "status": status, "notes": notes})
        if status:
            self.record.status = status
        if notes is not None:
            self.record.notes = notes


class Record:
    def __init__(self, id="iv-1", status=IN_PROGRESS, notes=None, language="en"):
        self.id = id
        self.status = status
        self.notes = notes
        self.language = language


def notes_for(questions, language="en"):
    return json.dumps({"questions": questions, "language": language})


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite://"})
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_interview(app):
    def _make(status=IN_PROGRESS, questions=("Tell me about yourself.",), language="en", notes=None):
        with app.app_context():
            interview = Interview(
                job_title="Backend Engineer",
                status=status,
                notes=notes if notes is not None else notes_for(list(questions), language),
                language=language,
            )
            db.session.add(interview)
            db.session.commit()
            return interview.id
    return _make
