import json

import pytest

from interview_conductor.models.errors import SessionNotFound, SessionUnavailable
from interview_conductor.models.interview import CANCELLED, COMPLETED, PENDING
from interview_conductor.models.session_state import AUTO, USER, Completed, Preparing, Recording, Reviewing, Submitted
from interview_conductor.services.capture_service import AUDIO, COMBINED
from interview_conductor.services.media_service import MediaAcquirer
from interview_conductor.services.session_controller import SessionController

from conftest import FakeDevices, FakeRepository, ManualScheduler, Record, notes_for

AV = ["videoinput", "audioinput"]


def make_controller(questions=("Q0?",), language="en", kinds=(), transcriber=None,
                    notes="default", status="in_progress", fail_updates=0):
    if notes == "default":
        notes = notes_for(list(questions), language)
    record = Record(status=status, notes=notes, language=language)
    repo = FakeRepository(record, fail_updates=fail_updates)
    devices = FakeDevices(kinds)
    clock = ManualScheduler()
    events = []
    ctrl = SessionController(
        "iv-1", repo, clock,
        acquirer=MediaAcquirer(devices),
        notify=lambda e, p: events.append((e, p)),
        transcriber=transcriber,
    )
    return ctrl, clock, repo, devices, events


def states(ctrl):
    return [(t.state, t.question) for t in ctrl.history]


def answer(ctrl, clock, size=2048):
    """Skip preparation, send some audio, stop, let the flush delay pass."""
    q = ctrl.state.question
    assert ctrl.skip_preparation()
    take = ctrl.recorder.take_of(q)
    ctrl.add_chunk(q, take, COMBINED, b"v" * size)
    ctrl.add_chunk(q, take, AUDIO, b"a" * size)
    assert ctrl.stop_recording()
    clock.advance(0.5)


def test_single_question_without_devices_runs_on_timers_alone():
    calls = []
    ctrl, clock, repo, devices, events = make_controller(
        notes=None, transcriber=lambda *a: calls.append(a) or "x")

    ctrl.load()
    assert isinstance(ctrl.state, Preparing) and ctrl.state.countdown.remaining == 30
    assert ctrl.advisories[0].kind == "media_unavailable"

    clock.advance(30)
    assert isinstance(ctrl.state, Recording) and ctrl.state.countdown.remaining == 60
    clock.advance(60)
    assert isinstance(ctrl.state, Reviewing)
    assert ctrl.next_question()
    assert isinstance(ctrl.state, Completed)

    assert states(ctrl) == [("idle", None), ("preparing", 0), ("recording", 0),
                            ("reviewing", 0), ("completed", None)]
    assert [t.trigger for t in ctrl.history[2:4]] == [AUTO, AUTO]
    assert calls == []

    assert ctrl.submit()
    assert isinstance(ctrl.state, Submitted)
    bundle = json.loads(repo.updates[0]["notes"])
    assert repo.updates[0]["status"] == COMPLETED
    assert bundle["questions"] == ["Tell me about yourself."]
    assert bundle["transcripts"] == {}
    assert bundle["language"] == "en"
    assert bundle["completed_at"]
    assert ("navigate", {"to": "/ai-interview?submitted=true"}) in events


def test_manual_skip_and_stop_through_three_questions():
    ctrl, clock, repo, _, _ = make_controller(questions=("A?", "B?", "C?"), kinds=AV,
                                              transcriber=lambda *a: "answer")
    ctrl.load()
    for _ in range(3):
        answer(ctrl, clock)
        ctrl.next_question()

    reviewing = [t for t in ctrl.history if t.state == "reviewing"]
    assert [t.question for t in reviewing] == [0, 1, 2]
    assert all(t.trigger != AUTO for t in ctrl.history)
    assert all(t.trigger == USER for t in ctrl.history[2:])
    assert isinstance(ctrl.state, Completed)


def test_failed_transcription_leaves_a_gap():
    def transcriber(payload, language, filename):
        if filename == "question_1.webm":
            raise RuntimeError("vendor error")
        return f"answer to {filename}"

    ctrl, clock, repo, _, events = make_controller(questions=("A?", "B?", "C?"), kinds=AV, transcriber=transcriber)
    ctrl.load()
    for _ in range(3):
        answer(ctrl, clock)
        ctrl.next_question()

    assert sorted(ctrl.session.transcripts) == [0, 2]
    assert any(e == "advisory" and p["kind"] == "transcription_failed" for e, p in events)
    assert ctrl.submit()
    bundle = json.loads(repo.updates[0]["notes"])
    assert set(bundle["transcripts"]) == {"0", "2"}
    assert len(bundle["questions"]) == 3
    assert len(bundle["transcripts"]) <= len(bundle["questions"])


def test_skip_cancels_the_preparation_countdown():
    ctrl, clock, *_ = make_controller(kinds=AV)
    ctrl.load()
    prep = ctrl.state.countdown
    clock.advance(10)
    assert ctrl.skip_preparation()
    rec = ctrl.state.countdown

    clock.advance(59)
    assert isinstance(ctrl.state, Recording)
    assert prep.remaining == 20
    assert rec.remaining == 1
    assert ctrl.skip_preparation() is False


def test_stale_recording_timer_never_fires_into_the_next_question():
    ctrl, clock, *_ = make_controller(questions=("A?", "B?"))
    ctrl.load()
    ctrl.skip_preparation()
    clock.advance(5)
    ctrl.stop_recording()
    ctrl.next_question()

    clock.advance(29)
    assert isinstance(ctrl.state, Preparing)
    assert ctrl.state.question == 1
    assert ctrl.state.countdown.remaining == 1


def test_only_one_countdown_is_pending_at_any_time():
    ctrl, clock, *_ = make_controller(questions=("A?", "B?"))
    ctrl.load()
    for _ in range(3):
        assert len(clock.pending()) == 1
        clock.advance(7)
    ctrl.skip_preparation()
    assert len(clock.pending()) == 1


def test_advancing_past_last_question_completes():
    ctrl, clock, *_ = make_controller(questions=("A?", "B?"))
    ctrl.load()
    for _ in range(2):
        clock.advance(90)
        ctrl.next_question()
    assert isinstance(ctrl.state, Completed)
    assert ("preparing", 2) not in states(ctrl)
    assert ctrl.next_question() is False
    assert clock.pending() == []


def test_next_is_only_accepted_while_reviewing():
    ctrl, clock, *_ = make_controller(questions=("A?", "B?"))
    ctrl.load()
    assert ctrl.next_question() is False
    ctrl.skip_preparation()
    assert ctrl.next_question() is False
    assert ctrl.submit() is False


def test_re_recording_discards_previous_capture():
    calls = []
    ctrl, clock, *_ = make_controller(kinds=AV, transcriber=lambda p, l, f: calls.append(len(p)) or "second")
    ctrl.load()
    ctrl.skip_preparation()
    ctrl.add_chunk(0, 1, COMBINED, b"v" * 4096)
    ctrl.add_chunk(0, 1, AUDIO, b"a" * 4096)
    ctrl.stop_recording()

    # restart before the flush delay elapses; the browser still flushes take 1
    assert ctrl.record_again()
    assert ctrl.add_chunk(0, 1, AUDIO, b"t" * 2048) is False
    assert ctrl.recorder.chunks(0) == []
    assert ctrl.recorder.audio_chunks(0) == []
    clock.advance(0.5)
    assert calls == []

    ctrl.add_chunk(0, 2, AUDIO, b"b" * 1500)
    ctrl.stop_recording()
    clock.advance(0.5)
    assert calls == [1500]
    assert ctrl.session.transcripts == {0: "second"}


def test_short_capture_is_not_transcribed():
    calls = []
    ctrl, clock, *_ = make_controller(kinds=AV, transcriber=lambda *a: calls.append(a) or "x")
    ctrl.load()
    answer(ctrl, clock, size=100)
    assert calls == []
    assert ctrl.session.transcripts == {}
    assert isinstance(ctrl.state, Reviewing)


def test_chunks_for_other_questions_are_dropped():
    ctrl, clock, *_ = make_controller(questions=("A?", "B?"), kinds=AV)
    ctrl.load()
    ctrl.skip_preparation()
    assert ctrl.add_chunk(0, 1, AUDIO, b"a") is True
    assert ctrl.add_chunk(1, 1, AUDIO, b"a") is False


def test_submit_failure_keeps_completed_and_allows_retry():
    ctrl, clock, repo, devices, events = make_controller(kinds=AV, fail_updates=1)
    ctrl.load()
    clock.advance(90)
    ctrl.next_question()

    assert ctrl.submit() is False
    assert isinstance(ctrl.state, Completed)
    assert ctrl.advisories[-1].kind == "persistence_write_failed"
    assert ctrl.advisories[-1].message == "Failed to submit interview. Please try again."
    assert devices.released == 0

    assert ctrl.submit() is True
    assert isinstance(ctrl.state, Submitted)
    assert devices.released == 1
    assert ctrl.submit() is True
    assert len(repo.updates) == 1


def test_close_releases_everything_and_is_idempotent():
    ctrl, clock, repo, devices, events = make_controller(kinds=AV)
    ctrl.load()
    ctrl.skip_preparation()
    ctrl.add_chunk(0, 1, AUDIO, b"a" * 2048)
    ctrl.close()
    ctrl.close()

    assert devices.released == 1
    assert clock.pending() == []
    assert not ctrl.recorder.recording
    assert ctrl.stop_recording() is False
    assert [e for e, _ in events].count("capture_stop") == 1
    assert ctrl.recorder.audio_chunks(0) == []


def test_close_during_media_setup_releases_the_stream():
    ctrl, clock, repo, devices, events = make_controller(kinds=AV)
    real_acquire = ctrl.acquirer.acquire

    def acquire_then_leave():
        result = real_acquire()
        ctrl.close()
        return result

    ctrl.acquirer.acquire = acquire_then_leave
    ctrl.load()
    assert devices.released == 1
    assert clock.pending() == []
    assert states(ctrl) == [("idle", None)]


def test_load_failure_after_lookup_still_closes():
    ctrl, clock, repo, devices, events = make_controller(kinds=AV)

    def broken():
        raise RuntimeError("socket gone")

    ctrl.acquirer.acquire = broken
    with pytest.raises(RuntimeError):
        ctrl.load()
    assert ctrl.closed
    assert clock.pending() == []


@pytest.mark.parametrize("status,redirect", [
    (PENDING, "/ai-interview/iv-1/prepare"),
    (COMPLETED, "/ai-interview"),
    (CANCELLED, "/ai-interview"),
])
def test_load_refuses_sessions_not_in_progress(status, redirect):
    ctrl, *_ = make_controller(status=status)
    with pytest.raises(SessionUnavailable) as exc:
        ctrl.load()
    assert exc.value.redirect == redirect


def test_load_unknown_session():
    ctrl, *_ = make_controller()
    ctrl.session_id = "missing"
    with pytest.raises(SessionNotFound):
        ctrl.load()


def test_timer_ticks_and_snapshots_are_broadcast():
    ctrl, clock, repo, devices, events = make_controller(questions=("A?", "B?"), language="ko")
    ctrl.load()
    clock.advance(2)
    ticks = [p for e, p in events if e == "timer_tick"]
    assert ticks == [{"phase": "preparing", "remaining": 29, "question": 0},
                     {"phase": "preparing", "remaining": 28, "question": 0}]
    snap = ctrl.snapshot()
    assert snap["state"] == "preparing"
    assert snap["question_text"] == "A?"
    assert snap["question_count"] == 2
    assert snap["language"] == "ko"
    assert snap["media"]["text_only"] is True


def test_submit_inside_flush_delay_keeps_the_last_answer():
    ctrl, clock, repo, *_ = make_controller(questions=("A?", "B?"), kinds=AV,
                                            transcriber=lambda p, l, f: f"said {len(p)}")
    ctrl.load()
    answer(ctrl, clock)
    ctrl.next_question()

    ctrl.skip_preparation()
    ctrl.add_chunk(1, 1, AUDIO, b"a" * 3000)
    ctrl.stop_recording()
    ctrl.next_question()
    assert ctrl.submit()

    bundle = json.loads(repo.updates[0]["notes"])
    assert bundle["transcripts"] == {"0": "said 2048", "1": "said 3000"}
    # the delayed job finds nothing left to do
    clock.advance(1)
    assert len(repo.updates) == 1


def test_late_chunk_of_a_replaced_take_never_reaches_transcription():
    payloads = []
    ctrl, clock, *_ = make_controller(kinds=AV, transcriber=lambda p, l, f: payloads.append(p) or "ok")
    ctrl.load()
    ctrl.skip_preparation()
    ctrl.add_chunk(0, 1, AUDIO, b"1" * 2048)
    ctrl.stop_recording()
    ctrl.record_again()
    ctrl.add_chunk(0, 2, AUDIO, b"2" * 2048)
    ctrl.add_chunk(0, 1, AUDIO, b"late")
    ctrl.stop_recording()
    clock.advance(0.5)
    assert payloads == [b"2" * 2048]
