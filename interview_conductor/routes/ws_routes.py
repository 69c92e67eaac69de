# routes/ws_routes.py
"""Socket.IO handlers for the preparation and conduct pages.

One SessionController per connected client, keyed by sid. Every path that
ends a connection closes the controller so timers stop and media is released.
"""
import logging
from typing import Dict

from flask import request
from flask_socketio import emit

from interview_conductor.extensions import socketio
from interview_conductor.models.errors import SessionNotFound, SessionUnavailable
from interview_conductor.services.media_service import MediaAcquirer, SocketMediaDevices
from interview_conductor.services.repository import InterviewRepository
from interview_conductor.services.session_controller import SessionController
from interview_conductor.services.timer_service import SocketIOScheduler

logger = logging.getLogger(__name__)

controllers: Dict[str, SessionController] = {}
device_tests: Dict[str, MediaAcquirer] = {}


def make_devices(sid: str):
    return SocketMediaDevices(socketio, sid)


def build_controller(sid: str, interview_id: str) -> SessionController:
    return SessionController(
        interview_id,
        repository=InterviewRepository(),
        scheduler=SocketIOScheduler(socketio),
        acquirer=MediaAcquirer(make_devices(sid)),
        notify=lambda event, data: socketio.emit(event, data, to=sid),
    )


def _release(sid: str):
    ctrl = controllers.pop(sid, None)
    if ctrl is not None:
        ctrl.close()
    tester = device_tests.pop(sid, None)
    if tester is not None:
        tester.release()


def _with_controller(action):
    ctrl = controllers.get(request.sid)
    if ctrl is None:
        return {"ok": False, "error": "No interview joined"}
    return {"ok": action(ctrl), "state": ctrl.snapshot()}


@socketio.on("connect")
def handle_connect():
    logger.info("WS client connected sid=%s", request.sid)
    emit("server_message", {"msg": "connected"})


@socketio.on("disconnect")
def handle_disconnect(*args):
    logger.info("WS client disconnected sid=%s", request.sid)
    _release(request.sid)


@socketio.on("test_devices")
def handle_test_devices(data=None):
    """Device check on the preparation page; the stream stays up for the preview."""
    sid = request.sid
    previous = device_tests.pop(sid, None)
    if previous is not None:
        previous.release()
    acquirer = MediaAcquirer(make_devices(sid))
    result = acquirer.acquire()
    device_tests[sid] = acquirer
    payload = result.to_dict()
    emit("device_test", payload)
    return payload


@socketio.on("join_interview")
def handle_join_interview(data=None):
    sid = request.sid
    interview_id = (data or {}).get("interview_id")
    if not interview_id:
        return {"ok": False, "error": "interview_id is required"}

    # the conduct page acquires its own stream
    _release(sid)
    ctrl = build_controller(sid, interview_id)
    controllers[sid] = ctrl
    try:
        ctrl.load()
    except SessionNotFound as e:
        controllers.pop(sid, None)
        ctrl.close()
        emit("navigate", {"to": "/ai-interview"})
        return {"ok": False, "error": str(e)}
    except SessionUnavailable as e:
        controllers.pop(sid, None)
        ctrl.close()
        emit("navigate", {"to": e.redirect})
        return {"ok": False, "error": str(e)}
    except Exception:
        controllers.pop(sid, None)
        ctrl.close()
        raise
    return {"ok": True, "state": ctrl.snapshot()}


@socketio.on("skip_preparation")
def handle_skip_preparation(data=None):
    return _with_controller(lambda c: c.skip_preparation())


@socketio.on("stop_recording")
def handle_stop_recording(data=None):
    return _with_controller(lambda c: c.stop_recording())


@socketio.on("start_recording")
def handle_start_recording(data=None):
    return _with_controller(lambda c: c.record_again())


@socketio.on("next_question")
def handle_next_question(data=None):
    return _with_controller(lambda c: c.next_question())


@socketio.on("submit_interview")
def handle_submit_interview(data=None):
    sid = request.sid
    result = _with_controller(lambda c: c.submit())
    if result.get("ok"):
        _release(sid)
    return result


@socketio.on("media_chunk")
def handle_media_chunk(data):
    """
    Receives MediaRecorder chunks:
    {"question_index": int, "take": int, "kind": "audio"|"av", "data": bytes}.
    The take is the one announced in the matching capture_start.
    """
    ctrl = controllers.get(request.sid)
    if ctrl is None or not isinstance(data, dict):
        return {"ok": False}
    payload = data.get("data")
    if not isinstance(payload, (bytes, bytearray)):
        return {"ok": False, "error": "binary chunk data required"}
    try:
        question_index = int(data.get("question_index"))
        take = int(data.get("take"))
    except (TypeError, ValueError):
        return {"ok": False}
    stored = ctrl.add_chunk(question_index, take, data.get("kind") or "av", payload)
    return {"ok": stored, "bytes": len(payload)}
