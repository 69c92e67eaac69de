"""Interview session API routes (creation, lookup, start)."""
import logging

from flask import Blueprint, request, jsonify

from interview_conductor.models.errors import PersistenceWriteFailed, SessionNotFound
from interview_conductor.models.interview import IN_PROGRESS, PENDING
from interview_conductor.services.question_service import QuestionService
from interview_conductor.services.repository import InterviewRepository

logger = logging.getLogger(__name__)

interview_bp = Blueprint('interview', __name__)
repository = InterviewRepository()

# application metadata the upstream application step may attach to the notes
_EXTRA_FIELDS = ("application_id", "candidate_email", "candidate_name")


def page_for(status: str) -> str:
    """Which candidate page a session in this status belongs on."""
    if status == PENDING:
        return "prepare"
    if status == IN_PROGRESS:
        return "conduct"
    return "list"


@interview_bp.route('/api/interviews', methods=['POST'])
def create_interview():
    """Generate questions for a job and create a pending interview."""
    data = request.get_json(silent=True) or {}
    job_title = (data.get("job_title") or "").strip()
    if not job_title:
        return jsonify({"ok": False, "error": "job_title is required"}), 400
    language = (data.get("language") or "en").strip()
    resume_text = data.get("resume_text") or ""

    questions = QuestionService.generate_questions(job_title, resume_text, language)
    extra = {k: data[k] for k in _EXTRA_FIELDS if data.get(k)}
    try:
        interview = repository.create_session(job_title, questions, language=language, extra=extra)
    except PersistenceWriteFailed as e:
        return jsonify({"ok": False, "error": str(e)}), 500

    logger.info("created interview %s for %r (%d questions, %s)", interview.id, job_title, len(questions), language)
    return jsonify({"ok": True, "interview": interview.to_dict(), "questions": questions}), 201


@interview_bp.route('/api/interviews/<interview_id>', methods=['GET'])
def get_interview(interview_id):
    try:
        interview = repository.get_session(interview_id)
    except SessionNotFound as e:
        return jsonify({"ok": False, "error": str(e)}), 404
    return jsonify({"ok": True, "interview": interview.to_dict(), "page": page_for(interview.status)}), 200


@interview_bp.route('/api/interviews/<interview_id>/start', methods=['POST'])
def start_interview(interview_id):
    """Candidate leaves the preparation page: pending -> in_progress."""
    try:
        interview = repository.get_session(interview_id)
        if interview.status != PENDING:
            return jsonify({"ok": False, "error": f"Interview is {interview.status}",
                            "page": page_for(interview.status)}), 409
        interview = repository.start_session(interview_id)
    except SessionNotFound as e:
        return jsonify({"ok": False, "error": str(e)}), 404
    except PersistenceWriteFailed:
        return jsonify({"ok": False, "error": "Failed to start interview. Please try again."}), 500
    return jsonify({"ok": True, "interview": interview.to_dict(), "page": page_for(interview.status)}), 200
