"""Standalone speech-to-text endpoint."""
import logging

from flask import Blueprint, request, jsonify

from interview_conductor.services.speech_service import SpeechService

logger = logging.getLogger(__name__)

speech_bp = Blueprint('speech', __name__)


@speech_bp.route('/api/speech_to_text', methods=['POST'])
def speech_to_text():
    """Transcribe one uploaded answer."""
    blob = request.files.get("audio")
    if blob is None:
        return jsonify({"ok": False, "error": "No audio file provided"}), 400

    language = request.form.get("language") or "en"
    raw_index = request.form.get("questionIndex")
    question_index = int(raw_index) if raw_index and raw_index.lstrip("-").isdigit() else None
    logger.info("speech_to_text: name=%s type=%s question=%s language=%s",
                blob.filename, blob.mimetype, question_index, language)

    try:
        transcript = SpeechService.transcribe_file_storage(blob, language=language)
    except (ValueError, RuntimeError) as e:
        logger.warning("speech_to_text failed: %s", e)
        return jsonify({"ok": False, "error": "Speech-to-text conversion failed", "details": str(e)}), 500

    return jsonify({
        "ok": True,
        "transcript": transcript,
        "questionIndex": question_index,
        "language": language,
    }), 200
