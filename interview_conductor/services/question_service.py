"""Interview questions: generation with Gemini and normalization of stored shapes."""
import json
import logging
import re
import time
from functools import lru_cache
from typing import Any, Callable, List, Optional, Tuple

from google import genai
from google.genai import types
from google.genai.errors import ClientError
from google.genai.types import HttpOptions

from interview_conductor.config import settings
from interview_conductor.prompts.question_prompts import build_question_prompt, language_settings

logger = logging.getLogger(__name__)


def default_question(language: str) -> str:
    """The canned self-introduction question for a language tag."""
    return language_settings(language)["self_intro"]


def _string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    questions = [q.strip() for q in value if isinstance(q, str) and q.strip()]
    return questions or None


def _nested(value: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


# Stored notes have taken three shapes over time; first match wins.
QUESTION_SHAPES: Tuple[Callable[[Any], Any], ...] = (
    lambda data: _nested(data, "questions"),               # {"questions": [...]}
    lambda data: _nested(data, "questions", "questions"),  # {"questions": {"questions": [...]}}
    lambda data: data,                                     # [...]
)


def resolve_questions(notes: Optional[str], language: Optional[str] = None) -> Tuple[List[str], str]:
    """Normalize stored notes to ``(questions, language)``.

    Falls back to a single localized self-introduction question when no
    shape matches or the notes are not valid JSON.
    """
    language = language or settings.DEFAULT_LANGUAGE
    data = None
    if notes:
        try:
            data = json.loads(notes)
        except (TypeError, ValueError):
            logger.warning("interview notes are not valid JSON; using default question")

    stored_language = _nested(data, "language")
    if isinstance(stored_language, str) and stored_language.strip():
        language = stored_language.strip()

    for shape in QUESTION_SHAPES:
        questions = _string_list(shape(data))
        if questions:
            return questions, language
    return [default_question(language)], language


@lru_cache(maxsize=1)
def _genai_client() -> genai.Client:
    settings.validate_config()
    if settings.USE_VERTEX == "1":
        logger.info("[GENAI] Using Vertex AI (v1) via ADC")
        return genai.Client(
            vertexai=True,
            project=settings.PROJECT_ID,
            location=settings.LOCATION,
            http_options=HttpOptions(api_version="v1"),
        )
    logger.info("[GENAI] Using AI Studio API key (v1beta)")
    return genai.Client(api_key=settings.API_KEY)


def _parse_question_array(text: str) -> Optional[List[str]]:
    text = (text or "").strip()
    # Models like to wrap JSON in a fenced block
    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, flags=re.DOTALL)
    if fenced:
        text = fenced.group(1).strip()
    try:
        return _string_list(json.loads(text))
    except ValueError:
        return None


class QuestionService:
    """Generates the question list a new interview starts with."""

    @staticmethod
    def generate_content(prompt: str, temperature: float = 0.7, max_tokens: int = 512) -> str:
        last_error = None
        for attempt in range(2):
            try:
                resp = _genai_client().models.generate_content(
                    model=settings.GEMINI_MODEL,
                    contents=prompt,
                    config=types.GenerateContentConfig(temperature=temperature, max_output_tokens=max_tokens),
                )
                return (getattr(resp, "text", "") or "").strip()
            except ClientError as e:
                last_error = e
                if "RESOURCE_EXHAUSTED" in str(e) or getattr(e, "code", None) == 429:
                    time.sleep(0.9)
                    continue
                break
            except Exception as e:
                last_error = e
                break
        logger.error("[LLM] error: %r", last_error)
        return ""

    @staticmethod
    def generate_questions(job_title: str, resume_text: str = "", language: str = "en") -> List[str]:
        prompt = build_question_prompt(job_title, (resume_text or "").strip(), language, settings.QUESTION_COUNT)
        questions = _parse_question_array(QuestionService.generate_content(prompt))
        if not questions:
            logger.warning("question generation returned no usable JSON array; using default question")
            return [default_question(language)]
        return questions
