"""Prompts and per-language wording for interview question generation."""

LANGUAGE_SETTINGS = {
    "en": {"name": "English", "self_intro": "Tell me about yourself.", "strengths": "What are your strengths?"},
    "th": {"name": "Thai", "self_intro": "กรุณาแนะนำตัวเอง", "strengths": "จุดแข็งของคุณคืออะไร?"},
    "yue": {"name": "Cantonese", "self_intro": "請介紹一下自己", "strengths": "你嘅優點係咩?"},
    "zh": {"name": "Chinese", "self_intro": "请介绍一下自己", "strengths": "你的优点是什么?"},
    "ko": {"name": "Korean", "self_intro": "자기소개를 해주세요", "strengths": "본인의 장점은 무엇인가요?"},
}


def language_settings(language: str) -> dict:
    """Settings for a language tag; unknown tags get English examples and a generic name."""
    tag = (language or "en").strip()
    settings = LANGUAGE_SETTINGS.get(tag)
    if settings:
        return dict(settings, custom=False)
    return dict(LANGUAGE_SETTINGS["en"], name=f"{tag.upper()} language", custom=True)


QUESTION_SYSTEM = (
    "You are an expert interviewer and assessment specialist. Generate interview questions in "
    "{language_name} language. Ensure all questions are culturally appropriate and professionally "
    "written in the target language."
)


def build_question_prompt(job_title: str, resume_text: str, language: str, count: int) -> str:
    s = language_settings(language)
    if s["custom"]:
        general = "self-introduction, strengths"
    else:
        general = f"'{s['self_intro']}', '{s['strengths']}'"

    lines = [QUESTION_SYSTEM.format(language_name=s["name"]), ""]
    if resume_text:
        lines += [
            f"Generate a JSON array of {count} interview questions in {s['name']} for the following job and resume.",
            f"- At least 2 questions must be general (e.g., {general}), and the rest should be tailored to the resume and job.",
        ]
    else:
        lines += [
            f"Generate a JSON array of {count} general interview questions in {s['name']} for the following job.",
            f"- At least 2 questions must be general (e.g., {general}).",
        ]
    lines += [
        f"- Generate ALL questions in {s['name']} language.",
        "- Output only a JSON array of strings, no explanation.",
        f"Job Title: {job_title}",
    ]
    if resume_text:
        lines.append(f"Resume: {resume_text}")
    return "\n".join(lines)
