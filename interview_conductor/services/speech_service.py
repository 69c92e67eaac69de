# speech_service.py
"""Speech-to-Text for recorded answers (browser blobs transcoded to WAV first)."""

import base64
import io
import logging
from functools import lru_cache
from typing import Optional

from google.cloud import speech_v2
from pydub import AudioSegment

from interview_conductor.config.settings import PROJECT_ID, STT_MODEL, DEFAULT_LANGUAGE

logger = logging.getLogger(__name__)

# Interview language tags -> Google STT language codes
LANGUAGE_CODES = {
    "en": "en-US",
    "ko": "ko-KR",
    "th": "th-TH",
    "zh": "cmn-Hans-CN",
    "yue": "yue-Hant-HK",
}


class TranscodeError(RuntimeError):
    pass


@lru_cache(maxsize=1)
def _stt_client() -> speech_v2.SpeechClient:
    return speech_v2.SpeechClient()


def stt_language_code(language: Optional[str]) -> str:
    """Map an ISO 639-1 style tag to the vendor's variant code.

    Tags that already carry a region (``pt-BR``) are passed through.
    """
    tag = (language or DEFAULT_LANGUAGE).strip()
    if "-" in tag:
        return tag
    return LANGUAGE_CODES.get(tag.lower(), tag.lower())


def detect_audio_signature_prefix(b: bytes) -> str:
    if not b:
        return "empty"
    head = b[:64]
    if head.startswith(b"data:"):
        return "data-uri"
    if head.startswith(b"ID3") or head[:2] in (b"\xff\xfb", b"\xff\xf3", b"\xff\xf2"):
        return "mp3"
    if head[:4] == b"RIFF":
        return "wav"
    if head[:4] == b"OggS":
        return "ogg"
    if b"OpusHead" in head:
        return "opus"
    if b"\x1A\x45\xDF\xA3" in head:
        return "webm"
    if b"ftyp" in head:
        return "mp4"
    return "unknown"


def format_hint_for(audio_bytes: bytes, filename_hint: Optional[str] = None) -> Optional[str]:
    if filename_hint:
        n = str(filename_hint).lower()
        for fmt in ("webm", "ogg", "mp3", "wav"):
            if fmt in n:
                return fmt
        if "mp4" in n or "m4a" in n:
            return "mp4"
    sig = detect_audio_signature_prefix(audio_bytes)
    if sig == "opus":
        return "ogg"
    if sig in ("webm", "ogg", "mp3", "mp4", "wav"):
        return sig
    return None


def transcode_to_wav_bytes(input_bytes: bytes, format_hint: Optional[str] = None, target_rate: int = 16000) -> bytes:
    """
    Convert webm/ogg/mp3/mp4 -> 16-bit PCM WAV bytes (mono, target_rate).
    Requires ffmpeg on PATH. Raises TranscodeError if conversion fails.
    """
    if not input_bytes:
        raise TranscodeError("Empty audio bytes")

    if input_bytes.startswith(b"data:"):
        try:
            _, b64 = input_bytes.split(b",", 1)
            input_bytes = base64.b64decode(b64)
        except ValueError as e:
            raise TranscodeError(f"Invalid data URI: {e}") from e

    audio = None
    last_exc = None
    for fmt in dict.fromkeys([format_hint, "webm", "ogg", "mp3", "mp4", "wav"]):
        if not fmt:
            continue
        try:
            audio = AudioSegment.from_file(io.BytesIO(input_bytes), format=fmt)
            break
        except Exception as e:  # pydub surfaces ffmpeg failures as assorted exception types
            last_exc = e
    if audio is None:
        raise TranscodeError(f"Transcode autodetect failed: {last_exc}")

    audio = audio.set_frame_rate(target_rate).set_channels(1).set_sample_width(2)
    out = io.BytesIO()
    audio.export(out, format="wav")
    return out.getvalue()


class SpeechService:
    """Google Speech-to-Text v2 wrapper."""

    # Synchronous recognize accepts inline payloads up to this size
    MAX_IN_MEMORY_BYTES = 6 * 1024 * 1024

    @staticmethod
    def transcribe_audio(audio_bytes: bytes, language: Optional[str] = None, filename_hint: Optional[str] = None) -> str:
        """
        Transcribe a recorded answer to text.
        - Browser blobs (webm/ogg/opus) are transcoded to WAV PCM first.
        - Returns the trimmed transcript ("" when nothing was recognized).
        - Raises ValueError or RuntimeError on failure.
        """
        if not audio_bytes:
            raise ValueError("Empty audio bytes provided to transcribe_audio")

        sig = detect_audio_signature_prefix(audio_bytes)
        language_code = stt_language_code(language)
        logger.info("transcribe_audio: signature=%s hint=%s size=%d language=%s",
                    sig, filename_hint, len(audio_bytes), language_code)

        wav_bytes = audio_bytes
        if sig != "wav":
            try:
                wav_bytes = transcode_to_wav_bytes(audio_bytes, format_hint=format_hint_for(audio_bytes, filename_hint))
                logger.info("transcribe_audio: transcoded -> wav bytes=%d", len(wav_bytes))
            except TranscodeError:
                logger.exception("STT transcode error; sending original bytes")
                wav_bytes = audio_bytes

        if len(wav_bytes) > SpeechService.MAX_IN_MEMORY_BYTES:
            raise ValueError("Audio too large for synchronous transcription")

        config = speech_v2.RecognitionConfig(
            auto_decoding_config=speech_v2.AutoDetectDecodingConfig(),
            language_codes=[language_code],
            model=STT_MODEL,
            features=speech_v2.RecognitionFeatures(enable_automatic_punctuation=True),
        )
        req = speech_v2.RecognizeRequest(
            recognizer=f"projects/{PROJECT_ID}/locations/global/recognizers/_",
            config=config,
            content=wav_bytes,
        )

        try:
            resp = _stt_client().recognize(request=req)
        except Exception as e:
            logger.exception("STT API error")
            raise RuntimeError(f"Speech-to-text request failed: {e}") from e

        # Long answers come back as several consecutive results
        parts = []
        for result in resp.results:
            if result.alternatives:
                parts.append(result.alternatives[0].transcript.strip())
        return " ".join(p for p in parts if p)

    @staticmethod
    def transcribe_file_storage(file_storage, language: Optional[str] = None) -> str:
        """Convenience wrapper for Flask's request.files['audio'] objects."""
        raw = file_storage.read() if hasattr(file_storage, "read") else b""
        hint = getattr(file_storage, "filename", None) or getattr(file_storage, "mimetype", None)
        return SpeechService.transcribe_audio(raw, language=language, filename_hint=hint)
