import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)

# Flask / database
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///interviews.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Google Cloud Configuration
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "aids-476019")
LOCATION = os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-lite")
USE_VERTEX = os.getenv("USE_VERTEX_AI", "0")

# Speech Configuration
STT_MODEL = os.getenv("STT_MODEL", "latest_long")
DEFAULT_LANGUAGE = "en"

# Interview timing (seconds)
PREPARE_SECONDS = 30
RECORD_SECONDS = 60
RECORDER_TIMESLICE_MS = 1000
TRANSCRIBE_FLUSH_DELAY_SEC = 0.5

# Captures below this size are treated as silence
MIN_AUDIO_BYTES = 1024

# Question generation
QUESTION_COUNT = 5

# Browser round-trips (enumerate_devices / get_user_media)
MEDIA_CALL_TIMEOUT_SEC = int(os.getenv("MEDIA_CALL_TIMEOUT_SEC", "30"))

# API Configuration
API_KEY = os.getenv("GOOGLE_GENAI_API_KEY") or os.getenv("GOOGLE_API_KEY")

def validate_config():
    """Validate required configuration."""
    if USE_VERTEX != "1" and not API_KEY:
        raise RuntimeError("Set GOOGLE_GENAI_API_KEY/GOOGLE_API_KEY or set USE_VERTEX_AI=1 with ADC.")
