import os
import json
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default

def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default

def _env_csv(name: str, default: str = "") -> list:
    raw = os.getenv(name, default) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]

def _env_json_dict(name: str) -> dict:
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        print(f"Warning: {name} is not valid JSON, ignoring it")
        return {}
    return parsed if isinstance(parsed, dict) else {}

class Config:
    # AI Environment
    # Keep backward compatibility with older GOOGLE_API_KEY naming.
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    AI_TIMEOUT_SECONDS = _env_float("AI_TIMEOUT_SECONDS", 8.0)
    AI_MAX_TOKENS = _env_int("AI_MAX_TOKENS", 1024)

    # Knowledge base
    MONGO_URI = os.getenv("MONGO_URI")
    MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "pcru_auto_response")

    # Web search fallback
    WEB_SEARCH_ENABLED = _env_bool("WEB_SEARCH_ENABLED", True)
    WEB_SEARCH_TIMEOUT_SECONDS = _env_float("WEB_SEARCH_TIMEOUT_SECONDS", 4.0)

    # Keyword caches
    KEYWORD_CACHE_TTL_SECONDS = _env_float("KEYWORD_CACHE_TTL_SECONDS", 300.0)
    # CSV; when set it overrides the AppSettings value. Empty is a valid state.
    LOCATION_QUERY_KEYWORDS = _env_csv("LOCATION_QUERY_KEYWORDS")
    LOCATION_KEYWORDS_SETTING_KEY = "LOCATION_QUERY_KEYWORDS"

    # Retrieval tuning
    NAVIGATION_TITLE_TERMS = _env_csv(
        "NAVIGATION_TITLE_TERMS", "พิกัด,นำทาง,ที่ตั้ง,แผนที่,ตึก,อาคาร"
    )
    WORD_FALLBACK_PARTICLES = _env_csv("WORD_FALLBACK_PARTICLES", "มอ")

    # Conversation sessions
    SESSION_IDLE_TIMEOUT_SECONDS = _env_float("SESSION_IDLE_TIMEOUT_SECONDS", 30 * 60)
    SESSION_MAX_HISTORY = max(1, _env_int("SESSION_MAX_HISTORY", 20))
    SESSION_SWEEP_INTERVAL_SECONDS = _env_float("SESSION_SWEEP_INTERVAL_SECONDS", 5 * 60)

    # Autocomplete
    AUTOCOMPLETE_QUICK_SUGGESTIONS = _env_json_dict("AUTOCOMPLETE_QUICK_SUGGESTIONS")
    AUTOCOMPLETE_MAX_TOKENS = max(1, _env_int("AUTOCOMPLETE_MAX_TOKENS", 1))
    AUTOCOMPLETE_BACKEND_TIMEOUT_MS = max(100, _env_int("AUTOCOMPLETE_BACKEND_TIMEOUT_MS", 1500))
    AUTOCOMPLETE_MAX_LENGTH = 20

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Geographic bounding box for trusted coordinates (Thailand)
    LAT_RANGE = (5.0, 21.0)
    LNG_RANGE = (97.0, 106.0)

    # Constants
    APOLOGY_MESSAGE = "ขอโทษค่ะ ไม่สามารถตอบคำถามนี้ได้ในขณะนี้ กรุณาติดต่อเจ้าหน้าที่มหาวิทยาลัยโดยตรง"
