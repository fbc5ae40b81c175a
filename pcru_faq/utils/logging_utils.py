import logging
import re
from typing import Optional

from pcru_faq.config import Config

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("PCRU_FAQ")

# Suppress noisy external libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("google_genai").setLevel(logging.WARNING)

# Patterns to mask
PATTERNS = {
    "NATIONAL_ID": (r'\b\d{13}\b', '[NATIONAL_ID]'),
    "EMAIL": (r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b', '[EMAIL]'),
    "PHONE": (r'\b0\d{1,2}[-.\s]?\d{3}[-.\s]?\d{3,4}\b', '[PHONE]'),
}

def anonymize_text(text: str) -> str:
    """Mask PII in text"""
    if not isinstance(text, str):
        return str(text)

    for name, (pattern, replacement) in PATTERNS.items():
        text = re.sub(pattern, replacement, text)
    return text

def short_session(session_id: Optional[str]) -> str:
    """First 8 characters of a session id, enough to correlate log lines."""
    value = str(session_id or "")
    return f"{value[:8]}..." if len(value) > 8 else value

def log_audit(action: str, session_id: str, details: str = ""):
    """Log an audit event with anonymization"""
    details_masked = anonymize_text(details)
    logger.info(f"AUDIT | Action: {action} | Session: {short_session(session_id)} | Details: {details_masked}")

def get_logger():
    return logger
