import re
from typing import Dict, Optional

from pcru_faq.config import Config
from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()

_QUOTES_RE = re.compile(r"^[\"'“”‘’]+|[\"'“”‘’]+$")
_PREFIX_RE = re.compile(r"^(ส่วนที่เติม|เติม):?\s*", re.IGNORECASE)
_TRAILING_PUNCT_RE = re.compile(r"[.!?,;:]+$")


def clean_completion(raw: str) -> str:
    """First word of a model reply with quotes, 'เติม:' prefixes and trailing punctuation removed."""
    line = str(raw or "").strip().split("\n")[0]
    line = _PREFIX_RE.sub("", _QUOTES_RE.sub("", line.strip()))
    word = line.split(" ")[0]
    word = _QUOTES_RE.sub("", word)
    word = _TRAILING_PUNCT_RE.sub("", word)
    return word.strip()


class AutocompleteEngine:
    """Type-ahead suggestion: configured quick matches first, then one AI-completed word."""

    def __init__(
        self,
        ai_engine=None,
        quick_suggestions: Optional[Dict[str, str]] = None,
        max_tokens: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        max_length: Optional[int] = None,
    ):
        self.ai_engine = ai_engine
        self.quick_suggestions = dict(
            Config.AUTOCOMPLETE_QUICK_SUGGESTIONS if quick_suggestions is None else quick_suggestions
        )
        self.max_tokens = int(max_tokens or Config.AUTOCOMPLETE_MAX_TOKENS)
        self.timeout_ms = int(timeout_ms or Config.AUTOCOMPLETE_BACKEND_TIMEOUT_MS)
        self.max_length = int(max_length or Config.AUTOCOMPLETE_MAX_LENGTH)

    def quick_match(self, text: str) -> Optional[str]:
        folded = text.casefold()
        for prefix, suggestion in self.quick_suggestions.items():
            if folded.startswith(str(prefix).casefold()):
                return str(suggestion)
        return None

    async def suggest(self, text: Optional[str]) -> str:
        if not isinstance(text, str) or len(text.strip()) < 2:
            return ""
        user_text = text.strip()

        quick = self.quick_match(user_text)
        if quick is not None:
            return quick

        if self.ai_engine is None:
            return ""

        prompt = f"""เติมคำถัดไป (เพียง 1 คำเท่านั้น):
"{user_text}"

ตอบเฉพาะคำที่เติม ห้ามตอบเป็นประโยค"""
        result = await self.ai_engine.chat(prompt, max_tokens=self.max_tokens, timeout=self.timeout_ms / 1000.0)
        if not result.success or not result.message:
            logger.debug(f"[Autocomplete] No completion ({result.error_type})")
            return ""

        suggestion = user_text + clean_completion(result.message)
        return suggestion[: self.max_length]
