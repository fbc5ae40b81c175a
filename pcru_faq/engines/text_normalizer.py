"""
Text Normalizer - canonical form of raw chat input
ทำความสะอาดข้อความก่อนค้นหา: ตัดช่องว่าง, อักขระที่มองไม่เห็น, แปลงวันที่ พ.ศ. -> ค.ศ.,
ตัดคำหยุด (stop-words) และแทนคำพ้อง (synonyms)
"""
import re
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()

ZERO_WIDTH_RE = re.compile("[\\u200b-\\u200d\\ufeff]")
WHITESPACE_RE = re.compile(r"\s+")

BUDDHIST_ERA_OFFSET = 543
BUDDHIST_ERA_RANGE = (2400, 3000)

THAI_MONTHS = {
    "ม.ค.": "01", "ก.พ.": "02", "มี.ค.": "03", "เม.ย.": "04", "พ.ค.": "05", "มิ.ย.": "06",
    "ก.ค.": "07", "ส.ค.": "08", "ก.ย.": "09", "ต.ค.": "10", "พ.ย.": "11", "ธ.ค.": "12",
}

# Whole-value form: DD/MM/YYYY or YYYY-MM-DD, anything may trail (e.g. a time).
_DATE_VALUE_RE = re.compile(r"^(\d{1,4})[/\-.\s]+(\d{1,2})[/\-.\s]+(\d{1,4})")

# Embedded form inside free text. Both separators must agree and the groups
# may not touch other digits, so decimals and phone numbers are left alone.
# A two-digit year needs / or -; dotted or spaced dates carry a four-digit year.
_EMBEDDED_DATE_RE = re.compile(
    r"(?<![\d.])(?:"
    r"(?:\d{4}|\d{1,2})([/\-])\d{1,2}\1(?:\d{4}|\d{2})"
    r"|\d{4}(\.|\s+)\d{1,2}\2\d{1,2}"
    r"|\d{1,2}(\.|\s+)\d{1,2}\3\d{4}"
    r")(?!\.?\d)"
)
_EMBEDDED_THAI_DATE_RE = re.compile(
    r"(?<!\d)(\d{1,2})\s*("
    + "|".join(re.escape(m) for m in THAI_MONTHS)
    + r")\s*(\d{4}|\d{2})(?!\d)"
)

_FALLBACK_FORMATS = (
    "%d %B %Y",
    "%d %b %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d-%b-%Y",
    "%Y/%m/%d %H:%M:%S",
)


def strip_invisible(text: str) -> str:
    return ZERO_WIDTH_RE.sub("", text)


def normalize_year(year: int) -> int:
    """Convert a Buddhist-era year to Common era; other years pass through."""
    if BUDDHIST_ERA_RANGE[0] <= year <= BUDDHIST_ERA_RANGE[1]:
        logger.debug(f"[TextNormalizer] Converting BE year {year} -> {year - BUDDHIST_ERA_OFFSET}")
        return year - BUDDHIST_ERA_OFFSET
    return year


def _replace_thai_months(text: str) -> str:
    for abbr, num in THAI_MONTHS.items():
        text = text.replace(abbr, f"/{num}/")
    return text


def _fallback_parse(text: str) -> Optional[str]:
    """Generic parser for shapes the numeric pattern does not cover."""
    candidates: List[datetime] = []
    try:
        candidates.append(datetime.fromisoformat(text))
    except ValueError:
        pass
    if not candidates:
        cleaned = WHITESPACE_RE.sub(" ", text).strip()
        for fmt in _FALLBACK_FORMATS:
            try:
                candidates.append(datetime.strptime(cleaned, fmt))
                break
            except ValueError:
                continue
    if not candidates:
        return None

    parsed = candidates[0].date()
    year = normalize_year(parsed.year)
    if year != parsed.year:
        try:
            parsed = parsed.replace(year=year)
        except ValueError:
            # 29 Feb in a BE leap year that is not a CE leap year
            return None
    return parsed.isoformat()


def to_iso_date(value) -> Optional[str]:
    """
    Parse a date-like value into YYYY-MM-DD.

    Accepts DD/MM/YYYY, YYYY-MM-DD (separators / - . or spaces), Thai month
    abbreviations and Buddhist-era years. Returns None when the value is not
    a real calendar date; never raises.
    """
    if value is None:
        return None
    text = strip_invisible(str(value)).strip()
    if not text:
        return None

    text = _replace_thai_months(text)

    match = _DATE_VALUE_RE.match(text)
    if match:
        v1, v2, v3 = (int(g) for g in match.groups())

        # Year-first only when the first group cannot be a day.
        if v1 > 31:
            year, month, day = v1, v2, v3
        else:
            day, month, year = v1, v2, v3

        if year < 100:
            year += 2000
        year = normalize_year(year)

        if 1 <= month <= 12 and 1 <= day <= 31:
            try:
                return date(year, month, day).isoformat()
            except ValueError:
                pass

    try:
        return _fallback_parse(text)
    except (ValueError, OverflowError):
        return None


class TextNormalizer:
    """Canonicalizes user messages before retrieval."""

    def canonicalize_dates(self, text: str) -> str:
        """Rewrite embedded date tokens as ISO dates; unparseable ones stay as typed."""

        def _thai(match: re.Match) -> str:
            day, month_abbr, year = match.groups()
            iso = to_iso_date(f"{day}/{THAI_MONTHS[month_abbr]}/{year}")
            return iso or match.group(0)

        def _numeric(match: re.Match) -> str:
            iso = to_iso_date(match.group(0))
            return iso or match.group(0)

        text = _EMBEDDED_THAI_DATE_RE.sub(_thai, text)
        return _EMBEDDED_DATE_RE.sub(_numeric, text)

    def find_dates(self, text: str) -> List[str]:
        if not isinstance(text, str):
            return []
        cleaned = strip_invisible(text)
        found = []
        for match in _EMBEDDED_THAI_DATE_RE.finditer(cleaned):
            day, month_abbr, year = match.groups()
            iso = to_iso_date(f"{day}/{THAI_MONTHS[month_abbr]}/{year}")
            if iso:
                found.append(iso)
        for match in _EMBEDDED_DATE_RE.finditer(cleaned):
            iso = to_iso_date(match.group(0))
            if iso:
                found.append(iso)
        return found

    def normalize(
        self,
        raw,
        stopwords: Iterable[str] = (),
        synonyms: Optional[Dict[str, str]] = None,
    ) -> str:
        if not isinstance(raw, str):
            return ""

        text = WHITESPACE_RE.sub(" ", strip_invisible(raw)).strip()
        if not text:
            return ""

        text = self.canonicalize_dates(text)

        tokens = text.split(" ")
        stop_set = {str(s).strip().casefold() for s in (stopwords or []) if str(s).strip()}
        kept = [t for t in tokens if t.casefold() not in stop_set]
        if not kept:
            # A message made only of stop-words is still a question.
            kept = tokens

        synonym_map = {
            str(k).strip().casefold(): str(v).strip()
            for k, v in (synonyms or {}).items()
            if str(k).strip() and str(v).strip()
        }
        if synonym_map:
            kept = [synonym_map.get(t.casefold(), t) for t in kept]

        return " ".join(kept)


# Stateless, safe to share
text_normalizer = TextNormalizer()
