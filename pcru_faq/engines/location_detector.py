"""
Location Detector - is the user asking where something is?
ตรวจจับคำถามเชิงสถานที่/นำทาง จากคำค้นที่ตั้งค่าไว้ หรือพิกัด/ลิงก์แผนที่ในข้อความ
"""
import re
from typing import Iterable, Optional, Pattern, Tuple

from pcru_faq.config import Config
from pcru_faq.schemas import Coordinates
from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()

# lat,lng like "16.422083, 101.152533" (at least 4 fractional digits)
COORDINATE_PAIR_RE = re.compile(r"(-?\d{1,3}\.\d{4,})\s*,\s*(-?\d{1,3}\.\d{4,})")
COORDINATE_SHAPE_RE = re.compile(r"\d{1,3}\.\d{4,},\s*\d{1,3}\.\d{4,}")
MAP_URL_RE = re.compile(r"maps\.app\.goo\.gl|maps\.google|google\.com/maps|goo\.gl/maps", re.IGNORECASE)


def extract_coordinates(
    text: Optional[str],
    lat_range: Tuple[float, float] = Config.LAT_RANGE,
    lng_range: Tuple[float, float] = Config.LNG_RANGE,
) -> Optional[Coordinates]:
    """First coordinate pair in `text` that falls inside the serviceable bounding box."""
    if not text:
        return None
    for match in COORDINATE_PAIR_RE.finditer(str(text)):
        try:
            lat = float(match.group(1))
            lng = float(match.group(2))
        except ValueError:
            continue
        if lat_range[0] <= lat <= lat_range[1] and lng_range[0] <= lng <= lng_range[1]:
            return Coordinates(lat=lat, lng=lng)
    return None


def contains_coordinates(text: Optional[str]) -> bool:
    return bool(text) and COORDINATE_SHAPE_RE.search(str(text)) is not None


def contains_map_url(text: Optional[str]) -> bool:
    return bool(text) and MAP_URL_RE.search(str(text)) is not None


def map_embed_url(lat: float, lng: float) -> str:
    return f"https://www.google.com/maps?q={lat},{lng}&output=embed"


def build_keyword_pattern(keywords: Iterable[str]) -> Optional[Pattern]:
    """
    Word-boundary-anchored alternation of the escaped keywords.

    Lookarounds are used instead of \\b so keywords that start or end with a
    non-word character (Thai tone marks, dots) are anchored the same way.
    """
    escaped = [re.escape(str(k).strip()) for k in keywords if str(k).strip()]
    if not escaped:
        return None
    # Longest first so a keyword is not shadowed by its own prefix.
    escaped.sort(key=len, reverse=True)
    return re.compile(r"(?<!\w)(" + "|".join(escaped) + r")(?!\w)", re.IGNORECASE)


class LocationDetector:
    def __init__(self, keyword_index):
        self.keyword_index = keyword_index
        self._pattern_source: Tuple[str, ...] = ()
        self._pattern: Optional[Pattern] = None

    def _pattern_for(self, keywords: Tuple[str, ...]) -> Optional[Pattern]:
        # Rebuilt only when the cached keyword set actually changes.
        if keywords != self._pattern_source or (keywords and self._pattern is None):
            self._pattern = build_keyword_pattern(keywords)
            self._pattern_source = keywords
        return self._pattern

    async def is_location_query(self, message: Optional[str]) -> bool:
        if not message or not str(message).strip():
            return False

        keywords = tuple(await self.keyword_index.location_keywords())
        if keywords:
            pattern = self._pattern_for(keywords)
            return bool(pattern and pattern.search(message))

        # No configured keywords: coordinates or a maps link still signal intent.
        if contains_coordinates(message):
            return True
        if contains_map_url(message):
            return True
        return False
