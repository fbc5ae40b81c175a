"""
Keyword Index - read-through cache over the keyword tables
แคชคำปฏิเสธ (negative keywords), คำพ้อง, คำหยุด และคำค้นหาสถานที่ (TTL 5 นาที)
"""
import json
import time
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from pcru_faq.config import Config
from pcru_faq.exceptions import StoreUnavailable
from pcru_faq.schemas import QuestionAnswerEntry
from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()


def parse_keyword_setting(raw: Optional[str]) -> Tuple[str, ...]:
    """Settings value as a keyword tuple: JSON array when it parses as one, CSV otherwise."""
    if raw is None:
        return ()
    text = str(raw).strip()
    if not text:
        return ()
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None
    if isinstance(parsed, list):
        items = [str(item).strip() for item in parsed]
    else:
        items = [item.strip() for item in text.split(",")]
    return tuple(item for item in items if item)


class TTLCache:
    """
    Single-value cache with lazy refresh.

    The value and its load time live in one tuple that is replaced in a single
    assignment, so readers never observe a half-updated cache and concurrent
    refreshes simply overwrite each other with equally valid reads.
    """

    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_seconds: float,
        empty: Callable[[], Any],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.ttl_seconds = float(ttl_seconds)
        self._loader = loader
        self._empty = empty
        self._clock = clock
        self._snapshot: Optional[Tuple[Any, float]] = None

    def is_fresh(self) -> bool:
        snapshot = self._snapshot
        return snapshot is not None and (self._clock() - snapshot[1]) < self.ttl_seconds

    async def get(self) -> Any:
        snapshot = self._snapshot
        if snapshot is not None and (self._clock() - snapshot[1]) < self.ttl_seconds:
            return snapshot[0]

        try:
            value = await self._loader()
        except StoreUnavailable as e:
            # Keep serving the last good value; with none, run without keywords.
            value = snapshot[0] if snapshot is not None else self._empty()
            logger.warning(f"[KeywordIndex] {self.name} refresh failed, using {'stale' if snapshot else 'empty'} value: {e}")

        self._snapshot = (value, self._clock())
        return value

    def invalidate(self) -> None:
        self._snapshot = None


class KeywordIndex:
    CACHE_NAMES = ("negative_keywords", "synonyms", "stopwords", "location_keywords")

    def __init__(
        self,
        store,
        ttl_seconds: Optional[float] = None,
        env_location_keywords: Optional[List[str]] = None,
        location_setting_key: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        ttl = Config.KEYWORD_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.env_location_keywords = tuple(
            str(k).strip()
            for k in (Config.LOCATION_QUERY_KEYWORDS if env_location_keywords is None else env_location_keywords)
            if str(k).strip()
        )
        self.location_setting_key = location_setting_key or Config.LOCATION_KEYWORDS_SETTING_KEY

        self._caches: Dict[str, TTLCache] = {
            "negative_keywords": TTLCache("negative_keywords", self._load_negative_keywords, ttl, frozenset, clock),
            "synonyms": TTLCache("synonyms", self._load_synonyms, ttl, dict, clock),
            "stopwords": TTLCache("stopwords", self._load_stopwords, ttl, frozenset, clock),
            "location_keywords": TTLCache("location_keywords", self._load_location_keywords, ttl, tuple, clock),
        }

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    async def _load_negative_keywords(self) -> FrozenSet[str]:
        words = await self.store.load_negative_keywords()
        return frozenset(str(w).strip().casefold() for w in words if str(w).strip())

    async def _load_synonyms(self) -> Dict[str, str]:
        raw = await self.store.load_synonyms()
        return {str(k).strip().casefold(): str(v).strip() for k, v in raw.items() if str(k).strip() and str(v).strip()}

    async def _load_stopwords(self) -> FrozenSet[str]:
        words = await self.store.load_stopwords()
        return frozenset(str(w).strip().casefold() for w in words if str(w).strip())

    async def _load_location_keywords(self) -> Tuple[str, ...]:
        # 1) ENV var (comma-separated)
        if self.env_location_keywords:
            logger.info(f"[KeywordIndex] Loaded location keywords from ENV: {list(self.env_location_keywords)}")
            return self.env_location_keywords

        # 2) AppSettings (JSON array or CSV)
        keywords = parse_keyword_setting(await self.store.get_setting(self.location_setting_key))
        if keywords:
            logger.info(f"[KeywordIndex] Loaded location keywords from AppSettings: {list(keywords)}")
            return keywords

        # 3) Nothing configured; detection falls back to coordinates / map links
        logger.warning(
            "[KeywordIndex] No location keywords configured "
            f"(set {self.location_setting_key} env or AppSettings entry)."
        )
        return ()

    # ------------------------------------------------------------------
    # Cached reads
    # ------------------------------------------------------------------

    async def negative_keywords(self) -> FrozenSet[str]:
        return await self._caches["negative_keywords"].get()

    async def synonyms(self) -> Dict[str, str]:
        return await self._caches["synonyms"].get()

    async def stopwords(self) -> FrozenSet[str]:
        return await self._caches["stopwords"].get()

    async def location_keywords(self) -> Tuple[str, ...]:
        return await self._caches["location_keywords"].get()

    async def is_negative(self, token: str) -> bool:
        word = str(token or "").strip().casefold()
        if not word:
            return False
        return word in await self.negative_keywords()

    async def resolve_synonym(self, token: str) -> str:
        word = str(token or "").strip()
        if not word:
            return word
        return (await self.synonyms()).get(word.casefold(), word)

    async def lookup(self, token: str, exclude: Iterable[str] = ()) -> List[QuestionAnswerEntry]:
        """Entries whose keywords contain `token`, best ranked first; an unreachable store yields no entries."""
        word = str(token or "").strip()
        if not word:
            return []
        try:
            return await self.store.find_entries_by_keyword(word, exclude=tuple(exclude or ()))
        except StoreUnavailable as e:
            logger.warning(f"[KeywordIndex] lookup failed for '{word}': {e}")
            return []

    def invalidate(self, name: Optional[str] = None) -> None:
        """Drop one cache (or all); admin tooling calls this after editing keyword tables."""
        if name is None:
            for cache in self._caches.values():
                cache.invalidate()
            return
        if name not in self._caches:
            raise KeyError(f"unknown keyword cache: {name}")
        self._caches[name].invalidate()

    def is_fresh(self, name: str) -> bool:
        return self._caches[name].is_fresh()
