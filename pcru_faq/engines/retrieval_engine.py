"""
Retrieval Engine - ordered multi-strategy search over the FAQ knowledge base

Strategies run from most precise to most permissive and the first one that
produces an entry wins:
1. location  - navigation entries (only for location-style questions)
2. keyword   - keywords containing the whole message, ranked by match count
3. word      - the same keyword query per word, first matching word wins
4. text      - substring of title + body
"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, List, Optional, Sequence, Tuple

from pcru_faq.config import Config
from pcru_faq.exceptions import StoreUnavailable
from pcru_faq.schemas import QuestionAnswerEntry, RetrievalResult
from pcru_faq.engines.location_detector import extract_coordinates
from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()


@dataclass
class SearchContext:
    message: str
    store: object
    keyword_index: object
    location_detector: object
    navigation_title_terms: Sequence[str] = ()
    particles: FrozenSet[str] = frozenset()
    negative_keywords: FrozenSet[str] = frozenset()
    trace: List[str] = field(default_factory=list)


Strategy = Callable[[SearchContext], Awaitable[Optional[RetrievalResult]]]


def to_result(entry: QuestionAnswerEntry, strategy: str, keywords: Optional[List[str]] = None,
              matched_token: Optional[str] = None) -> RetrievalResult:
    """Build a found result, attaching coordinates from the body (else the title)."""
    coords = extract_coordinates(entry.body) or extract_coordinates(entry.title)
    return RetrievalResult(
        found=True,
        entry_id=entry.id,
        title=entry.title,
        answer=entry.body,
        keywords=list(entry.keywords if keywords is None else keywords),
        lat=coords.lat if coords else None,
        lng=coords.lng if coords else None,
        strategy=strategy,
        matched_token=matched_token,
    )


def rank_keyword_hits(
    entries: List[QuestionAnswerEntry],
    negative_keywords: FrozenSet[str],
) -> Optional[Tuple[QuestionAnswerEntry, List[str]]]:
    """
    Best entry by distinct non-negative keyword count; lowest id breaks ties.

    Entries whose only matching keywords are negative ones are not candidates.
    """
    best: Optional[Tuple[QuestionAnswerEntry, List[str]]] = None
    best_key = None
    for entry in entries:
        scored = sorted({k for k in entry.keywords if k.strip().casefold() not in negative_keywords})
        if not scored:
            continue
        key = (-len(scored), entry.id)
        if best_key is None or key < best_key:
            best_key = key
            best = (entry, scored)
    return best


def candidate_words(message: str, particles: FrozenSet[str], negative_keywords: FrozenSet[str]) -> List[str]:
    """Whitespace tokens worth a keyword lookup, in message order."""
    words = []
    for word in message.split():
        folded = word.casefold()
        if len(word) <= 1:
            continue
        if folded in particles or folded in negative_keywords:
            continue
        words.append(word)
    return words


async def location_strategy(ctx: SearchContext) -> Optional[RetrievalResult]:
    if not await ctx.location_detector.is_location_query(ctx.message):
        return None
    logger.info("[Retrieval] Location query detected - running navigation-focused search")
    entries = await ctx.store.find_navigation_entries(ctx.navigation_title_terms, limit=1)
    if not entries:
        return None
    return to_result(entries[0], "location")


async def _keyword_match(ctx: SearchContext, term: str) -> Optional[Tuple[QuestionAnswerEntry, List[str]]]:
    entries = await ctx.keyword_index.lookup(term, exclude=ctx.negative_keywords)
    return rank_keyword_hits(entries, ctx.negative_keywords)


async def keyword_strategy(ctx: SearchContext) -> Optional[RetrievalResult]:
    hit = await _keyword_match(ctx, ctx.message)
    if not hit:
        return None
    entry, keywords = hit
    return to_result(entry, "keyword", keywords)


async def word_strategy(ctx: SearchContext) -> Optional[RetrievalResult]:
    # First matching word wins; later words are never merged in.
    for word in candidate_words(ctx.message, ctx.particles, ctx.negative_keywords):
        hit = await _keyword_match(ctx, word)
        if hit:
            entry, keywords = hit
            return to_result(entry, "word", keywords, matched_token=word)
    return None


async def text_strategy(ctx: SearchContext) -> Optional[RetrievalResult]:
    entries = await ctx.store.find_entries_by_text(ctx.message, limit=1)
    if not entries:
        return None
    return to_result(entries[0], "text")


DEFAULT_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("location", location_strategy),
    ("keyword", keyword_strategy),
    ("word", word_strategy),
    ("text", text_strategy),
)


async def first_match(strategies: Sequence[Tuple[str, Strategy]], ctx: SearchContext) -> RetrievalResult:
    """Run strategies in order and stop at the first one that finds an entry."""
    for name, strategy in strategies:
        ctx.trace.append(name)
        result = await strategy(ctx)
        if result is not None and result.found:
            logger.info(f"[Retrieval] Strategy '{name}' found: \"{result.title}\"")
            return result
        logger.debug(f"[Retrieval] Strategy '{name}' found nothing")
    return RetrievalResult(found=False)


class RetrievalEngine:
    def __init__(
        self,
        store,
        keyword_index,
        location_detector,
        navigation_title_terms: Optional[Sequence[str]] = None,
        particles: Optional[Sequence[str]] = None,
        strategies: Optional[Sequence[Tuple[str, Strategy]]] = None,
    ):
        self.store = store
        self.keyword_index = keyword_index
        self.location_detector = location_detector
        self.navigation_title_terms = tuple(
            Config.NAVIGATION_TITLE_TERMS if navigation_title_terms is None else navigation_title_terms
        )
        self.particles = frozenset(
            str(p).strip().casefold()
            for p in (Config.WORD_FALLBACK_PARTICLES if particles is None else particles)
            if str(p).strip()
        )
        self.strategies = tuple(strategies or DEFAULT_STRATEGIES)

    async def search(self, normalized_message: str) -> RetrievalResult:
        message = str(normalized_message or "").strip()
        if not message:
            return RetrievalResult(found=False)

        logger.info(f"[Retrieval] Searching database for: \"{message}\"")
        ctx = SearchContext(
            message=message,
            store=self.store,
            keyword_index=self.keyword_index,
            location_detector=self.location_detector,
            navigation_title_terms=self.navigation_title_terms,
            particles=self.particles,
            negative_keywords=await self.keyword_index.negative_keywords(),
        )
        try:
            result = await first_match(self.strategies, ctx)
        except StoreUnavailable as e:
            logger.warning(f"[Retrieval] Database search failed: {e}")
            return RetrievalResult(found=False)

        if not result.found:
            logger.info(f"[Retrieval] All strategies failed for: \"{message}\"")
        return result
