from dataclasses import dataclass
from typing import Optional

from pcru_faq.config import Config
from pcru_faq.core.session import ConversationStateStore
from pcru_faq.engines.ai_engine_async import AsyncAIEngine
from pcru_faq.engines.answer_policy import AnswerResolutionPolicy
from pcru_faq.engines.autocomplete_engine import AutocompleteEngine
from pcru_faq.engines.contact_engine import ContactDirectory
from pcru_faq.engines.db_engine_async import AsyncKnowledgeBaseEngine
from pcru_faq.engines.keyword_index import KeywordIndex
from pcru_faq.engines.location_detector import LocationDetector
from pcru_faq.engines.retrieval_engine import RetrievalEngine
from pcru_faq.engines.web_search_engine import GoogleSearchFallback, NullWebSearch


@dataclass
class Engines:
    store: AsyncKnowledgeBaseEngine
    keyword_index: KeywordIndex
    location_detector: LocationDetector
    retrieval: RetrievalEngine
    sessions: ConversationStateStore
    ai: AsyncAIEngine
    contacts: ContactDirectory
    policy: AnswerResolutionPolicy
    autocomplete: AutocompleteEngine


def build_engines(store, ai=None, web_search=None, config=Config) -> Engines:
    """Wire the services around an already constructed store."""
    keyword_index = KeywordIndex(store, ttl_seconds=config.KEYWORD_CACHE_TTL_SECONDS)
    location_detector = LocationDetector(keyword_index)
    retrieval = RetrievalEngine(store, keyword_index, location_detector)
    sessions = ConversationStateStore()
    ai = ai if ai is not None else AsyncAIEngine()
    if web_search is None:
        web_search = GoogleSearchFallback() if config.WEB_SEARCH_ENABLED else NullWebSearch()
    contacts = ContactDirectory(store)
    policy = AnswerResolutionPolicy(
        retrieval,
        keyword_index,
        sessions,
        ai_engine=ai,
        web_search=web_search,
        contact_directory=contacts,
    )
    return Engines(
        store=store,
        keyword_index=keyword_index,
        location_detector=location_detector,
        retrieval=retrieval,
        sessions=sessions,
        ai=ai,
        contacts=contacts,
        policy=policy,
        autocomplete=AutocompleteEngine(ai),
    )


async def init_engines(config=Config, start_sweeper: bool = True) -> Engines:
    """Connect the knowledge base and start background housekeeping."""
    store = AsyncKnowledgeBaseEngine(config.MONGO_URI, config.MONGO_DB_NAME)
    await store.connect()
    engines = build_engines(store, config=config)
    if start_sweeper:
        engines.sessions.start_sweeper()
    print(f"[Engines] Ready (db connected: {store.is_connected}, ai: {engines.ai.available})")
    return engines


async def shutdown_engines(engines: Optional[Engines]) -> None:
    if engines is None:
        return
    await engines.sessions.stop_sweeper()
    engines.store.close()
    print("[Engines] Shut down")
