import asyncio
import re
from typing import Dict, List, Optional

import pytest

from pcru_faq.core.session import ConversationStateStore
from pcru_faq.engines.answer_policy import AnswerResolutionPolicy
from pcru_faq.engines.contact_engine import ContactDirectory
from pcru_faq.engines.keyword_index import KeywordIndex
from pcru_faq.engines.location_detector import LocationDetector
from pcru_faq.engines.retrieval_engine import RetrievalEngine
from pcru_faq.exceptions import StoreUnavailable
from pcru_faq.schemas import AIChatResult, Contact, EnhanceResult, QuestionAnswerEntry, WebSearchResult

MAP_OR_COORDS = re.compile(r"maps\.app\.goo\.gl|maps\.google|goo\.gl/maps|google\.com/maps|[0-9]+\.[0-9]+,\s*[0-9]+\.[0-9]+", re.I)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeKnowledgeBase:
    """In-memory stand-in for AsyncKnowledgeBaseEngine with the same query semantics."""

    def __init__(self):
        self.entries: Dict[int, QuestionAnswerEntry] = {}
        self.keywords: Dict[int, List[str]] = {}
        self.negative_keywords: List[str] = []
        self.stopwords: List[str] = []
        self.synonyms: Dict[str, str] = {}
        self.settings: Dict[str, str] = {}
        self.contacts: List[Contact] = []
        self.fail = False
        self.calls: Dict[str, int] = {}

    def add(self, entry_id: int, title: str, body: str, keywords=()):
        self.entries[entry_id] = QuestionAnswerEntry(id=entry_id, title=title, body=body)
        self.keywords[entry_id] = list(keywords)

    def _hit(self, name: str):
        self.calls[name] = self.calls.get(name, 0) + 1
        if self.fail:
            raise StoreUnavailable(f"{name} failed")

    async def find_entries_by_keyword(self, term: str, limit: int = 200, exclude=()) -> List[QuestionAnswerEntry]:
        self._hit("find_entries_by_keyword")
        needle = term.casefold()
        excluded = {w.casefold() for w in exclude}
        found = []
        for entry_id in sorted(self.entries):
            matched = sorted({
                k for k in self.keywords[entry_id]
                if needle in k.casefold() and k.casefold() not in excluded
            })
            if matched:
                found.append(self.entries[entry_id].model_copy(update={"keywords": matched}))
        found.sort(key=lambda e: (-len(e.keywords), e.id))
        return found[:limit]

    async def find_entries_by_text(self, term: str, limit: int = 1) -> List[QuestionAnswerEntry]:
        self._hit("find_entries_by_text")
        needle = term.casefold()
        found = [
            self.entries[i] for i in sorted(self.entries)
            if needle in f"{self.entries[i].title} {self.entries[i].body}".casefold()
        ]
        return found[:limit]

    async def find_navigation_entries(self, title_terms, limit: int = 1) -> List[QuestionAnswerEntry]:
        self._hit("find_navigation_entries")
        found = [
            self.entries[i] for i in sorted(self.entries, reverse=True)
            if any(t.casefold() in self.entries[i].title.casefold() for t in title_terms)
            and MAP_OR_COORDS.search(self.entries[i].body)
        ]
        return found[:limit]

    async def get_setting(self, key: str) -> Optional[str]:
        self._hit("get_setting")
        return self.settings.get(key)

    async def load_negative_keywords(self) -> List[str]:
        self._hit("load_negative_keywords")
        return list(self.negative_keywords)

    async def load_stopwords(self) -> List[str]:
        self._hit("load_stopwords")
        return list(self.stopwords)

    async def load_synonyms(self) -> Dict[str, str]:
        self._hit("load_synonyms")
        return dict(self.synonyms)

    async def get_default_contacts(self) -> List[Contact]:
        self._hit("get_default_contacts")
        return list(self.contacts)


class FakeAI:
    def __init__(self, enhance=None, reply=None, chat=None, delay: float = 0.0):
        self.enhance = enhance if enhance is not None else EnhanceResult(success=False)
        self.reply = reply if reply is not None else AIChatResult(success=False, error_type="ai_error")
        self.chat_result = chat if chat is not None else AIChatResult(success=False, error_type="ai_error")
        self.delay = delay
        self.calls: List[tuple] = []

    async def _pause(self):
        if self.delay:
            await asyncio.sleep(self.delay)

    async def enhance_answer(self, question, base_answer, context=None):
        self.calls.append(("enhance_answer", question, base_answer, context))
        await self._pause()
        return self.enhance

    async def generate_reply(self, message, history=None, context=None):
        self.calls.append(("generate_reply", message, list(history or []), context))
        await self._pause()
        return self.reply

    async def chat(self, prompt, max_tokens=None, timeout=None):
        self.calls.append(("chat", prompt, max_tokens, timeout))
        await self._pause()
        return self.chat_result


class FakeWebSearch:
    def __init__(self, result=None, delay: float = 0.0):
        self.result = result if result is not None else WebSearchResult(success=False)
        self.delay = delay
        self.queries: List[str] = []

    async def search(self, query):
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kb():
    return FakeKnowledgeBase()


@pytest.fixture
def keyword_index(kb, clock):
    return KeywordIndex(kb, ttl_seconds=300, env_location_keywords=[], clock=clock)


@pytest.fixture
def retrieval(kb, keyword_index):
    return RetrievalEngine(
        kb,
        keyword_index,
        LocationDetector(keyword_index),
        navigation_title_terms=["พิกัด", "นำทาง", "ที่ตั้ง", "แผนที่", "ตึก", "อาคาร"],
        particles=["มอ"],
    )


@pytest.fixture
def sessions(clock):
    return ConversationStateStore(max_history=20, idle_timeout=1800, clock=clock)


@pytest.fixture
def make_policy(kb, keyword_index, retrieval, sessions):
    def _make(ai=None, web=None, ai_timeout=1.0, web_search_timeout=1.0):
        return AnswerResolutionPolicy(
            retrieval,
            keyword_index,
            sessions,
            ai_engine=ai,
            web_search=web,
            contact_directory=ContactDirectory(kb),
            ai_timeout=ai_timeout,
            web_search_timeout=web_search_timeout,
        )
    return _make
