"""
Answer Resolution Policy - decides where each reply comes from

Order of preference for one message:
1. knowledge base entry (AI-polished when the AI answers in time, verbatim otherwise)
2. web search link with an apology that the knowledge base had no answer
3. free-form AI reply built from the session history
4. apology asking the user to contact an officer

Nothing raises past resolve(); every collaborator failure moves on to the next layer.
"""
import asyncio
from typing import Any, Awaitable, Dict, Optional

from pcru_faq.config import Config
from pcru_faq.engines.location_detector import contains_coordinates, map_embed_url
from pcru_faq.engines.text_normalizer import text_normalizer as default_normalizer
from pcru_faq.engines.web_search_engine import NullWebSearch
from pcru_faq.schemas import ResolutionResponse, RetrievalResult
from pcru_faq.utils.logging_utils import get_logger, log_audit, short_session

logger = get_logger()

MISSING_MESSAGE_ERROR = "กรุณาระบุข้อความ (message)"
MISSING_SESSION_ERROR = "กรุณาระบุ sessionId"


def build_fallback_message(link: str, snippet: str = "") -> str:
    message = (
        "ขอโทษค่ะ ไม่พบคำตอบในฐานข้อมูลของเรา ฉันพบบทความหรือแหล่งข้อมูลที่เกี่ยวข้อง: "
        f'<a href="{link}" target="_blank" rel="noopener noreferrer">ดูที่นี่</a>'
    )
    if snippet:
        message += f" - {snippet}"
    return message


def append_coordinate_line(message: str, lat: float, lng: float) -> str:
    """Add a visible coordinate line unless the text already carries a coordinate pair."""
    if contains_coordinates(message):
        return message
    return f"{message}\n\n📍 พิกัด: {lat}, {lng}"


class AnswerResolutionPolicy:
    def __init__(
        self,
        retrieval_engine,
        keyword_index,
        session_store,
        ai_engine=None,
        web_search=None,
        contact_directory=None,
        normalizer=None,
        ai_timeout: Optional[float] = None,
        web_search_timeout: Optional[float] = None,
    ):
        self.retrieval_engine = retrieval_engine
        self.keyword_index = keyword_index
        self.session_store = session_store
        self.ai_engine = ai_engine
        self.web_search = web_search or NullWebSearch()
        self.contact_directory = contact_directory
        self.normalizer = normalizer or default_normalizer
        self.ai_timeout = float(Config.AI_TIMEOUT_SECONDS if ai_timeout is None else ai_timeout)
        self.web_search_timeout = float(
            Config.WEB_SEARCH_TIMEOUT_SECONDS if web_search_timeout is None else web_search_timeout
        )

    async def _bounded(self, awaitable: Awaitable, timeout: float, label: str) -> Any:
        """Await a collaborator call; timeout or error becomes None."""
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Policy] {label} timed out after {timeout:.1f}s")
        except Exception as e:
            logger.warning(f"[Policy] {label} failed: {e}")
        return None

    async def _normalize(self, message: str) -> str:
        stopwords = await self.keyword_index.stopwords()
        synonyms = await self.keyword_index.synonyms()
        return self.normalizer.normalize(message, stopwords=stopwords, synonyms=synonyms)

    async def _contacts(self):
        if self.contact_directory is None:
            return []
        contacts = await self._bounded(self.contact_directory.get_contacts(), self.ai_timeout, "contact lookup")
        return list(contacts or [])

    def _finish(self, session_id: str, response: ResolutionResponse) -> ResolutionResponse:
        history = self.session_store.append(session_id, "assistant", response.message or "")
        response.message_count = len(history)
        log_audit(f"resolve:{response.source}", session_id, response.database_title or "")
        return response

    async def _from_database(self, message: str, session_id: str, category: Optional[str],
                             result: RetrievalResult) -> ResolutionResponse:
        final_answer = result.answer
        enhanced = False
        if self.ai_engine is not None:
            context = {"category": category, "history": self.session_store.get_history(session_id)}
            polished = await self._bounded(
                self.ai_engine.enhance_answer(message, result.answer, context),
                self.ai_timeout,
                "enhance_answer",
            )
            if polished is not None and polished.success and polished.answer.strip():
                final_answer = polished.answer
                enhanced = True

        response = ResolutionResponse(
            success=True,
            message=final_answer,
            source="database",
            enhanced=enhanced,
            strategy=result.strategy,
            database_title=result.title,
            database_answer=result.answer,
        )
        if result.has_coordinates:
            response.message = append_coordinate_line(final_answer, result.lat, result.lng)
            response.database_lat = result.lat
            response.database_lng = result.lng
            response.database_map_url = map_embed_url(result.lat, result.lng)

        self.session_store.remember_title(session_id, result.title)
        logger.info(f"[Policy] Returning DB answer -> {result.title}")
        return response

    async def _from_web_search(self, message: str) -> Optional[ResolutionResponse]:
        found = await self._bounded(self.web_search.search(message), self.web_search_timeout, "web search")
        if found is None or not found.success or not found.link:
            return None
        return ResolutionResponse(
            success=True,
            message=build_fallback_message(found.link, found.snippet),
            source="google-fallback",
            google_link=found.link,
        )

    async def _from_ai(self, message: str, session_id: str, category: Optional[str],
                       context: Optional[Dict[str, Any]]) -> Optional[ResolutionResponse]:
        if self.ai_engine is None:
            return None
        hints: Dict[str, Any] = {"category": category}
        previous_title = self.session_store.last_title(session_id)
        if previous_title:
            hints["databaseTitle"] = previous_title
        hints.update({k: v for k, v in (context or {}).items() if k != "history"})
        reply = await self._bounded(
            self.ai_engine.generate_reply(message, self.session_store.get_history(session_id), hints),
            self.ai_timeout,
            "generate_reply",
        )
        if reply is None or not reply.success or not reply.message.strip():
            return None
        return ResolutionResponse(success=True, message=reply.message, source="ai")

    async def resolve(
        self,
        message: Optional[str],
        session_id: Optional[str],
        category: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> ResolutionResponse:
        raw = message.strip() if isinstance(message, str) else ""
        if not raw:
            return ResolutionResponse(success=False, source="none", error=MISSING_MESSAGE_ERROR)
        if not session_id or not str(session_id).strip():
            return ResolutionResponse(success=False, source="none", error=MISSING_SESSION_ERROR)

        normalized = await self._normalize(raw) or raw
        logger.info(f"[Policy] {short_session(session_id)} asks: \"{normalized}\"")
        self.session_store.append(session_id, "user", raw)

        result = await self.retrieval_engine.search(normalized)

        response = None
        if result.found:
            response = await self._from_database(raw, session_id, category, result)
        if response is None:
            response = await self._from_web_search(raw)
        if response is None:
            response = await self._from_ai(raw, session_id, category, context)
        if response is None:
            log_audit("resolve:none", session_id, raw)
            return ResolutionResponse(
                success=False,
                message=Config.APOLOGY_MESSAGE,
                source="none",
                error="no answer available",
                message_count=self.session_store.message_count(session_id),
            )

        response.contacts = await self._contacts()
        return self._finish(session_id, response)

    def clear_conversation(self, session_id: str) -> Dict[str, Any]:
        cleared = self.session_store.clear(session_id)
        return {"success": True, "cleared": cleared}
