import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from pcru_faq.config import Config
from pcru_faq.schemas import ChatTurn
from pcru_faq.utils.logging_utils import get_logger, short_session

logger = get_logger()


class ConversationStateStore:
    """
    In-memory conversation history per session.

    A session idle for longer than `idle_timeout` is dropped on its next access
    and by the periodic sweeper, whichever comes first. Nothing is persisted.
    """

    def __init__(
        self,
        max_history: Optional[int] = None,
        idle_timeout: Optional[float] = None,
        sweep_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_history = max(1, int(Config.SESSION_MAX_HISTORY if max_history is None else max_history))
        self.idle_timeout = float(Config.SESSION_IDLE_TIMEOUT_SECONDS if idle_timeout is None else idle_timeout)
        self.sweep_interval = float(Config.SESSION_SWEEP_INTERVAL_SECONDS if sweep_interval is None else sweep_interval)
        self._clock = clock
        self._history: Dict[str, Deque[Dict[str, str]]] = {}
        self._last_activity: Dict[str, float] = {}
        self._last_title: Dict[str, str] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def _evict(self, session_id: str) -> bool:
        # pop() with a default keeps a second eviction a no-op
        removed = self._history.pop(session_id, None) is not None
        removed = self._last_activity.pop(session_id, None) is not None or removed
        self._last_title.pop(session_id, None)
        return removed

    def _is_expired(self, session_id: str, now: float) -> bool:
        last = self._last_activity.get(session_id)
        return last is not None and (now - last) > self.idle_timeout

    def _validate(self, session_id: str) -> bool:
        """False (after evicting) when the session has gone idle past the timeout."""
        if self._is_expired(session_id, self._clock()):
            self._evict(session_id)
            logger.info(f"[Session] {short_session(session_id)} expired")
            return False
        return True

    def append(self, session_id: str, role: str, content: str) -> List[Dict[str, str]]:
        if not session_id or not content:
            return self.get_history(session_id) if session_id else []

        turn = ChatTurn(role=role, content=content)
        self._validate(session_id)
        history = self._history.get(session_id)
        if history is None:
            history = deque(maxlen=self.max_history)
            self._history[session_id] = history

        # deque(maxlen) drops the oldest turn once full
        history.append(turn.model_dump())
        self._last_activity[session_id] = self._clock()

        logger.debug(f"[Session] Added message to {short_session(session_id)} (total: {len(history)})")
        return list(history)

    def get_history(self, session_id: str) -> List[Dict[str, str]]:
        if not session_id:
            return []
        self._validate(session_id)
        return list(self._history.get(session_id, []))

    def message_count(self, session_id: str) -> int:
        return len(self.get_history(session_id))

    def remember_title(self, session_id: str, title: str):
        """Keep the title of the last knowledge-base answer given in this session."""
        if session_id and title and self._validate(session_id):
            self._last_title[session_id] = title

    def last_title(self, session_id: str) -> Optional[str]:
        if not session_id or not self._validate(session_id):
            return None
        return self._last_title.get(session_id)

    def clear(self, session_id: str) -> bool:
        removed = self._evict(session_id)
        logger.info(f"[Session] Cleared history for {short_session(session_id)}")
        return removed

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [sid for sid in list(self._last_activity) if self._is_expired(sid, now)]
        cleaned = sum(1 for sid in expired if self._evict(sid))
        if cleaned > 0:
            logger.info(f"[Session] Cleaned up {cleaned} expired sessions")
        return cleaned

    def stats(self) -> Dict[str, int]:
        return {
            "session_count": len(self._history),
            "message_count": sum(len(h) for h in self._history.values()),
        }

    # ------------------------------------------------------------------
    # Background sweeper
    # ------------------------------------------------------------------

    async def _sweep_forever(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.evict_expired()

    def start_sweeper(self) -> asyncio.Task:
        """Start the periodic sweep on the running loop (idempotent)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        return self._sweeper

    async def stop_sweeper(self):
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
