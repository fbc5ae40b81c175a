import os
import re
import json
import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from google import genai
from google.genai import types
from pcru_faq.config import Config
from pcru_faq.exceptions import UpstreamError, UpstreamTimeout
from pcru_faq.schemas import AIChatResult, EnhanceResult
from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()

# ============================================================
# ASYNC RESILIENCE CONFIGURATION
# ============================================================

def _env_int(name: str, default: int) -> int:
    try: return int(os.getenv(name, str(default)))
    except (TypeError, ValueError): return default

def _env_float(name: str, default: float) -> float:
    try: return float(os.getenv(name, str(default)))
    except (TypeError, ValueError): return default

CIRCUIT_FAILURE_THRESHOLD = _env_int("AI_CIRCUIT_FAILURE_THRESHOLD", 8)
CIRCUIT_RECOVERY_TIMEOUT = _env_int("AI_CIRCUIT_RECOVERY_TIMEOUT", 8)
CIRCUIT_HALF_OPEN_MAX_CALLS = _env_int("AI_CIRCUIT_HALF_OPEN_MAX_CALLS", 3)

RATE_LIMIT_RPM = _env_int("AI_RATE_LIMIT_RPM", 120)
RATE_LIMIT_TOKENS = _env_int("AI_RATE_LIMIT_TOKENS", max(30, RATE_LIMIT_RPM))
RATE_LIMIT_REFILL_RATE = max(_env_float("AI_RATE_LIMIT_REFILL_RATE", RATE_LIMIT_RPM / 60.0), 0.1)
RATE_LIMIT_WAIT_SECONDS = _env_float("AI_RATE_LIMIT_WAIT_SECONDS", 1.0)

class AsyncCircuitBreaker:
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __init__(self, failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
                 recovery_timeout: float = CIRCUIT_RECOVERY_TIMEOUT,
                 half_open_max_calls: int = CIRCUIT_HALF_OPEN_MAX_CALLS):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self.state = self.CLOSED
        self.failure_count = 0
        self.last_failure_time = None
        self.half_open_calls = 0
        self._lock = asyncio.Lock()

    async def can_execute(self) -> bool:
        async with self._lock:
            if self.state == self.CLOSED:
                return True
            elif self.state == self.OPEN:
                if self.last_failure_time and \
                   datetime.now() - self.last_failure_time > timedelta(seconds=self.recovery_timeout):
                    self.state = self.HALF_OPEN
                    self.half_open_calls = 0
                    return True
                return False
            else: # HALF_OPEN
                if self.half_open_calls < self.half_open_max_calls:
                    self.half_open_calls += 1
                    return True
                return False

    async def record_success(self):
        async with self._lock:
            self.state = self.CLOSED
            self.failure_count = 0

    async def record_failure(self):
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = datetime.now()
            if self.state == self.HALF_OPEN:
                self.state = self.OPEN
            elif self.failure_count >= self.failure_threshold:
                self.state = self.OPEN

class AsyncTokenBucketRateLimiter:
    def __init__(self, capacity: int = RATE_LIMIT_TOKENS, refill_rate: float = RATE_LIMIT_REFILL_RATE):
        self.capacity = capacity
        self.tokens = capacity
        self.refill_rate = refill_rate
        self.last_refill = time.time()
        self._lock = asyncio.Lock()

    async def acquire(self, timeout=RATE_LIMIT_WAIT_SECONDS) -> bool:
        start_time = time.time()
        while True:
            async with self._lock:
                now = time.time()
                elapsed = now - self.last_refill
                self.tokens = min(self.capacity, self.tokens + (elapsed * self.refill_rate))
                self.last_refill = now

                if self.tokens >= 1:
                    self.tokens -= 1
                    return True
            if time.time() - start_time >= timeout:
                return False
            await asyncio.sleep(0.1)


class AsyncAIEngine:
    """
    Gemini collaborator: plain chat, answer enhancement and conversational replies.

    One attempt per call under `timeout`; every failure comes back as
    success=False with an error_type instead of an exception.
    """

    def __init__(self, model_name=None, api_key=None, client=None, timeout=None, max_tokens=None):
        self.raw_model_name = model_name or Config.GEMINI_MODEL
        self.model_name = self.raw_model_name.replace("models/", "")
        # Prefer GEMINI_API_KEY, keep GOOGLE_API_KEY as legacy fallback.
        self.api_key = api_key or Config.GEMINI_API_KEY
        self.timeout = float(Config.AI_TIMEOUT_SECONDS if timeout is None else timeout)
        self.max_tokens = int(Config.AI_MAX_TOKENS if max_tokens is None else max_tokens)
        self.circuit_breaker = AsyncCircuitBreaker()
        self.rate_limiter = AsyncTokenBucketRateLimiter()
        self.client = client

        if self.client is None and self.api_key:
            try:
                # Initialize Async Client
                self.client = genai.Client(api_key=self.api_key, http_options={'api_version': 'v1beta'})
                print(f"[AsyncAI] Initialized with model: {self.model_name}")
            except Exception as e:
                print(f"AsyncGemini Init Failed: {e}")
        elif self.client is None:
            print("[AsyncAI] Missing API key. Set GEMINI_API_KEY (or legacy GOOGLE_API_KEY).")

    @property
    def available(self) -> bool:
        return self.client is not None

    def _extract_turn_text(self, raw_content: Any) -> str:
        text = str(raw_content or "").strip()
        if not text:
            return ""
        if text.startswith("{") and text.endswith("}"):
            try:
                payload = json.loads(text)
                if isinstance(payload, dict):
                    candidate = payload.get("message") or payload.get("text")
                    if isinstance(candidate, str) and candidate.strip():
                        text = candidate.strip()
            except ValueError:
                pass
        text = re.sub(r"\s+", " ", text).strip()
        return text[:280]

    def _format_conversation_text(
        self,
        conversation_history: Optional[List[Dict[str, Any]]],
        user_message: str,
        limit: int = 10,
    ) -> str:
        if not isinstance(conversation_history, list) or not conversation_history:
            return ""

        history_items = [item for item in conversation_history if isinstance(item, dict)]
        if not history_items:
            return ""

        # The policy records the user turn before generating; avoid duplicating it in the prompt.
        if str(history_items[-1].get("role") or "").strip().lower() == "user":
            tail = self._extract_turn_text(history_items[-1].get("content"))
            if tail and tail == str(user_message or "").strip():
                history_items = history_items[:-1]

        if not history_items:
            return ""

        lines: List[str] = []
        for item in history_items[-max(1, int(limit)):]:
            role = str(item.get("role") or "").strip().lower()
            content = self._extract_turn_text(item.get("content"))
            if not content:
                continue
            speaker = "ผู้ใช้" if role == "user" else "ผู้ช่วย"
            lines.append(f"{speaker}: {content}")
        return "\n".join(lines)

    def _usage_dict(self, response: Any) -> Dict[str, Any]:
        meta = getattr(response, "usage_metadata", None)
        if meta is None:
            return {}
        return {
            "prompt_tokens": getattr(meta, "prompt_token_count", None),
            "completion_tokens": getattr(meta, "candidates_token_count", None),
            "total_tokens": getattr(meta, "total_token_count", None),
        }

    async def _generate(self, prompt: str, max_tokens: int, budget: float) -> Any:
        """Single Gemini request under `budget` seconds."""
        config = types.GenerateContentConfig(max_output_tokens=max_tokens)
        try:
            return await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model_name,
                    contents=prompt,
                    config=config,
                ),
                timeout=budget,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamTimeout(f"Request timed out after {budget:.1f}s") from e
        except Exception as e:
            raise UpstreamError(str(e)) from e

    async def chat(self, prompt: str, max_tokens: Optional[int] = None, timeout: Optional[float] = None) -> AIChatResult:
        if not self.client:
            return AIChatResult(success=False, error_type="not_initialized")
        if not str(prompt or "").strip():
            return AIChatResult(success=False, error_type="empty_prompt")

        # Resilience Checks
        if not await self.circuit_breaker.can_execute():
            return AIChatResult(success=False, error_type="circuit_open")
        if not await self.rate_limiter.acquire():
            return AIChatResult(success=False, error_type="rate_limited")

        budget = self.timeout if timeout is None else float(timeout)
        try:
            response = await self._generate(prompt, int(max_tokens or self.max_tokens), budget)
        except UpstreamTimeout as e:
            await self.circuit_breaker.record_failure()
            logger.warning(f"[AsyncAI] {e}")
            return AIChatResult(success=False, error_type="timeout")
        except UpstreamError as e:
            await self.circuit_breaker.record_failure()
            logger.warning(f"[AsyncAI] Upstream error: {e}")
            return AIChatResult(success=False, error_type="ai_error")

        await self.circuit_breaker.record_success()
        text = str(getattr(response, "text", None) or "").strip()
        if not text:
            return AIChatResult(success=False, error_type="empty_response", usage=self._usage_dict(response))
        return AIChatResult(success=True, message=text, usage=self._usage_dict(response))

    async def enhance_answer(
        self,
        question: str,
        base_answer: str,
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> EnhanceResult:
        """Rewrite a stored answer for tone; the facts must stay as they are."""
        if not str(base_answer or "").strip():
            return EnhanceResult(success=False)

        context_lines = []
        for key, value in (context or {}).items():
            if key == "history":
                continue
            if value not in (None, "", [], {}):
                context_lines.append(f"{key}: {value}")
        history_text = self._format_conversation_text((context or {}).get("history"), question, limit=4)

        prompt = f"""คำถามจากผู้ใช้: "{question}"

คำตอบพื้นฐานจากระบบ: "{base_answer}"

{('บริบทเพิ่มเติม: ' + '; '.join(context_lines)) if context_lines else ''}
{('บทสนทนาก่อนหน้า:' + chr(10) + history_text) if history_text else ''}

กรุณาปรับปรุงคำตอบให้เป็นธรรมชาติและเป็นมิตรมากขึ้น โดยยังคงข้อมูลสำคัญไว้ครบถ้วน
ห้ามเพิ่มข้อมูลที่ไม่มีในคำตอบพื้นฐาน ห้ามเปลี่ยนตัวเลข ลิงก์ หรือพิกัด ตอบสั้นกระชับ"""

        result = await self.chat(prompt, timeout=timeout)
        if not result.success:
            return EnhanceResult(success=False)
        return EnhanceResult(success=True, answer=result.message)

    async def generate_reply(
        self,
        message: str,
        history: Optional[List[Dict[str, Any]]] = None,
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> AIChatResult:
        """Free-form answer for a question the knowledge base could not match."""
        conversation_text = self._format_conversation_text(history, message)
        hints = []
        for key, value in (context or {}).items():
            if value not in (None, "", [], {}):
                hints.append(f"- {key}: {value}")

        prompt = f"""คุณคือผู้ช่วยตอบคำถามของมหาวิทยาลัยราชภัฏเพชรบูรณ์
บทสนทนาก่อนหน้า:
{conversation_text or "(ยังไม่มี)"}
ข้อมูลประกอบ:
{chr(10).join(hints) if hints else "(ไม่มี)"}
คำถามปัจจุบัน: {message}

กฎ:
1. ตอบเป็นภาษาไทย สุภาพ กระชับ
2. ใช้บทสนทนาก่อนหน้าเพื่อเข้าใจคำถามต่อเนื่อง (เช่น "แล้ว...ล่ะ", "ที่นั่น")
3. หากไม่แน่ใจในคำตอบ ให้แนะนำให้ติดต่อเจ้าหน้าที่มหาวิทยาลัยโดยตรง ห้ามแต่งข้อมูลขึ้นเอง"""

        return await self.chat(prompt, timeout=timeout)
