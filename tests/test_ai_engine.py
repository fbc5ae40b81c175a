import asyncio
from datetime import datetime
from types import SimpleNamespace

from pcru_faq.engines.ai_engine_async import AsyncAIEngine, AsyncCircuitBreaker


class FakeModels:
    def __init__(self, text="ตอบแล้วค่ะ", error=None, delay=0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.requests = []

    async def generate_content(self, model, contents, config=None):
        self.requests.append({"model": model, "contents": contents, "config": config})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        usage = SimpleNamespace(prompt_token_count=12, candidates_token_count=4, total_token_count=16)
        return SimpleNamespace(text=self.text, usage_metadata=usage)


def _engine(models, timeout=1.0):
    client = SimpleNamespace(aio=SimpleNamespace(models=models))
    return AsyncAIEngine(model_name="models/gemini-test", client=client, timeout=timeout, max_tokens=256)


def test_chat_success_reports_usage():
    models = FakeModels()
    result = asyncio.run(_engine(models).chat("สวัสดี"))
    assert result.success
    assert result.message == "ตอบแล้วค่ะ"
    assert result.usage == {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16}
    assert models.requests[0]["model"] == "gemini-test"
    assert models.requests[0]["config"].max_output_tokens == 256


def test_chat_max_tokens_override():
    models = FakeModels()
    asyncio.run(_engine(models).chat("เติมคำ", max_tokens=1))
    assert models.requests[0]["config"].max_output_tokens == 1


def test_chat_timeout_is_a_failed_result():
    engine = _engine(FakeModels(delay=0.5), timeout=0.05)
    result = asyncio.run(engine.chat("hello"))
    assert not result.success
    assert result.error_type == "timeout"
    assert engine.circuit_breaker.failure_count == 1


def test_chat_upstream_error_is_a_failed_result():
    engine = _engine(FakeModels(error=RuntimeError("503 UNAVAILABLE")))
    result = asyncio.run(engine.chat("hello"))
    assert result.error_type == "ai_error"


def test_empty_reply_is_a_failure():
    result = asyncio.run(_engine(FakeModels(text="  ")).chat("hello"))
    assert not result.success
    assert result.error_type == "empty_response"


def test_open_circuit_fails_fast():
    models = FakeModels()
    engine = _engine(models)
    engine.circuit_breaker.state = AsyncCircuitBreaker.OPEN
    engine.circuit_breaker.last_failure_time = datetime.now()

    result = asyncio.run(engine.chat("hello"))
    assert result.error_type == "circuit_open"
    assert models.requests == []


def test_missing_client_is_not_initialized():
    engine = _engine(FakeModels())
    engine.client = None
    assert asyncio.run(engine.chat("hello")).error_type == "not_initialized"
    assert not engine.available


def test_enhance_answer_keeps_base_answer_in_prompt():
    models = FakeModels(text="ค่าเทอม 8,000 บาทค่ะ")
    result = asyncio.run(_engine(models).enhance_answer("ค่าเทอม", "8,000 บาท", {"category": "การเงิน"}))
    assert result.success
    assert result.answer == "ค่าเทอม 8,000 บาทค่ะ"
    prompt = models.requests[0]["contents"]
    assert "8,000 บาท" in prompt
    assert "category: การเงิน" in prompt


def test_enhance_answer_failure():
    result = asyncio.run(_engine(FakeModels(error=RuntimeError("boom"))).enhance_answer("q", "a"))
    assert not result.success
    assert result.answer == ""


def test_generate_reply_includes_history_without_repeating_the_question():
    models = FakeModels()
    history = [
        {"role": "user", "content": "ค่าเทอมเท่าไหร่"},
        {"role": "assistant", "content": "8,000 บาทค่ะ"},
        {"role": "user", "content": "แล้วหอพักล่ะ"},
    ]
    asyncio.run(_engine(models).generate_reply("แล้วหอพักล่ะ", history, {"category": "หอพัก"}))
    prompt = models.requests[0]["contents"]
    assert "ผู้ใช้: ค่าเทอมเท่าไหร่" in prompt
    assert "ผู้ช่วย: 8,000 บาทค่ะ" in prompt
    assert "ผู้ใช้: แล้วหอพักล่ะ" not in prompt
    assert "คำถามปัจจุบัน: แล้วหอพักล่ะ" in prompt
    assert "- category: หอพัก" in prompt
