import asyncio

from conftest import FakeAI, FakeKnowledgeBase, FakeWebSearch
from pcru_faq import config
from pcru_faq.extensions import build_engines, shutdown_engines
from pcru_faq.schemas import EnhanceResult, ResolutionResponse


def test_env_helpers_fall_back_on_bad_values(monkeypatch):
    monkeypatch.setenv("X_INT", "abc")
    monkeypatch.setenv("X_FLOAT", "1.5")
    monkeypatch.setenv("X_BOOL", "Yes")
    monkeypatch.setenv("X_CSV", " ตึก, ,อาคาร ")
    monkeypatch.setenv("X_JSON", "[1, 2]")
    assert config._env_int("X_INT", 7) == 7
    assert config._env_float("X_FLOAT", 0.0) == 1.5
    assert config._env_bool("X_BOOL", False) is True
    assert config._env_bool("X_MISSING", True) is True
    assert config._env_csv("X_CSV") == ["ตึก", "อาคาร"]
    assert config._env_json_dict("X_JSON") == {}


def test_payload_uses_camel_case_and_drops_empty_fields():
    payload = ResolutionResponse(success=True, message="ok", source="database", database_title="t").to_payload()
    assert payload == {
        "success": True,
        "message": "ok",
        "source": "database",
        "enhanced": False,
        "databaseTitle": "t",
        "contacts": [],
    }


def test_build_engines_wires_a_working_pipeline():
    kb = FakeKnowledgeBase()
    kb.add(1, "ห้องสมุด", "เปิด 08:00-20:00", ["ห้องสมุด"])
    engines = build_engines(kb, ai=FakeAI(enhance=EnhanceResult(success=True, answer="เปิด 8 โมงค่ะ")), web_search=FakeWebSearch())
    kb.close = lambda: None

    async def run():
        engines.sessions.start_sweeper()
        response = await engines.policy.resolve("ห้องสมุด", "wired")
        await shutdown_engines(engines)
        return response

    response = asyncio.run(run())
    assert response.source == "database"
    assert response.message == "เปิด 8 โมงค่ะ"
    assert engines.store is kb
