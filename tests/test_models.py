import os
import sys
import pytest
from httpx import AsyncClient, ASGITransport

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))
from main import app
from services.model_router import FALLBACK_MODEL, MODEL_PROFILES


@pytest.mark.asyncio
async def test_models_list_matches_capability_table(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        res = await client.get("/models")

    assert res.status_code == 200
    data = {m["id"]: m for m in res.json()}
    assert set(data) == set(MODEL_PROFILES)

    gpt = data["gpt-4o"]
    assert gpt["provider"] == "openai"
    assert gpt["cost_tier"] == "medium"
    assert gpt["latency"] == "low"
    assert gpt["supported"] is True
    assert gpt["available"] is True

    haiku = data["claude-3-5-haiku-20240307"]
    assert haiku["supported"] is False
    assert haiku["available"] is False


@pytest.mark.asyncio
async def test_select_classifies_text():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        res = await client.post("/models/select", json={"text": "Can you explain this code?"})

    assert res.status_code == 200
    assert res.json() == {"model": "o1", "task_category": "code_explanation", "fallback": False}


@pytest.mark.asyncio
async def test_select_with_explicit_category_and_constraints():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        res = await client.post("/models/select", json={
            "text": "ignored",
            "task_category": "creative_writing",
            "preferred_provider": "google",
            "max_cost_tier": "medium",
        })

    assert res.status_code == 200
    assert res.json()["model"] == "gemini-2.0-flash-lite"


@pytest.mark.asyncio
async def test_select_reports_fallback():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        res = await client.post("/models/select", json={
            "task_category": "code_generation",
            "min_context_length": 10_000_000,
        })

    assert res.status_code == 200
    assert res.json() == {"model": FALLBACK_MODEL, "task_category": "code_generation", "fallback": True}


@pytest.mark.asyncio
async def test_select_rejects_unknown_category():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        res = await client.post("/models/select", json={"task_category": "juggling"})
    assert res.status_code == 422
