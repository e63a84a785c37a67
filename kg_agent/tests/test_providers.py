import pytest

from kg_agent.providers import create_provider
from kg_agent.providers.gemini_client import GeminiClient
from kg_agent.providers.registry import GEMINI_CONFIG, estimate_cost, get_provider_config


def test_create_provider_default(monkeypatch):
    class DummySettings:
        default_provider = "gemini"
        gemini_api_key = "g" * 12
        http_timeout = 1.0

    monkeypatch.setattr("kg_agent.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, GeminiClient)


def test_create_provider_unknown():
    with pytest.raises(KeyError):
        create_provider("kimi")


def test_registry_resolves_logical_and_vendor_names():
    cfg = get_provider_config("Gemini")
    assert cfg.resolve("flash").provider_model == "gemini-3-flash-preview"
    assert cfg.resolve("gemini-3-pro-preview").logical_name == "pro"
    with pytest.raises(KeyError):
        cfg.resolve("nope")


def test_estimate_cost_per_million_tokens():
    assert estimate_cost("gemini", "flash", 1_000_000, 1_000_000) == pytest.approx(3.50)
    assert estimate_cost("gemini", "pro", 500_000, 100_000) == pytest.approx(1.0 + 1.2)
    assert estimate_cost("gemini", "flash-2.0-exp", 10_000, 10_000) == 0.0
    assert estimate_cost("gemini", "unknown-model", 10, 10) == 0.0
    assert "flash" in GEMINI_CONFIG.models
