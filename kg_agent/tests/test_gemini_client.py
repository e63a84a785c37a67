import httpx
import pytest

from kg_agent.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from kg_agent.domain.models import Attachment, ChatMessage, ChatRequest
from kg_agent.providers.gemini_client import SYNTHETIC_CALL_PREFIX, GeminiClient
from kg_agent.tools.adapters import knowledge_graph_declarations
from kg_agent.tools.definitions import ToolCall


class SettingsStub:
    gemini_api_key = "g" * 16
    http_timeout = 1.0
    gemini_base_url = "https://generativelanguage.googleapis.com/v1beta"


def _install_client(monkeypatch, data=None, status_code=200, captured=None, exc=None):
    class Resp:
        def __init__(self):
            self.status_code = status_code
            self.text = "error body"

        def json(self):
            return data or {}

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            if exc is not None:
                raise exc
            if captured is not None:
                captured["url"] = url
                captured["payload"] = json
                captured["headers"] = headers
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)


def test_parse_text_usage_and_sources(monkeypatch):
    data = {
        "candidates": [
            {
                "content": {"role": "model", "parts": [{"text": "Hello "}, {"text": "world"}]},
                "finishReason": "STOP",
                "groundingMetadata": {
                    "groundingChunks": [
                        {"web": {"uri": "https://a", "title": "A"}},
                        {"web": {"uri": "https://a", "title": "A2"}},
                        {"web": {"uri": "https://b"}},
                    ]
                },
            }
        ],
        "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 4, "totalTokenCount": 16},
    }
    _install_client(monkeypatch, data)
    req = ChatRequest(provider="gemini", model="flash", messages=[ChatMessage(role="user", content="hi")])
    res = GeminiClient(SettingsStub()).chat(req)
    choice = res.choices[0]
    assert choice.message.content == "Hello world"
    assert choice.finish_reason == "STOP"
    assert [(s.uri, s.title) for s in choice.sources] == [("https://a", "A2")]
    assert (res.usage.prompt_tokens, res.usage.completion_tokens, res.usage.total_tokens) == (12, 4, 16)


def test_parse_function_calls(monkeypatch):
    data = {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"functionCall": {"name": "getNeighbors", "args": {"nodeId": "CNR1"}}},
                        {"functionCall": {"id": "abc", "name": "checkHealth"}},
                    ]
                }
            }
        ]
    }
    _install_client(monkeypatch, data)
    req = ChatRequest(provider="gemini", model="flash", messages=[ChatMessage(role="user", content="hi")])
    calls = GeminiClient(SettingsStub()).chat(req).choices[0].message.tool_calls
    assert calls[0].name == "getNeighbors"
    assert calls[0].arguments == {"nodeId": "CNR1"}
    assert calls[0].id.startswith(SYNTHETIC_CALL_PREFIX)
    assert calls[1].id == "abc"
    assert calls[1].arguments == {}


def test_no_candidates_yields_empty_choices(monkeypatch):
    _install_client(monkeypatch, {"promptFeedback": {"blockReason": "SAFETY"}})
    req = ChatRequest(provider="gemini", model="flash", messages=[ChatMessage(role="user", content="hi")])
    assert GeminiClient(SettingsStub()).chat(req).choices == []


def test_payload_shape(monkeypatch):
    captured = {}
    _install_client(monkeypatch, {"candidates": []}, captured=captured)
    messages = [
        ChatMessage(role="system", content="[Context: earlier messages]"),
        ChatMessage(
            role="user",
            content="look at this",
            attachments=[Attachment(name="a.png", data="QUJD", mime_type="image/png")],
        ),
        ChatMessage(
            role="assistant",
            content="",
            tool_calls=[
                ToolCall(id=f"{SYNTHETIC_CALL_PREFIX}0", name="getNeighbors", arguments={"nodeId": "CNR1"}),
                ToolCall(id="real-1", name="checkHealth", arguments={}),
            ],
        ),
        ChatMessage(
            role="tool",
            content="[]",
            meta={"payload": [{"source": "CNR1"}]},
            tool_call_id=f"{SYNTHETIC_CALL_PREFIX}0",
            tool_name="getNeighbors",
        ),
        ChatMessage(role="tool", content='{"status": "ok"}', tool_call_id="real-1", tool_name="checkHealth"),
        ChatMessage(role="user", content="final please"),
    ]
    req = ChatRequest(
        provider="gemini",
        model="pro",
        messages=messages,
        system_instruction="You are PrimeAI",
        tools=knowledge_graph_declarations(),
        tool_choice="none",
    )
    GeminiClient(SettingsStub()).chat(req)

    assert captured["url"].endswith("/models/gemini-3-pro-preview:generateContent")
    assert captured["headers"]["x-goog-api-key"] == "g" * 16
    payload = captured["payload"]
    assert payload["systemInstruction"] == {"parts": [{"text": "You are PrimeAI"}]}
    assert payload["toolConfig"] == {"functionCallingConfig": {"mode": "NONE"}}
    decls = payload["tools"][0]["functionDeclarations"]
    subgraph = next(d for d in decls if d["name"] == "getSubgraph")
    assert subgraph["parameters"]["type"] == "OBJECT"
    assert subgraph["parameters"]["properties"]["hops"]["type"] == "NUMBER"
    assert subgraph["parameters"]["required"] == ["entity"]
    health = next(d for d in decls if d["name"] == "checkHealth")
    assert "parameters" not in health

    contents = payload["contents"]
    assert [c["role"] for c in contents] == ["user", "user", "model", "user", "user"]
    assert contents[1]["parts"][1] == {"inlineData": {"mimeType": "image/png", "data": "QUJD"}}
    calls = contents[2]["parts"]
    assert calls[0] == {"functionCall": {"name": "getNeighbors", "args": {"nodeId": "CNR1"}}}
    assert calls[1]["functionCall"]["id"] == "real-1"
    responses = contents[3]["parts"]
    assert responses[0] == {
        "functionResponse": {"name": "getNeighbors", "response": {"result": [{"source": "CNR1"}]}}
    }
    assert responses[1]["functionResponse"]["id"] == "real-1"
    assert responses[1]["functionResponse"]["response"] == {"result": '{"status": "ok"}'}


def test_web_search_payload(monkeypatch):
    captured = {}
    _install_client(monkeypatch, {"candidates": []}, captured=captured)
    req = ChatRequest(
        provider="gemini",
        model="flash",
        messages=[ChatMessage(role="user", content="news")],
        web_search=True,
    )
    GeminiClient(SettingsStub()).chat(req)
    assert captured["payload"]["tools"] == [{"google_search": {}}]
    assert "toolConfig" not in captured["payload"]


def test_rejects_tools_with_web_search(monkeypatch):
    _install_client(monkeypatch, {"candidates": []})
    req = ChatRequest(
        provider="gemini",
        model="flash",
        messages=[ChatMessage(role="user", content="x")],
        tools=knowledge_graph_declarations(),
        web_search=True,
    )
    with pytest.raises(ValidationError):
        GeminiClient(SettingsStub()).chat(req)


def test_missing_key_and_request_key_override(monkeypatch):
    class NoKey(SettingsStub):
        gemini_api_key = None

    captured = {}
    _install_client(monkeypatch, {"candidates": []}, captured=captured)
    req = ChatRequest(provider="gemini", model="flash", messages=[ChatMessage(role="user", content="x")])
    with pytest.raises(ValidationError) as err:
        GeminiClient(NoKey()).chat(req)
    assert err.value.code == "MISSING_API_KEY"
    req.api_key = "user-key-123456"
    GeminiClient(NoKey()).chat(req)
    assert captured["headers"]["x-goog-api-key"] == "user-key-123456"


def test_http_errors_are_mapped(monkeypatch):
    req = ChatRequest(provider="gemini", model="flash", messages=[ChatMessage(role="user", content="x")])
    _install_client(monkeypatch, status_code=429)
    with pytest.raises(RateLimitError):
        GeminiClient(SettingsStub()).chat(req)
    _install_client(monkeypatch, status_code=500)
    with pytest.raises(ApiError) as err:
        GeminiClient(SettingsStub()).chat(req)
    assert err.value.http_status == 500

    _install_client(monkeypatch, exc=httpx.ConnectError("refused"))
    with pytest.raises(NetworkError):
        GeminiClient(SettingsStub()).chat(req)


def test_thought_signatures_are_echoed_on_follow_up(monkeypatch):
    data = {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [
                        {"text": "Looking up CNR1.", "thoughtSignature": "TEXT_SIG"},
                        {
                            "functionCall": {"name": "getNeighbors", "args": {"nodeId": "CNR1"}},
                            "thoughtSignature": "SIG123",
                        },
                    ],
                }
            }
        ]
    }
    _install_client(monkeypatch, data)
    client = GeminiClient(SettingsStub())
    first = client.chat(
        ChatRequest(provider="gemini", model="flash", messages=[ChatMessage(role="user", content="q")])
    )
    assistant = first.choices[0].message
    assert assistant.tool_calls[0].thought_signature == "SIG123"

    captured = {}
    _install_client(monkeypatch, {"candidates": []}, captured=captured)
    follow_up = [
        ChatMessage(role="user", content="q"),
        assistant,
        ChatMessage(
            role="tool",
            content="[]",
            tool_call_id=assistant.tool_calls[0].id,
            tool_name="getNeighbors",
            meta={"payload": []},
        ),
    ]
    client.chat(ChatRequest(provider="gemini", model="flash", messages=follow_up))
    model_parts = captured["payload"]["contents"][1]["parts"]
    assert model_parts == [
        {"text": "Looking up CNR1.", "thoughtSignature": "TEXT_SIG"},
        {
            "functionCall": {"name": "getNeighbors", "args": {"nodeId": "CNR1"}},
            "thoughtSignature": "SIG123",
        },
    ]
    assert captured["payload"]["contents"][2]["parts"][0]["functionResponse"]["name"] == "getNeighbors"
