"""Gemini Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 Gemini generateContent REST 请求格式：
   - assistant 消息映射为 role="model"，工具调用映射为 functionCall part；
   - 连续的 tool 消息合并为同一条内容中的多个 functionResponse part；
   - 历史中的 system 消息（如历史摘要）以 user 身份发送，
     真正的系统提示词走 systemInstruction 字段。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 将响应 JSON 解析为统一的 ChatResult（含工具调用、联网搜索来源）。

自定义函数与 google_search 不能出现在同一请求中，这里会直接拒绝。
"""

from typing import Any, Dict, List, Optional

import httpx

from kg_agent.config.settings import settings as default_settings
from kg_agent.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from kg_agent.domain.models import (
    ChatChoice,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatUsage,
    WebSource,
)
from kg_agent.infrastructure.logging.logger import logger
from kg_agent.providers.registry import GEMINI_CONFIG, ModelConfig
from kg_agent.tools.definitions import ToolCall, ToolDef

SYNTHETIC_CALL_PREFIX = "gemini_call_"

_TOOL_CHOICE_MODES = {"auto": "AUTO", "none": "NONE", "required": "ANY"}


def _upper_types(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Gemini 的 Schema.type 使用大写枚举值。"""

    converted: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            converted[key] = value.upper()
        elif isinstance(value, dict):
            converted[key] = _upper_types(value)
        else:
            converted[key] = value
    return converted


class GeminiClient:
    """Gemini 提供方客户端实现。"""

    name = "gemini"

    def __init__(self, cfg=default_settings):
        self._settings = cfg

    def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式对话调用。"""

        api_key = req.api_key or getattr(self._settings, "gemini_api_key", None)
        if not api_key:
            raise ValidationError(code="MISSING_API_KEY", message="GEMINI_API_KEY not set")
        if req.tools and req.web_search:
            raise ValidationError(
                code="INVALID_TOOLS",
                message="Function declarations and google_search cannot be combined in one request",
            )
        try:
            model_cfg = GEMINI_CONFIG.resolve(req.model)
        except KeyError as e:
            raise ValidationError(code="UNKNOWN_MODEL", message=str(e))

        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base}/models/{model_cfg.provider_model}:generateContent",
                    json=payload,
                    headers={
                        "x-goog-api-key": api_key,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code, provider=self.name)
        data = resp.json()
        return self._parse_response(data, req)

    # ---- 请求构造 ----

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "contents": self._build_contents(req.messages),
            "generationConfig": {
                "temperature": req.temperature if req.temperature is not None else model_cfg.default_temperature,
                "topP": req.top_p,
                "maxOutputTokens": req.max_tokens or model_cfg.max_tokens,
            },
        }
        if req.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": req.system_instruction}]}
        if req.tools:
            payload["tools"] = [{"functionDeclarations": [self._serialize_tool(t) for t in req.tools]}]
            payload["toolConfig"] = {
                "functionCallingConfig": {"mode": _TOOL_CHOICE_MODES.get(req.tool_choice, "AUTO")}
            }
        elif req.web_search:
            payload["tools"] = [{"google_search": {}}]
        return payload

    def _build_contents(self, messages: List[ChatMessage]) -> List[Dict[str, Any]]:
        contents: List[Dict[str, Any]] = []
        pending_responses: List[Dict[str, Any]] = []

        def flush() -> None:
            if pending_responses:
                contents.append({"role": "user", "parts": list(pending_responses)})
                pending_responses.clear()

        for message in messages:
            if message.role == "tool":
                pending_responses.append(self._function_response_part(message))
                continue
            flush()
            if message.role == "assistant":
                parts: List[Dict[str, Any]] = []
                if message.content:
                    text_part: Dict[str, Any] = {"text": message.content}
                    if message.meta.get("thought_signature"):
                        text_part["thoughtSignature"] = message.meta["thought_signature"]
                    parts.append(text_part)
                for call in message.tool_calls or []:
                    function_call: Dict[str, Any] = {"name": call.name, "args": call.arguments or {}}
                    if not call.id.startswith(SYNTHETIC_CALL_PREFIX):
                        function_call["id"] = call.id
                    call_part: Dict[str, Any] = {"functionCall": function_call}
                    if call.thought_signature:
                        call_part["thoughtSignature"] = call.thought_signature
                    parts.append(call_part)
                if parts:
                    contents.append({"role": "model", "parts": parts})
                continue
            parts = [{"text": message.content or ""}]
            for attachment in message.attachments:
                parts.append({"inlineData": {"mimeType": attachment.mime_type, "data": attachment.data}})
            contents.append({"role": "user", "parts": parts})
        flush()
        return contents

    @staticmethod
    def _function_response_part(message: ChatMessage) -> Dict[str, Any]:
        payload = message.meta.get("payload", message.content)
        response: Dict[str, Any] = {
            "name": message.tool_name or "",
            "response": {"result": payload},
        }
        if message.tool_call_id and not message.tool_call_id.startswith(SYNTHETIC_CALL_PREFIX):
            response["id"] = message.tool_call_id
        return {"functionResponse": response}

    def _serialize_tool(self, tool: ToolDef) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in tool.params.items():
            schema = param.schema or {"type": "string"}
            if param.description:
                schema = {**schema, "description": param.description}
            properties[name] = _upper_types(schema)
            if param.required:
                required.append(name)
        declaration: Dict[str, Any] = {"name": tool.name, "description": tool.description}
        if properties:
            declaration["parameters"] = {"type": "OBJECT", "properties": properties, "required": required}
        return declaration

    # ---- 响应解析 ----

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        choices: List[ChatChoice] = []
        for i, candidate in enumerate(data.get("candidates") or []):
            choices.append(
                ChatChoice(
                    index=i,
                    message=self._build_chat_message(candidate.get("content") or {}),
                    finish_reason=candidate.get("finishReason"),
                    sources=self._parse_sources(candidate.get("groundingMetadata")),
                )
            )
        usage_raw = data.get("usageMetadata") or {}
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("promptTokenCount", 0) or 0,
            completion_tokens=usage_raw.get("candidatesTokenCount", 0) or 0,
            total_tokens=usage_raw.get("totalTokenCount", 0) or 0,
        )
        if not choices:
            logger.warning(
                "gemini_client.no_candidates",
                extra={"extra": {"model": req.model, "prompt_feedback": data.get("promptFeedback")}},
            )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    def _build_chat_message(self, content: Dict[str, Any]) -> ChatMessage:
        texts: List[str] = []
        tool_calls: List[ToolCall] = []
        meta: Dict[str, Any] = {}
        for part in content.get("parts") or []:
            signature = part.get("thoughtSignature")
            function_call = part.get("functionCall")
            if function_call:
                tool_calls.append(
                    ToolCall(
                        id=function_call.get("id") or f"{SYNTHETIC_CALL_PREFIX}{len(tool_calls)}",
                        name=function_call.get("name") or "",
                        arguments=function_call.get("args") or {},
                        thought_signature=signature,
                    )
                )
            elif part.get("text"):
                texts.append(part["text"])
                # 文本被合并为一个 part 回传，只保留第一个签名
                if signature and "thought_signature" not in meta:
                    meta["thought_signature"] = signature
        return ChatMessage(
            role="assistant",
            content="".join(texts),
            meta=meta,
            tool_calls=tool_calls or None,
        )

    @staticmethod
    def _parse_sources(grounding: Optional[Dict[str, Any]]) -> List[WebSource]:
        unique: Dict[str, str] = {}
        for chunk in (grounding or {}).get("groundingChunks") or []:
            web = chunk.get("web") or {}
            if web.get("uri") and web.get("title"):
                unique[web["uri"]] = web["title"]
        return [WebSource(uri=uri, title=title) for uri, title in unique.items()]
