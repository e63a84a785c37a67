import json
from typing import Any, Dict, List, Optional

from kg_agent.config.settings import settings
from kg_agent.domain.cancellation import CancellationToken
from kg_agent.domain.exceptions import BusinessError, NotFoundError, TurnCancelled
from kg_agent.infrastructure.logging.logger import logger
from .adapters import ToolAdapter
from .definitions import ToolCall, ToolCallResult, ToolName
from .truncation import truncate_tool_response

GENERIC_TOOL_ERROR = "Failed to fetch data from KG API."


def error_payload(message: str) -> Dict[str, Any]:
    return {"error": True, "message": message}


class ToolExecutor:
    """按工具适配表执行模型发起的工具调用。

    每轮对话新建一个实例：同一轮内参数完全相同的成功调用直接命中缓存。
    除取消外，任何失败都会被转换为错误哨兵结果返回给模型。
    """

    def __init__(self, adapters: Dict[ToolName, ToolAdapter], max_items: Optional[int] = None):
        self._adapters = adapters
        self._max_items = max_items or settings.max_tool_response_items
        self._cache: Dict[tuple, Any] = {}

    def describe(self, call: ToolCall) -> str:
        name = ToolName.lookup(call.name)
        adapter = self._adapters.get(name) if name else None
        if adapter and adapter.describe:
            return adapter.describe(call.arguments)
        return f"→ {call.name}"

    def execute(self, call: ToolCall, token: Optional[CancellationToken] = None) -> ToolCallResult:
        name = ToolName.lookup(call.name)
        adapter = self._adapters.get(name) if name else None
        if adapter is None:
            logger.warning("tool.unknown", extra={"extra": {"tool": call.name}})
            return self._error(call, f"Unknown function: {call.name}")

        missing = self._missing_args(adapter, call.arguments)
        if missing:
            return self._error(call, f"Missing required argument(s) for {call.name}: {', '.join(missing)}")

        key = (call.name, json.dumps(call.arguments, sort_keys=True, ensure_ascii=False, default=str))
        if key in self._cache:
            logger.info("tool.cache_hit", extra={"extra": {"tool": call.name}})
            return ToolCallResult(call_id=call.id, name=call.name, arguments=call.arguments, payload=self._cache[key])

        if token is not None:
            token.raise_if_cancelled(f"tool {call.name}")

        try:
            raw = adapter.handler(call.arguments, token)
        except NotFoundError:
            logger.info("tool.not_found", extra={"extra": {"tool": call.name, "args": call.arguments}})
            return ToolCallResult(
                call_id=call.id,
                name=call.name,
                arguments=call.arguments,
                payload={"result": adapter.not_found_message},
            )
        except BusinessError as e:
            logger.error(
                "tool.failed",
                extra={"extra": {"tool": call.name, "code": e.code, "error": e.message}},
            )
            return self._error(call, e.message or GENERIC_TOOL_ERROR)
        except TurnCancelled:
            raise
        except Exception as e:
            logger.exception("tool.unexpected_error", extra={"extra": {"tool": call.name, "error": str(e)}})
            return self._error(call, GENERIC_TOOL_ERROR)

        payload = truncate_tool_response(raw, self._max_items) if adapter.truncate else raw
        self._cache[key] = payload
        logger.info("tool.executed", extra={"extra": {"tool": call.name, "truncated": payload is not raw}})
        return ToolCallResult(call_id=call.id, name=call.name, arguments=call.arguments, payload=payload)

    @staticmethod
    def _missing_args(adapter: ToolAdapter, arguments: Dict[str, Any]) -> List[str]:
        missing = []
        for param in adapter.declaration.required_params:
            value = arguments.get(param)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(param)
        return missing

    @staticmethod
    def _error(call: ToolCall, message: str) -> ToolCallResult:
        return ToolCallResult(
            call_id=call.id,
            name=call.name,
            arguments=call.arguments,
            payload=error_payload(message),
            is_error=True,
        )
