"""High-level entry point for one conversation turn."""

from __future__ import annotations

import threading
import uuid
from typing import Dict, List, Optional, Sequence

from kg_agent.config.settings import settings as default_settings
from kg_agent.domain.cancellation import CancellationToken
from kg_agent.domain.conversation import ConversationMessage, TurnOptions, TurnResult
from kg_agent.domain.exceptions import TurnCancelled
from kg_agent.domain.models import ChatMessage
from kg_agent.flows.graph import build_turn_graph, recursion_limit
from kg_agent.flows.history import window_history
from kg_agent.flows.mode import ToolSet, select_tool_set
from kg_agent.flows.state import TurnContext, TurnState
from kg_agent.graph.synthesizer import extract_hypothesis, synthesize_graph
from kg_agent.infrastructure.logging.logger import logger
from kg_agent.prompts import load_system_prompt, tool_focus_section
from kg_agent.providers import create_provider
from kg_agent.providers.base import ProviderClient
from kg_agent.services import KnowledgeGraphClient, LiteratureClient
from kg_agent.tools.adapters import ToolAdapter, build_adapter_table
from kg_agent.tools.definitions import ToolName
from kg_agent.tools.executor import ToolExecutor

_ROLE_MAP = {"user": "user", "model": "assistant", "system": "system"}


def build_system_instruction(
    tool_set: ToolSet,
    active_tool: Optional[str] = None,
    tool_context: Optional[str] = None,
    base_prompt: Optional[str] = None,
) -> str:
    """拼接系统提示词：基础提示 + 模式说明 + 工具聚焦 + 额外上下文。"""

    sections = [base_prompt if base_prompt is not None else load_system_prompt(), tool_set.instruction]
    focus = tool_focus_section(active_tool)
    if focus:
        sections.append(focus)
    if tool_context:
        sections.append(f"## ACTIVE CONTEXT\n{tool_context}")
    return "\n\n".join(s for s in sections if s)


def _to_chat_message(message: ConversationMessage) -> ChatMessage:
    return ChatMessage(
        role=_ROLE_MAP.get(message.role, "user"),
        content=message.content,
        meta=dict(message.meta),
        attachments=list(message.attachments),
    )


class ConversationOrchestrator:
    """Drive one user turn through the tool-calling loop.

    Each call to run_turn gets a fresh executor (and cache), accumulator
    and graph synthesis pass; nothing is shared between turns except the
    provider and the adapter table.
    """

    def __init__(
        self,
        provider: Optional[ProviderClient] = None,
        adapters: Optional[Dict[ToolName, ToolAdapter]] = None,
        settings=default_settings,
        provider_name: Optional[str] = None,
    ) -> None:
        self._settings = settings
        self._provider_name = provider_name or getattr(settings, "default_provider", "gemini")
        self._provider = provider or create_provider(self._provider_name)
        self._adapters = adapters or build_adapter_table(
            KnowledgeGraphClient(settings),
            LiteratureClient(settings),
        )
        self._lock = threading.Lock()
        self._active_tokens: List[CancellationToken] = []

    def cancel(self) -> None:
        """Cancel every turn currently in progress on this orchestrator.

        To stop one particular turn while others run, pass your own token in
        TurnOptions.token and cancel that token instead.
        """

        with self._lock:
            tokens = list(self._active_tokens)
        for token in tokens:
            token.cancel()
        if tokens:
            logger.info("orchestrator.cancel_requested", extra={"extra": {"turns": len(tokens)}})

    def run_turn(
        self,
        prompt: str,
        history: Optional[Sequence[ConversationMessage]] = None,
        options: Optional[TurnOptions] = None,
    ) -> TurnResult:
        options = options or TurnOptions()
        token = options.token or CancellationToken()
        trace_id = uuid.uuid4().hex[:12]
        trace: List[str] = []

        def log(line: str) -> None:
            trace.append(line)
            logger.info("orchestrator.trace", extra={"extra": {"trace_id": trace_id, "line": line}})
            if options.on_log:
                options.on_log(line)

        tool_set = select_tool_set(options.enable_web_search)
        model = options.model or self._settings.default_model
        log(tool_set.log_line)
        log(f"Model: {model}")

        windowed = window_history(
            history or [],
            max_messages=self._settings.max_history_messages,
            max_length=self._settings.max_message_length,
            include_summary=self._settings.include_history_summary,
        )
        messages = [_to_chat_message(m) for m in windowed]
        messages.append(ChatMessage(role="user", content=prompt, attachments=list(options.attachments)))

        ctx = TurnContext(
            provider=self._provider,
            provider_name=self._provider_name,
            model=model,
            executor=ToolExecutor(self._adapters, self._settings.max_tool_response_items),
            tool_set=tool_set,
            system_instruction=build_system_instruction(tool_set, options.active_tool, options.tool_context),
            token=token,
            log=log,
            trace_id=trace_id,
            api_key=options.api_key,
            temperature=self._settings.temperature,
            max_tool_rounds=min(self._settings.max_tool_rounds, 5),
        )
        state: TurnState = {
            "messages": messages,
            "pending_calls": [],
            "text": None,
            "sources": [],
            "tool_rounds": 0,
            "forced_final": False,
            "failure": None,
            "final_text": None,
        }
        logger.info(
            "orchestrator.turn_start",
            extra={
                "extra": {
                    "trace_id": trace_id,
                    "mode": tool_set.mode.value,
                    "model": model,
                    "history": len(windowed),
                    "active_tool": options.active_tool,
                }
            },
        )
        with self._lock:
            self._active_tokens.append(token)
        try:
            final = build_turn_graph(ctx).invoke(
                state, config={"recursion_limit": recursion_limit(ctx.max_tool_rounds)}
            )
        except TurnCancelled as e:
            logger.info("orchestrator.cancelled", extra={"extra": {"trace_id": trace_id, "stage": e.stage}})
            log("Cancelled")
            return TurnResult(
                status="cancelled",
                text=None,
                tool_results=list(ctx.tool_results),
                usage=ctx.usage,
                trace=trace,
            )
        finally:
            with self._lock:
                self._active_tokens = [t for t in self._active_tokens if t is not token]

        graph = synthesize_graph(
            ctx.tool_results,
            max_nodes=self._settings.graph_max_nodes,
            max_edges=self._settings.graph_max_edges,
        )
        log("Done")
        logger.info(
            "orchestrator.turn_end",
            extra={
                "extra": {
                    "trace_id": trace_id,
                    "tool_rounds": final.get("tool_rounds", 0),
                    "tool_results": len(ctx.tool_results),
                    "forced_final": final.get("forced_final", False),
                    "graph_nodes": len(graph.nodes) if graph else 0,
                    "prompt_tokens": ctx.usage.prompt_tokens,
                    "completion_tokens": ctx.usage.completion_tokens,
                }
            },
        )
        return TurnResult(
            status="done",
            text=final.get("final_text"),
            tool_results=list(ctx.tool_results),
            graph=graph,
            hypothesis=extract_hypothesis(ctx.tool_results),
            usage=ctx.usage,
            sources=list(final.get("sources") or []),
            trace=trace,
            tool_rounds=final.get("tool_rounds", 0),
            forced_final=final.get("forced_final", False),
        )
