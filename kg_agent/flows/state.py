"""State definition for the per-turn LangGraph flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional, TypedDict

from kg_agent.domain.cancellation import CancellationToken
from kg_agent.domain.conversation import TokenUsage
from kg_agent.domain.models import ChatMessage, WebSource
from kg_agent.flows.mode import ToolSet
from kg_agent.providers.base import ProviderClient
from kg_agent.tools.definitions import ToolCall, ToolCallResult
from kg_agent.tools.executor import ToolExecutor

FailureKind = Literal["missing_key", "connection", "format"]


class TurnState(TypedDict, total=False):
    """State shared across LangGraph nodes."""

    messages: List[ChatMessage]
    pending_calls: List[ToolCall]
    text: Optional[str]
    sources: List[WebSource]
    tool_rounds: int
    forced_final: bool
    failure: Optional[FailureKind]
    final_text: Optional[str]


@dataclass
class TurnContext:
    """Per-turn collaborators and accumulators.

    tool_results and usage live here rather than in the graph state so
    that a cancelled run can still report what was already collected.
    """

    provider: ProviderClient
    provider_name: str
    model: str
    executor: ToolExecutor
    tool_set: ToolSet
    system_instruction: str
    token: CancellationToken
    log: Callable[[str], None]
    trace_id: str
    api_key: Optional[str] = None
    temperature: float = 0.7
    max_tool_rounds: int = 5
    tool_results: List[ToolCallResult] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
