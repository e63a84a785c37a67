"""工具集模式选择。

Gemini 不允许在同一请求中同时使用自定义函数调用和 google_search，
因此每轮对话只能在两种互斥的工具集之间二选一。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from kg_agent.tools.adapters import knowledge_graph_declarations
from kg_agent.tools.definitions import ToolDef

WEB_SEARCH_INSTRUCTION = """## MODE: WEB SEARCH
You have access to **Google Search** to find real-time information from the internet.
NOTE: In this mode, you do NOT have direct access to PrimeKG tools. You must rely on Google Search and your internal knowledge.

Use Google Search when:
- The user asks about recent clinical trials, news, or general medical info.
- You need verification from live web sources."""

KNOWLEDGE_GRAPH_INSTRUCTION = """## MODE: PRIMEKG KNOWLEDGE GRAPH
You have access to the **PrimeKG** precision medicine knowledge graph.
Use the available tools (searchSemantic, getNeighbors, etc.) to query the graph.
Web search is not available in this mode."""


class Mode(str, Enum):
    KNOWLEDGE_GRAPH = "knowledge_graph"
    WEB_SEARCH = "web_search"


@dataclass(frozen=True)
class ToolSet:
    mode: Mode
    tool_defs: Tuple[ToolDef, ...]
    web_search: bool
    instruction: str

    def __post_init__(self) -> None:
        if self.tool_defs and self.web_search:
            raise ValueError("function tools and web search cannot be combined in one tool set")

    @property
    def log_line(self) -> str:
        if self.mode is Mode.WEB_SEARCH:
            return "🌐 Mode: Web Search (Graph Tools Disabled)"
        return "🧬 Mode: PrimeKG Graph"


def select_tool_set(enable_web_search: bool) -> ToolSet:
    if enable_web_search:
        return ToolSet(
            mode=Mode.WEB_SEARCH,
            tool_defs=(),
            web_search=True,
            instruction=WEB_SEARCH_INSTRUCTION,
        )
    return ToolSet(
        mode=Mode.KNOWLEDGE_GRAPH,
        tool_defs=tuple(knowledge_graph_declarations()),
        web_search=False,
        instruction=KNOWLEDGE_GRAPH_INSTRUCTION,
    )
