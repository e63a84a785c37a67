"""KG Agent 顶层包。

该包提供生物医学知识图谱研究助手的核心实现，
包括配置加载、领域模型、Gemini Provider 适配、工具适配表、
多轮工具调用编排（LangGraph）以及图谱数据合成等能力。
"""

from kg_agent.domain.cancellation import CancellationToken
from kg_agent.domain.conversation import ConversationMessage, TurnOptions, TurnResult
from kg_agent.flows.runner import ConversationOrchestrator

__all__ = [
    "CancellationToken",
    "ConversationMessage",
    "ConversationOrchestrator",
    "TurnOptions",
    "TurnResult",
]
