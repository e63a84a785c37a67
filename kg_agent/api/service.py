"""对外 API 服务模块。

提供简化的函数接口供上层应用（UI / HTTP 层）调用：输入输出都是
普通 dict / list，字段名使用前端习惯的 camelCase。
"""

import base64
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from kg_agent.config.settings import settings
from kg_agent.domain.conversation import ConversationMessage, TurnOptions, TurnResult
from kg_agent.domain.models import Attachment
from kg_agent.flows.runner import ConversationOrchestrator
from kg_agent.infrastructure.logging.logger import logger
from kg_agent.providers.registry import estimate_cost
from kg_agent.services.literature_client import Citation, LiteratureClient


_orchestrator: Optional[ConversationOrchestrator] = None
_literature: Optional[LiteratureClient] = None


def get_default_orchestrator() -> ConversationOrchestrator:
    """获取默认的编排器实例（单例）。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ConversationOrchestrator(settings=settings)
    return _orchestrator


def set_orchestrator(orchestrator: Optional[ConversationOrchestrator]) -> None:
    """替换默认编排器（测试或自定义 Provider 时使用）。"""
    global _orchestrator
    _orchestrator = orchestrator


def _history_from_dicts(history: Optional[List[Dict[str, Any]]]) -> List[ConversationMessage]:
    messages = []
    for item in history or []:
        content = item.get("content")
        if content is None:
            # 兼容 Gemini 风格 {role, parts: [{text}]}
            content = "".join(p.get("text", "") for p in item.get("parts") or [])
        messages.append(
            ConversationMessage(
                role=item.get("role", "user"),
                content=content,
                meta=dict(item.get("meta") or {}),
            )
        )
    return messages


def _attachments_from_dicts(files: Optional[List[Dict[str, Any]]]) -> List[Attachment]:
    attachments = []
    for f in files or []:
        data = f.get("data") or ""
        if isinstance(data, bytes):
            data = base64.b64encode(data).decode("ascii")
        attachments.append(
            Attachment(
                name=f.get("name", ""),
                data=data,
                mime_type=f.get("mimeType") or f.get("mime_type") or "application/octet-stream",
            )
        )
    return attachments


def turn_result_to_dict(result: TurnResult, provider: str, model: str) -> Dict[str, Any]:
    graph = None
    if result.graph is not None:
        graph = {
            "nodes": [
                {**n.attributes, "id": n.id, "name": n.name, "type": n.type} for n in result.graph.nodes
            ],
            "edges": [asdict(e) for e in result.graph.edges],
            "isTruncated": result.graph.is_truncated,
        }
    hypothesis = None
    if result.hypothesis is not None:
        hypothesis = {"type": result.hypothesis.kind, "data": result.hypothesis.items}
    usage = result.usage
    return {
        "status": result.status,
        "text": result.text,
        "toolResults": [
            {"name": r.name, "args": r.arguments, "result": r.payload, "isError": r.is_error}
            for r in result.tool_results
        ],
        "graphPayload": graph,
        "hypothesis": hypothesis,
        "tokenUsage": {
            "promptTokens": usage.prompt_tokens,
            "completionTokens": usage.completion_tokens,
            "totalTokens": usage.total_tokens,
            "model": model,
        },
        "cost": estimate_cost(provider, model, usage.prompt_tokens, usage.completion_tokens),
        "sources": [{"uri": s.uri, "title": s.title} for s in result.sources],
        "trace": list(result.trace),
    }


def run_turn(
    prompt: str,
    history: Optional[List[Dict[str, Any]]] = None,
    *,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    enable_web_search: bool = False,
    active_tool: Optional[str] = None,
    tool_context: Optional[str] = None,
    attachments: Optional[List[Dict[str, Any]]] = None,
    on_log: Optional[Callable[[str], None]] = None,
) -> Dict[str, Any]:
    """运行一轮对话。

    Args:
        prompt: 用户输入
        history: 历史消息，形如 {"role": "user"|"model", "content": "..."}
        model: 逻辑模型名（flash / pro / flash-2.0-exp），为空取配置
        api_key: 用户自带的 Gemini API key
        enable_web_search: 是否切换到联网搜索模式
        active_tool: UI 中选中的工具 id，如 "repurposing"
        tool_context: 追加到系统提示词的额外上下文
        attachments: 文件列表，形如 {"name", "data"(base64), "mimeType"}
        on_log: 工具执行轨迹回调

    Returns:
        {status, text, toolResults, graphPayload, hypothesis, tokenUsage, cost, sources, trace}
    """
    orchestrator = get_default_orchestrator()
    model_name = model or settings.default_model
    options = TurnOptions(
        enable_web_search=enable_web_search,
        active_tool=active_tool,
        tool_context=tool_context,
        attachments=_attachments_from_dicts(attachments),
        model=model_name,
        api_key=api_key,
        on_log=on_log,
    )
    try:
        result = orchestrator.run_turn(prompt, _history_from_dicts(history), options)
    except Exception as e:
        logger.error(f"Turn failed: {e}", extra={"extra": {"model": model_name, "error": str(e)}})
        raise
    return turn_result_to_dict(result, settings.default_provider, model_name)


def cancel() -> None:
    """取消默认编排器上所有进行中的对话轮次。

    多个调用方共享默认编排器；只想取消某一轮时，应在 TurnOptions.token
    中传入自己的 CancellationToken 并直接取消它。
    """
    if _orchestrator is not None:
        _orchestrator.cancel()


def get_literature_client() -> LiteratureClient:
    """获取默认的文献检索客户端（单例，共享限流器）。"""
    global _literature
    if _literature is None:
        _literature = LiteratureClient(settings)
    return _literature


def set_literature_client(client: Optional[LiteratureClient]) -> None:
    global _literature
    _literature = client


def citation_to_dict(citation: Citation) -> Dict[str, Any]:
    return {
        "id": citation.id,
        "title": citation.title,
        "authors": citation.authors,
        "journal": citation.journal,
        "year": citation.year,
        "citedByCount": citation.cited_by_count,
        "pmid": citation.pmid,
        "doi": citation.doi,
        "abstract": citation.abstract,
        "isOpenAccess": citation.is_open_access,
        "pdfUrl": citation.pdf_url,
        "pmcUrl": citation.pmc_url,
        "doiUrl": citation.doi_url,
        "tags": list(citation.tags),
    }


def relationship_citations(entity1: str, entity2: str, limit: int = 5) -> List[Dict[str, Any]]:
    """查询同时提及两个实体的文献，供图谱中一条边的证据面板使用。"""
    citations = get_literature_client().search_relationship_citations(entity1, entity2, limit)
    return [citation_to_dict(c) for c in citations]


def mechanism_citations(drug: str, disease: str, limit: int = 5) -> List[Dict[str, Any]]:
    """查询药物-疾病作用机制相关文献，按相关度排序。"""
    citations = get_literature_client().search_mechanism_citations(drug, disease, limit)
    return [citation_to_dict(c) for c in citations]
