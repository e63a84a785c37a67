"""LangGraph construction and node implementations for one conversation turn.

call_model -> execute_tools -> call_model ... until the model stops asking
for tools or the batch ceiling is reached; finalize forces a text answer
when only tool results came back; finish always produces non-empty text.
"""

from __future__ import annotations

import json
from dataclasses import replace
from typing import List

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from kg_agent.domain.exceptions import BusinessError, TurnCancelled
from kg_agent.domain.models import ChatMessage, ChatRequest, ChatResult
from kg_agent.flows.state import TurnContext, TurnState
from kg_agent.infrastructure.logging.logger import logger

FINALIZATION_PROMPT = (
    "Using the tool results already provided, write a complete final answer in the user's language. "
    "Do not call any tools. If results are empty, explain that and propose next queries."
)
DATA_RETRIEVED_TEXT = (
    "I have retrieved the relevant data from the Knowledge Graph. Please review the structured output below."
)
NO_RESPONSE_TEXT = "I'm sorry, I couldn't generate a response based on the available information."
FORMAT_ERROR_TEXT = (
    "The AI model returned an unexpected response format. Please try again or use a different model."
)
CONNECTION_ERROR_TEXT = (
    "I encountered an error connecting to the Precision Medicine Engine. Please try again or switch models."
)
MISSING_API_KEY_TEXT = (
    "⚠️ **You don't have an API key set.**\n\n"
    "To use PrimeAI, add your own Google Gemini API key.\n\n"
    "📖 You can get one for free at [Google AI Studio](https://aistudio.google.com/app/apikey)."
)

_FAILURE_TEXTS = {
    "missing_key": MISSING_API_KEY_TEXT,
    "connection": CONNECTION_ERROR_TEXT,
    "format": FORMAT_ERROR_TEXT,
}


def _request(ctx: TurnContext, messages: List[ChatMessage], tool_choice: str = "auto") -> ChatRequest:
    return ChatRequest(
        provider=ctx.provider_name,
        model=ctx.model,
        messages=list(messages),
        system_instruction=ctx.system_instruction,
        temperature=ctx.temperature,
        tools=list(ctx.tool_set.tool_defs) or None,
        web_search=ctx.tool_set.web_search,
        tool_choice=tool_choice,
        api_key=ctx.api_key,
    )


def _record_usage(ctx: TurnContext, result: ChatResult, label: str) -> None:
    if not result.usage:
        return
    usage = result.usage
    ctx.usage.add(usage.prompt_tokens, usage.completion_tokens)
    ctx.log(
        f"📊 Tokens{label}: {usage.prompt_tokens} in → {usage.completion_tokens} out "
        f"({usage.total_tokens} total)"
    )


def call_model_node(state: TurnState, ctx: TurnContext) -> TurnState:
    rounds = state.get("tool_rounds", 0)
    ctx.token.raise_if_cancelled("model request" if rounds == 0 else f"tool reply {rounds}")
    logger.info(
        "call_model_node.start",
        extra={"extra": {"trace_id": ctx.trace_id, "round": rounds, "messages": len(state["messages"])}},
    )
    try:
        result = ctx.provider.chat(_request(ctx, state["messages"]))
    except TurnCancelled:
        raise
    except BusinessError as e:
        logger.error(
            "call_model_node.provider_error",
            extra={"extra": {"trace_id": ctx.trace_id, "code": e.code, "error": e.message}},
        )
        state["failure"] = "missing_key" if e.code == "MISSING_API_KEY" else "connection"
        state["pending_calls"] = []
        return state
    except Exception as e:
        logger.exception("call_model_node.unexpected_error", extra={"extra": {"trace_id": ctx.trace_id, "error": str(e)}})
        state["failure"] = "connection"
        state["pending_calls"] = []
        return state

    _record_usage(ctx, result, f" (turn {rounds})" if rounds else "")
    if not result.choices:
        ctx.log("✗ No candidate returned from model")
        state["failure"] = "format"
        state["pending_calls"] = []
        return state

    choice = result.choices[0]
    message = choice.message
    state["messages"].append(message)
    state["text"] = message.content or None
    state["sources"] = list(choice.sources)
    state["pending_calls"] = list(message.tool_calls or [])
    if state["pending_calls"]:
        ctx.log(f"Tool calls requested: {len(state['pending_calls'])}")
    logger.info(
        "call_model_node.end",
        extra={"extra": {"trace_id": ctx.trace_id, "tool_calls": len(state["pending_calls"]), "has_text": bool(state["text"])}},
    )
    return state


def execute_tools_node(state: TurnState, ctx: TurnContext) -> TurnState:
    state["tool_rounds"] = state.get("tool_rounds", 0) + 1
    for call in state.get("pending_calls") or []:
        ctx.log(f"Calling tool: {call.name} {json.dumps(call.arguments, ensure_ascii=False)}")
        ctx.log(ctx.executor.describe(call))
        result = ctx.executor.execute(call, ctx.token)
        ctx.tool_results.append(result)
        state["messages"].append(
            ChatMessage(
                role="tool",
                content=json.dumps(result.payload, ensure_ascii=False, default=str),
                meta={"payload": result.payload},
                tool_call_id=call.id,
                tool_name=call.name,
            )
        )
        ctx.log(f"✗ Tool failed: {call.name}" if result.is_error else f"✓ Tool result received: {call.name}")
    logger.info(
        "execute_tools_node.end",
        extra={"extra": {"trace_id": ctx.trace_id, "round": state["tool_rounds"], "calls": len(state.get("pending_calls") or [])}},
    )
    state["pending_calls"] = []
    return state


def _strip_unanswered_calls(messages: List[ChatMessage]) -> List[ChatMessage]:
    stripped = list(messages)
    if stripped and stripped[-1].role == "assistant" and stripped[-1].tool_calls:
        last = stripped.pop()
        if last.content:
            stripped.append(replace(last, tool_calls=None))
    return stripped


def finalize_node(state: TurnState, ctx: TurnContext) -> TurnState:
    ctx.log("No text content returned; requesting final answer...")
    messages = _strip_unanswered_calls(state["messages"])
    messages.append(ChatMessage(role="user", content=FINALIZATION_PROMPT, meta={"finalization": True}))
    state["messages"] = messages
    state["forced_final"] = True
    state["pending_calls"] = []
    ctx.token.raise_if_cancelled("finalization")
    try:
        result = ctx.provider.chat(_request(ctx, messages, tool_choice="none"))
    except TurnCancelled:
        raise
    except Exception as e:
        logger.warning("finalize_node.failed", extra={"extra": {"trace_id": ctx.trace_id, "error": str(e)}})
        return state

    _record_usage(ctx, result, " (finalization)")
    if result.choices:
        choice = result.choices[0]
        if choice.message.content:
            state["text"] = choice.message.content
        if choice.sources:
            state["sources"] = list(choice.sources)
    return state


def finish_node(state: TurnState, ctx: TurnContext) -> TurnState:
    failure = state.get("failure")
    if failure:
        state["final_text"] = _FAILURE_TEXTS[failure]
        return state
    text = state.get("text")
    if not text:
        text = DATA_RETRIEVED_TEXT if ctx.tool_results else NO_RESPONSE_TEXT
    sources = state.get("sources") or []
    if sources:
        lines = [f"{i}. [{s.title}]({s.uri})" for i, s in enumerate(sources, start=1)]
        text += "\n\n---\n**Sources:**\n" + "\n".join(lines) + "\n"
        ctx.log(f"📚 Found {len(sources)} web sources")
    state["final_text"] = text
    return state


def model_router(state: TurnState, ctx: TurnContext) -> str:
    if state.get("failure"):
        return "finish"
    if state.get("pending_calls") and state.get("tool_rounds", 0) < ctx.max_tool_rounds:
        return "execute_tools"
    if ctx.tool_results and not state.get("text"):
        return "finalize"
    return "finish"


def build_turn_graph(ctx: TurnContext) -> CompiledStateGraph:
    graph = StateGraph(TurnState)
    graph.add_node("call_model", lambda s: call_model_node(s, ctx))
    graph.add_node("execute_tools", lambda s: execute_tools_node(s, ctx))
    graph.add_node("finalize", lambda s: finalize_node(s, ctx))
    graph.add_node("finish", lambda s: finish_node(s, ctx))
    graph.set_entry_point("call_model")
    graph.add_conditional_edges(
        "call_model",
        lambda s: model_router(s, ctx),
        {"execute_tools": "execute_tools", "finalize": "finalize", "finish": "finish"},
    )
    graph.add_edge("execute_tools", "call_model")
    graph.add_edge("finalize", "finish")
    graph.add_edge("finish", END)
    return graph.compile()


def recursion_limit(max_tool_rounds: int) -> int:
    """call_model/execute_tools 每批两步，另加首轮、finalize、finish。"""

    return 2 * max_tool_rounds + 5
