"""历史消息窗口化。

每次请求只发送最近 M 条历史，单条文本超过 L 个字符时截断并加标记；
被丢弃的更早消息用一条 system 摘要消息说明数量。函数是纯函数，
对自己的输出再次调用结果不变。
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Sequence

from kg_agent.domain.conversation import ConversationMessage

TRUNCATION_MARKER = "...[truncated]"
SUMMARY_TEMPLATE = (
    "[Context: This conversation has {count} earlier messages not shown. "
    "The discussion may reference earlier topics.]"
)


def _is_summary(message: ConversationMessage) -> bool:
    return message.role == "system" and bool(message.meta.get("history_summary"))


def cap_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + TRUNCATION_MARKER


def summary_message(omitted: int) -> ConversationMessage:
    return ConversationMessage(
        role="system",
        content=SUMMARY_TEMPLATE.format(count=omitted),
        meta={"history_summary": True, "omitted": omitted},
    )


def window_history(
    messages: Sequence[ConversationMessage],
    max_messages: int = 10,
    max_length: int = 2000,
    include_summary: bool = True,
) -> List[ConversationMessage]:
    body = list(messages)
    omitted = 0
    if body and _is_summary(body[0]):
        omitted = int(body[0].meta.get("omitted") or 0)
        body = body[1:]

    if len(body) > max_messages:
        omitted += len(body) - max_messages
        body = body[-max_messages:] if max_messages > 0 else []

    windowed = [
        replace(m, content=cap_text(m.content or "", max_length), meta=dict(m.meta), attachments=list(m.attachments))
        for m in body
    ]
    if include_summary and omitted > 0:
        windowed.insert(0, summary_message(omitted))
    return windowed
