"""会话层模型。

- ConversationMessage: 调用方持有的历史消息（只读输入）。
- TokenUsage: 单轮对话内所有模型往返的 token 累计。
- TurnOptions: 单轮对话的显式选项（替代会话级的全局开关）。
- TurnResult: 单轮对话的最终输出。
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, TYPE_CHECKING

from .cancellation import CancellationToken
from .models import Attachment, WebSource

if TYPE_CHECKING:
    from kg_agent.graph.models import GraphPayload, HypothesisData
    from kg_agent.tools.definitions import ToolCallResult


ConversationRole = Literal["user", "model", "system"]
TurnStatus = Literal["done", "cancelled"]


@dataclass
class ConversationMessage:
    role: ConversationRole
    content: str
    attachments: List[Attachment] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def add(self, prompt_tokens: int, completion_tokens: int) -> None:
        self.prompt_tokens += prompt_tokens or 0
        self.completion_tokens += completion_tokens or 0


@dataclass
class TurnOptions:
    """单轮对话选项。

    Attributes:
        enable_web_search: True 时切换到联网搜索模式（知识图谱工具不可用）。
        active_tool: UI 中选中的工具 id（如 "repurposing"），用于注入聚焦提示词。
        tool_context: 额外的上下文文本，原样附加到系统提示词末尾。
        attachments: 随本轮用户消息发送的文件。
        model: 逻辑模型名，为空时使用配置中的默认值。
        api_key: 用户自带的 API key，优先于配置。
        on_log: 工具执行轨迹回调，供 UI 实时展示。
        token: 取消令牌；为空时由编排器自动创建。
    """

    enable_web_search: bool = False
    active_tool: Optional[str] = None
    tool_context: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)
    model: Optional[str] = None
    api_key: Optional[str] = None
    on_log: Optional[Callable[[str], None]] = None
    token: Optional[CancellationToken] = None


@dataclass
class TurnResult:
    status: TurnStatus
    text: Optional[str]
    tool_results: List["ToolCallResult"] = field(default_factory=list)
    graph: Optional["GraphPayload"] = None
    hypothesis: Optional["HypothesisData"] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    sources: List[WebSource] = field(default_factory=list)
    trace: List[str] = field(default_factory=list)
    tool_rounds: int = 0
    forced_final: bool = False

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"
