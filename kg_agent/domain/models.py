"""统一的对话与结果数据模型。

本模块定义了编排层与 LLM Provider 之间共享的标准数据结构：

- ChatMessage: 一条发给模型的消息（system/user/assistant/tool）。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。

Provider 适配器（如 GeminiClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Any, Dict, List, TYPE_CHECKING

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from kg_agent.tools.definitions import ToolCall, ToolDef


# LLM 消息角色类型
Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class Attachment:
    """随用户消息一起发送的文件（base64 编码）。"""

    name: str
    data: str
    mime_type: str


@dataclass
class ChatMessage:
    """一条发给模型的消息。

    - role: 消息角色。
    - content: 纯文本内容。
    - meta: 附加元数据，不直接发给 Provider，主要用于日志；
      assistant 消息的 meta["thought_signature"] 保存文本 part 的签名。
    - attachments: 仅 user 消息使用的内联文件。
    - tool_calls: role 为 "assistant" 且模型触发工具调用时，保存调用列表。
    - tool_call_id / tool_name: role 为 "tool" 时，关联某一次工具调用。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)
    attachments: List[Attachment] = field(default_factory=list)
    tool_calls: Optional[List["ToolCall"]] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None


@dataclass
class ChatRequest:
    """一次完整的聊天请求。

    tools 与 web_search 互斥：同一请求里不能既声明自定义函数又启用
    Provider 自带的联网搜索。
    """

    provider: str  # 逻辑 Provider 名，如 "gemini"
    model: str  # 逻辑模型名，如 "flash"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    system_instruction: Optional[str] = None
    temperature: float = 0.7
    top_p: float = 0.95
    max_tokens: Optional[int] = None
    tools: Optional[List["ToolDef"]] = None
    web_search: bool = False
    tool_choice: Literal["auto", "none", "required"] = "auto"
    api_key: Optional[str] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class WebSource:
    """联网搜索返回的引用来源。"""

    uri: str
    title: str


@dataclass
class ChatChoice:
    """单个候选回答（目前只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None
    sources: List[WebSource] = field(default_factory=list)


@dataclass
class ChatResult:
    """一次模型调用的结果。

    choices 为空表示模型没有返回任何候选（协议级失败）。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None
