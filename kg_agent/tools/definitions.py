"""工具数据结构定义。

这些 dataclass 描述了“工具调用”的 schema，既用于：
- 将可用工具列表暴露给 LLM（ToolDef / ToolParam）。
- 在编排器中保存和执行模型触发的工具调用（ToolCall / ToolCallResult）。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional

from kg_agent.graph.models import GraphShape, decode_graph_shape


class ToolName(str, Enum):
    """模型可调用的全部工具；取值即发给模型的函数名。"""

    CHECK_HEALTH = "checkHealth"
    GET_GRAPH_STATS = "getGraphStats"
    SEARCH_TEXT = "searchText"
    SEARCH_SEMANTIC = "searchSemantic"
    GET_NEIGHBORS = "getNeighbors"
    GET_SUBGRAPH = "getSubgraph"
    GET_SHORTEST_PATH = "getShortestPath"
    GET_DRUG_REPURPOSING = "getDrugRepurposing"
    GET_THERAPEUTIC_TARGETS = "getTherapeuticTargets"
    GET_MECHANISM = "getMechanism"
    GET_DRUG_COMBINATIONS = "getDrugCombinations"
    GET_PHENOTYPE_MATCHING = "getPhenotypeMatching"
    GET_ENVIRONMENTAL_RISKS = "getEnvironmentalRisks"
    GET_LITERATURE = "getLiterature"

    @classmethod
    def lookup(cls, name: str) -> Optional["ToolName"]:
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any]


@dataclass
class ToolDef:
    """一个可供 LLM 调用的工具定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam] = field(default_factory=dict)

    @property
    def required_params(self) -> list:
        return [p.name for p in self.params.values() if p.required]


@dataclass
class ToolCall:
    """模型发起的一次工具调用请求。"""

    id: str
    name: str
    arguments: Dict[str, Any]
    # Gemini 3 的 functionCall part 携带的签名，回传时必须原样附上
    thought_signature: Optional[str] = None


@dataclass
class ToolCallResult:
    """一次工具调用的结果。

    payload 要么是工具返回值（可能已截断），要么是
    {"error": True, "message": ...} 哨兵；异常永远不会穿透回模型。
    shape 在构造时由 payload 解码，供图谱合成器使用。
    """

    call_id: str
    name: str
    arguments: Dict[str, Any]
    payload: Any
    is_error: bool = False
    shape: Optional[GraphShape] = None

    def __post_init__(self) -> None:
        if self.shape is None and not self.is_error:
            self.shape = decode_graph_shape(self.payload)
