"""图谱数据结构与工具结果形状解码。

不同工具返回的 JSON 形状不一致：
- getNeighbors 返回边列表 [{source, target, relation, ...}]；
- getSubgraph / getShortestPath / getMechanism 返回 {nodes, edges}；
- 其他工具返回列表、带 candidates/targets/combinations 的对象或提示文本。

decode_graph_shape() 在工具适配层把原始结果解码为 EdgeListShape /
NodeEdgeShape（或 None），图谱合成器只消费解码后的变体。
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union


@dataclass
class GraphNode:
    id: str
    name: str
    type: str
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    source: str
    target: str
    relation: str

    @property
    def key(self) -> str:
        return f"{self.source}-{self.relation}-{self.target}"


@dataclass
class GraphPayload:
    nodes: List[GraphNode]
    edges: List[GraphEdge]
    is_truncated: bool = False


@dataclass(frozen=True)
class EdgeListShape:
    """边列表：每个元素至少包含 source / target / relation。"""

    edges: List[Dict[str, Any]]
    kind: Literal["edge_list"] = "edge_list"


@dataclass(frozen=True)
class NodeEdgeShape:
    """节点 + 边对象。"""

    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    kind: Literal["node_edge"] = "node_edge"


GraphShape = Union[EdgeListShape, NodeEdgeShape]

HypothesisKind = Literal["repurposing", "targets", "combinations"]


@dataclass
class HypothesisData:
    """假设生成类工具的排序结果（药物重定位/治疗靶点/联合用药）。"""

    kind: HypothesisKind
    items: List[Any]


def _is_edge_list(data: Any) -> bool:
    if not isinstance(data, list) or not data:
        return False
    first = data[0]
    return (
        isinstance(first, dict)
        and bool(first.get("source"))
        and bool(first.get("target"))
        and bool(first.get("relation"))
    )


def decode_graph_shape(payload: Any) -> Optional[GraphShape]:
    """把一次工具结果解码为图谱形状；无法识别时返回 None。"""

    data = payload
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError:
            return None
    if not data:
        return None

    # 截断信封：{items, truncated, originalCount}
    if isinstance(data, dict) and data.get("truncated") and isinstance(data.get("items"), list):
        data = data["items"]

    if _is_edge_list(data):
        return EdgeListShape(edges=[e for e in data if isinstance(e, dict)])

    if isinstance(data, dict) and not data.get("error"):
        nodes = data.get("nodes")
        edges = data.get("edges")
        if isinstance(nodes, list) or isinstance(edges, list):
            return NodeEdgeShape(
                nodes=[n for n in nodes or [] if isinstance(n, dict)],
                edges=[e for e in edges or [] if isinstance(e, dict)],
            )
    return None
