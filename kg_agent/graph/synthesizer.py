"""图谱数据合成器。

把一轮对话中累积的全部工具结果合并为一个可渲染的 GraphPayload：

1. 边列表（getNeighbors）：边的两端成为节点，类型取显式的
   source_type / target_type，否则按 PrimeKG 关系语义推断。
2. 节点/边对象（getSubgraph 等）：节点 id 取 name / id / db_id / node_id
   中第一个存在的值，类型规范化为首字母大写。

节点按 id 去重，边按 source-relation-target 去重，先出现者保留。
无法推断的类型统一记为 Unknown。
"""

from typing import Any, Dict, Iterable, List, Optional

from kg_agent.tools.definitions import ToolCallResult, ToolName
from .models import (
    EdgeListShape,
    GraphEdge,
    GraphNode,
    GraphPayload,
    HypothesisData,
    NodeEdgeShape,
)

UNKNOWN_TYPE = "Unknown"
DEFAULT_RELATION = "related_to"
MAX_NODES = 100
MAX_EDGES = 200

_INDICATION_RELATIONS = {"indication", "contraindication", "off_label_use"}
_TARGET_RELATIONS = {"target", "transporter", "enzyme", "carrier"}
_NODE_ID_FIELDS = ("name", "id", "db_id", "node_id")

_HYPOTHESIS_TOOLS = (
    (ToolName.GET_DRUG_REPURPOSING, "repurposing", "candidates"),
    (ToolName.GET_THERAPEUTIC_TARGETS, "targets", "targets"),
    (ToolName.GET_DRUG_COMBINATIONS, "combinations", "combinations"),
)


def normalize_node_type(raw: Any) -> str:
    if not raw:
        return UNKNOWN_TYPE
    text = str(raw).strip()
    if not text:
        return UNKNOWN_TYPE
    if text.lower().replace("/", "") == "geneprotein":
        return "GeneProtein"
    return text[0].upper() + text[1:]


def infer_node_type(edge: Dict[str, Any], is_source: bool) -> str:
    """推断边列表中某一端的节点类型。"""

    explicit = edge.get("source_type") if is_source else edge.get("target_type")
    if explicit:
        return normalize_node_type(explicit)

    relation = str(edge.get("relation") or "").lower()
    other = str((edge.get("target_type") if is_source else edge.get("source_type")) or "").lower()

    if relation in _INDICATION_RELATIONS:
        if "drug" in other:
            return "Disease"
        if "disease" in other:
            return "Drug"
    if relation in _TARGET_RELATIONS:
        return "Drug" if is_source else "GeneProtein"
    if relation == "synergistic_interaction":
        return "Drug"
    if relation == "ppi":
        return "GeneProtein"
    if "phenotype" in relation:
        return "Phenotype" if "disease" in other else "Disease"
    return UNKNOWN_TYPE


def _node_id(node: Dict[str, Any]) -> Optional[str]:
    for key in _NODE_ID_FIELDS:
        value = node.get(key)
        if value not in (None, ""):
            return str(value)
    return None


class _Accumulator:
    def __init__(self) -> None:
        self.nodes: List[GraphNode] = []
        self.edges: List[GraphEdge] = []
        self._node_ids = set()
        self._edge_keys = set()

    def add_node(self, node: GraphNode) -> None:
        if node.id in self._node_ids:
            return
        self._node_ids.add(node.id)
        self.nodes.append(node)

    def add_edge(self, source: Any, target: Any, relation: Any) -> None:
        if not source or not target:
            return
        edge = GraphEdge(source=str(source), target=str(target), relation=str(relation or DEFAULT_RELATION))
        if edge.key in self._edge_keys:
            return
        self._edge_keys.add(edge.key)
        self.edges.append(edge)


def _add_edge_list(acc: _Accumulator, shape: EdgeListShape) -> None:
    for edge in shape.edges:
        source, target = edge.get("source"), edge.get("target")
        if source:
            acc.add_node(GraphNode(id=str(source), name=str(source), type=infer_node_type(edge, True)))
        if target:
            acc.add_node(GraphNode(id=str(target), name=str(target), type=infer_node_type(edge, False)))
        acc.add_edge(source, target, edge.get("relation"))


def _add_node_edge(acc: _Accumulator, shape: NodeEdgeShape) -> None:
    for node in shape.nodes:
        node_id = _node_id(node)
        if node_id is None:
            continue
        attributes = {k: v for k, v in node.items() if k not in ("name", "type")}
        acc.add_node(
            GraphNode(
                id=node_id,
                name=str(node.get("name") or node_id),
                type=normalize_node_type(node.get("type")),
                attributes=attributes,
            )
        )
    for edge in shape.edges:
        acc.add_edge(edge.get("source"), edge.get("target"), edge.get("relation"))


def synthesize_graph(
    tool_results: Iterable[ToolCallResult],
    max_nodes: int = MAX_NODES,
    max_edges: int = MAX_EDGES,
) -> Optional[GraphPayload]:
    """合并工具结果为 GraphPayload；没有任何节点时返回 None。"""

    acc = _Accumulator()
    for result in tool_results or []:
        if result.is_error or result.shape is None:
            continue
        if isinstance(result.shape, EdgeListShape):
            _add_edge_list(acc, result.shape)
        elif isinstance(result.shape, NodeEdgeShape):
            _add_node_edge(acc, result.shape)

    if not acc.nodes:
        return None

    nodes = acc.nodes
    is_truncated = len(nodes) > max_nodes
    if is_truncated:
        nodes = nodes[:max_nodes]
    node_ids = {n.id for n in nodes}
    edges = [e for e in acc.edges if e.source in node_ids and e.target in node_ids]
    if is_truncated:
        edges = edges[:max_edges]
    return GraphPayload(nodes=nodes, edges=edges, is_truncated=is_truncated)


def _unwrap_items(payload: Any, key: str) -> Optional[List[Any]]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict) or payload.get("error"):
        return None
    if isinstance(payload.get(key), list):
        return payload[key]
    if payload.get("truncated") and isinstance(payload.get("items"), list):
        return payload["items"]
    return None


def extract_hypothesis(tool_results: Iterable[ToolCallResult]) -> Optional[HypothesisData]:
    """提取假设生成类结果，按 重定位 > 靶点 > 联合用药 的优先级取第一个。"""

    results = [r for r in tool_results or [] if not r.is_error]
    for tool, kind, key in _HYPOTHESIS_TOOLS:
        match = next((r for r in results if r.name == tool.value), None)
        if match is None:
            continue
        items = _unwrap_items(match.payload, key)
        if items is not None:
            return HypothesisData(kind=kind, items=items)
        return None
    return None
