"""工具结果截断。

工具结果会原样发回模型，过大的列表会迅速耗尽上下文 token，
因此在返回前按条目数截断，并附带 truncated / originalCount 元数据，
让模型知道还有更多数据。截断始终保留原始顺序的前 N 项。
"""

from typing import Any, Dict, List

NAMED_ARRAY_KEYS = ("candidates", "targets", "combinations")
NODE_ID_FIELDS = ("name", "id", "db_id", "node_id")
DEFAULT_MAX_ITEMS = 25


def truncate_list(items: List[Any], max_items: int = DEFAULT_MAX_ITEMS) -> Any:
    if len(items) <= max_items:
        return items
    return {
        "items": items[:max_items],
        "truncated": True,
        "originalCount": len(items),
        "message": f"Showing first {max_items} of {len(items)} results",
    }


def _node_identifiers(node: Any) -> List[str]:
    if not isinstance(node, dict):
        return []
    return [str(node[key]) for key in NODE_ID_FIELDS if node.get(key) not in (None, "")]


def truncate_graph(result: Dict[str, Any], max_items: int = DEFAULT_MAX_ITEMS) -> Dict[str, Any]:
    """截断 {nodes, edges}：先截节点，再只保留两端都存活的边（最多 2 倍上限）。"""

    nodes = result.get("nodes") or []
    if len(nodes) <= max_items:
        return result
    edges = result.get("edges") or []
    kept_nodes = nodes[:max_items]
    surviving = {ident for node in kept_nodes for ident in _node_identifiers(node)}
    kept_edges = [
        e
        for e in edges
        if isinstance(e, dict) and str(e.get("source")) in surviving and str(e.get("target")) in surviving
    ][: max_items * 2]
    return {
        **result,
        "nodes": kept_nodes,
        "edges": kept_edges,
        "truncated": True,
        "originalCount": len(nodes),
        "originalEdgeCount": len(edges),
    }


def truncate_named_arrays(result: Dict[str, Any], max_items: int = DEFAULT_MAX_ITEMS) -> Dict[str, Any]:
    original_counts: Dict[str, int] = {}
    truncated = dict(result)
    for key in NAMED_ARRAY_KEYS:
        values = result.get(key)
        if isinstance(values, list) and len(values) > max_items:
            truncated[key] = values[:max_items]
            original_counts[key] = len(values)
    if not original_counts:
        return result
    truncated["truncated"] = True
    truncated["originalCount"] = next(iter(original_counts.values()))
    if len(original_counts) > 1:
        truncated["originalCounts"] = original_counts
    return truncated


def truncate_tool_response(result: Any, max_items: int = DEFAULT_MAX_ITEMS) -> Any:
    """按结果形状截断；错误哨兵与无法识别的形状原样返回。"""

    if not result:
        return result
    if isinstance(result, list):
        return truncate_list(result, max_items)
    if not isinstance(result, dict) or result.get("error"):
        return result
    if isinstance(result.get("nodes"), list):
        return truncate_graph(result, max_items)
    if any(isinstance(result.get(key), list) for key in NAMED_ARRAY_KEYS):
        return truncate_named_arrays(result, max_items)
    return result
