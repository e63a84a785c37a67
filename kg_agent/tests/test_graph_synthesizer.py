import json

from kg_agent.graph.models import EdgeListShape, NodeEdgeShape, decode_graph_shape
from kg_agent.graph.synthesizer import (
    extract_hypothesis,
    infer_node_type,
    normalize_node_type,
    synthesize_graph,
)
from kg_agent.tools.definitions import ToolCallResult


def _result(name, payload, is_error=False):
    return ToolCallResult(call_id=name, name=name, arguments={}, payload=payload, is_error=is_error)


def test_decode_shapes():
    edges = [{"source": "A", "target": "B", "relation": "ppi"}]
    assert isinstance(decode_graph_shape(edges), EdgeListShape)
    assert isinstance(decode_graph_shape(json.dumps(edges)), EdgeListShape)
    assert isinstance(decode_graph_shape({"nodes": [], "edges": []}), NodeEdgeShape)
    envelope = {"items": edges, "truncated": True, "originalCount": 40}
    assert isinstance(decode_graph_shape(envelope), EdgeListShape)
    assert decode_graph_shape({"result": "No path found"}) is None
    assert decode_graph_shape({"error": True, "nodes": []}) is None
    assert decode_graph_shape([{"source": "A", "target": "B"}]) is None
    assert decode_graph_shape("not json") is None


def test_normalize_node_type():
    assert normalize_node_type("disease") == "Disease"
    assert normalize_node_type("geneprotein") == "GeneProtein"
    assert normalize_node_type("gene/protein") == "GeneProtein"
    assert normalize_node_type("effect/phenotype") == "Effect/phenotype"
    assert normalize_node_type(None) == "Unknown"
    assert normalize_node_type("") == "Unknown"


def test_infer_node_type_rules():
    assert infer_node_type({"relation": "indication", "target_type": "drug"}, True) == "Disease"
    assert infer_node_type({"relation": "contraindication", "source_type": "disease"}, False) == "Drug"
    assert infer_node_type({"relation": "target"}, True) == "Drug"
    assert infer_node_type({"relation": "enzyme"}, False) == "GeneProtein"
    assert infer_node_type({"relation": "synergistic_interaction"}, False) == "Drug"
    assert infer_node_type({"relation": "ppi"}, True) == "GeneProtein"
    assert infer_node_type({"relation": "disease_phenotype_positive", "source_type": "disease"}, False) == "Phenotype"
    assert infer_node_type({"relation": "phenotype_present"}, True) == "Disease"
    assert infer_node_type({"relation": "exposure_disease"}, True) == "Unknown"
    assert infer_node_type({"relation": "ppi", "source_type": "drug"}, True) == "Drug"


def test_neighbors_scenario_graph():
    payload = [
        {"source": "CNR1", "target": "Cannabidiol", "relation": "target", "target_type": "drug"},
        {"source": "CNR1", "target": "GPR55", "relation": "ppi"},
        {"source": "CNR1", "target": "GPR55", "relation": "ppi"},
    ]
    graph = synthesize_graph([_result("getNeighbors", payload)])
    assert [n.id for n in graph.nodes] == ["CNR1", "Cannabidiol", "GPR55"]
    assert [n.type for n in graph.nodes] == ["Drug", "Drug", "GeneProtein"]
    assert [e.key for e in graph.edges] == ["CNR1-target-Cannabidiol", "CNR1-ppi-GPR55"]
    assert graph.is_truncated is False


def test_node_edge_results_merge_first_seen_wins():
    first = {
        "nodes": [{"name": "TP53", "type": "gene/protein", "db_id": 7}, {"id": "MDM2"}],
        "edges": [{"source": "TP53", "target": "MDM2"}],
    }
    second = {
        "nodes": [{"name": "TP53", "type": "disease"}, {"node_id": "Aspirin", "type": "drug"}],
        "edges": [{"source": "TP53", "target": "MDM2"}, {"source": "Aspirin", "target": "Ghost", "relation": "x"}],
    }
    graph = synthesize_graph([_result("getSubgraph", first), _result("getSubgraph", second)])
    by_id = {n.id: n for n in graph.nodes}
    assert by_id["TP53"].type == "GeneProtein"
    assert by_id["TP53"].attributes["db_id"] == 7
    assert by_id["MDM2"].type == "Unknown"
    assert by_id["Aspirin"].type == "Drug"
    assert [(e.source, e.relation, e.target) for e in graph.edges] == [("TP53", "related_to", "MDM2")]


def test_large_graph_is_truncated_without_dangling_edges():
    nodes = [{"name": f"n{i}", "type": "drug"} for i in range(150)]
    edges = [{"source": f"n{i}", "target": f"n{i + 1}", "relation": "r"} for i in range(149)]
    graph = synthesize_graph([_result("getSubgraph", {"nodes": nodes, "edges": edges})])
    assert len(graph.nodes) == 100
    assert graph.is_truncated is True
    ids = {n.id for n in graph.nodes}
    assert all(e.source in ids and e.target in ids for e in graph.edges)
    assert len(graph.edges) == 99


def test_edge_cap_applies_when_truncated():
    nodes = [{"name": f"n{i}"} for i in range(12)]
    edges = [{"source": f"n{a}", "target": f"n{b}", "relation": "r"} for a in range(10) for b in range(10)]
    graph = synthesize_graph([_result("getSubgraph", {"nodes": nodes, "edges": edges})], max_nodes=10, max_edges=20)
    assert len(graph.nodes) == 10
    assert len(graph.edges) == 20


def test_no_nodes_returns_none():
    results = [
        _result("getShortestPath", {"result": "No path found between these entities within limit."}),
        _result("getSubgraph", {"error": True, "message": "boom"}, is_error=True),
    ]
    assert synthesize_graph(results) is None
    assert synthesize_graph([]) is None


def test_extract_hypothesis():
    repurposing = _result("getDrugRepurposing", {"candidates": [{"drug": "A"}], "disease": "X"})
    targets = _result("getTherapeuticTargets", [{"gene": "T"}])
    hyp = extract_hypothesis([targets, repurposing])
    assert hyp.kind == "repurposing"
    assert hyp.items == [{"drug": "A"}]
    assert extract_hypothesis([targets]).kind == "targets"
    truncated = _result("getDrugCombinations", {"items": [1, 2], "truncated": True, "originalCount": 30})
    assert extract_hypothesis([truncated]).items == [1, 2]
    assert extract_hypothesis([_result("getNeighbors", [])]) is None
