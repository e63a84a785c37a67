import pytest

from kg_agent.domain.cancellation import CancellationToken
from kg_agent.domain.exceptions import ApiError, NetworkError, NotFoundError, TurnCancelled
from kg_agent.graph.models import EdgeListShape, NodeEdgeShape
from kg_agent.services.literature_client import Citation
from kg_agent.tools.adapters import build_adapter_table, knowledge_graph_declarations
from kg_agent.tools.definitions import ToolCall, ToolName
from kg_agent.tools.executor import GENERIC_TOOL_ERROR, ToolExecutor


class FakeKG:
    def __init__(self):
        self.calls = []

    def _record(self, name, *args):
        self.calls.append((name,) + args)

    def get_health(self, token=None):
        self._record("health")
        return {"status": "ok"}

    def get_stats(self, token=None):
        self._record("stats")
        return {"nodes": 10}

    def search_text(self, query, token=None):
        self._record("search_text", query)
        return [{"name": f"{query}-{i}"} for i in range(40)]

    def search_semantic(self, query, token=None):
        self._record("search_semantic", query)
        raise NetworkError(code="NETWORK_ERROR", message="connection reset")

    def get_neighbors(self, node, token=None):
        self._record("neighbors", node)
        return [{"source": node, "target": "Aspirin", "relation": "target", "source_type": "gene/protein"}]

    def get_subgraph(self, entity, hops=1, limit=50, token=None):
        self._record("subgraph", entity, hops, limit)
        return {"nodes": [{"name": entity, "type": "gene/protein"}], "edges": []}

    def get_shortest_path(self, source, target, token=None):
        self._record("path", source, target)
        raise NotFoundError(code="NOT_FOUND", message="API Error: 404", http_status=404)

    def get_drug_repurposing(self, disease, token=None):
        return {"candidates": [{"drug": "A"}]}

    def get_therapeutic_targets(self, disease, token=None):
        return {"targets": []}

    def get_drug_combinations(self, drug, token=None):
        return {"combinations": []}

    def get_drug_mechanism(self, drug, disease, token=None):
        raise NotFoundError(code="NOT_FOUND", message="404", http_status=404)

    def get_phenotype_matching(self, disease, token=None):
        raise ApiError(code="API_ERROR", message="API Error: 500 - boom", http_status=500)

    def get_environmental_risks(self, disease, token=None):
        raise RuntimeError("unexpected")


class FakeLiterature:
    def __init__(self):
        self.calls = []

    def search_entity_citations(self, entity, entity_type="gene", limit=5, token=None):
        self.calls.append((entity, entity_type, limit))
        return [
            Citation(
                id="1",
                pmid="111",
                title="Paper",
                authors="A",
                journal="J",
                year="2020",
                cited_by_count=7,
                abstract="a" * 400,
            ),
            Citation(id="2", pmid="222", title="Short", authors="B", journal="J", year="2021"),
        ]


def _executor(kg=None, lit=None, max_items=25):
    return ToolExecutor(build_adapter_table(kg or FakeKG(), lit or FakeLiterature()), max_items=max_items)


def test_declarations_cover_every_tool_name():
    names = [d.name for d in knowledge_graph_declarations()]
    assert sorted(names) == sorted(n.value for n in ToolName)
    neighbors = next(d for d in knowledge_graph_declarations() if d.name == "getNeighbors")
    assert neighbors.required_params == ["nodeId"]


def test_neighbors_result_decodes_edge_list():
    kg = FakeKG()
    res = _executor(kg).execute(ToolCall(id="c1", name="getNeighbors", arguments={"nodeId": "CNR1"}))
    assert not res.is_error
    assert res.call_id == "c1"
    assert isinstance(res.shape, EdgeListShape)
    assert kg.calls == [("neighbors", "CNR1")]


def test_subgraph_defaults_and_coercion():
    kg = FakeKG()
    te = _executor(kg)
    res = te.execute(ToolCall(id="c1", name="getSubgraph", arguments={"entity": "TP53"}))
    te.execute(ToolCall(id="c2", name="getSubgraph", arguments={"entity": "TP53", "hops": 2.0, "limit": "20"}))
    assert kg.calls == [("subgraph", "TP53", 1, 50), ("subgraph", "TP53", 2, 20)]
    assert isinstance(res.shape, NodeEdgeShape)


def test_not_found_becomes_benign_sentence():
    res = _executor().execute(
        ToolCall(id="p", name="getShortestPath", arguments={"source": "A", "target": "B"})
    )
    assert not res.is_error
    assert res.payload == {"result": "No path found between these entities within limit."}
    mech = _executor().execute(ToolCall(id="m", name="getMechanism", arguments={"drug": "A", "disease": "B"}))
    assert mech.payload == {"result": "No direct mechanism of action found in Knowledge Graph."}


def test_failures_become_error_sentinels():
    te = _executor()
    net = te.execute(ToolCall(id="1", name="searchSemantic", arguments={"query": "x"}))
    api = te.execute(ToolCall(id="2", name="getPhenotypeMatching", arguments={"disease": "x"}))
    boom = te.execute(ToolCall(id="3", name="getEnvironmentalRisks", arguments={"disease": "x"}))
    assert net.is_error and net.payload == {"error": True, "message": "connection reset"}
    assert api.is_error and "500" in api.payload["message"]
    assert boom.is_error and boom.payload["message"] == GENERIC_TOOL_ERROR
    assert net.shape is None


def test_unknown_tool_and_missing_arguments():
    te = _executor()
    unknown = te.execute(ToolCall(id="u", name="dropDatabase", arguments={}))
    assert unknown.payload == {"error": True, "message": "Unknown function: dropDatabase"}
    missing = te.execute(ToolCall(id="m", name="getShortestPath", arguments={"source": "A", "target": "  "}))
    assert missing.is_error
    assert "target" in missing.payload["message"]


def test_large_results_are_truncated():
    res = _executor(max_items=25).execute(ToolCall(id="s", name="searchText", arguments={"query": "q"}))
    assert res.payload["truncated"] is True
    assert res.payload["originalCount"] == 40
    assert len(res.payload["items"]) == 25


def test_identical_successful_calls_are_cached():
    kg = FakeKG()
    te = _executor(kg)
    first = te.execute(ToolCall(id="a", name="getNeighbors", arguments={"nodeId": "CNR1"}))
    second = te.execute(ToolCall(id="b", name="getNeighbors", arguments={"nodeId": "CNR1"}))
    assert len(kg.calls) == 1
    assert second.call_id == "b"
    assert second.payload == first.payload


def test_failed_calls_are_not_cached():
    kg = FakeKG()
    te = _executor(kg)
    te.execute(ToolCall(id="a", name="searchSemantic", arguments={"query": "x"}))
    te.execute(ToolCall(id="b", name="searchSemantic", arguments={"query": "x"}))
    assert len(kg.calls) == 2


def test_literature_results_are_simplified():
    lit = FakeLiterature()
    res = _executor(lit=lit).execute(
        ToolCall(id="l", name="getLiterature", arguments={"entity": "BRCA1", "type": "Disease"})
    )
    assert lit.calls == [("BRCA1", "disease", 5)]
    first, second = res.payload
    assert first == {"id": "111", "title": "Paper", "year": "2020", "cited": 7, "abstract": "a" * 300 + "..."}
    assert second["abstract"] == "No abstract"


def test_literature_unknown_type_falls_back_to_gene():
    lit = FakeLiterature()
    _executor(lit=lit).execute(ToolCall(id="l", name="getLiterature", arguments={"entity": "X", "type": "planet"}))
    assert lit.calls[0][1] == "gene"


def test_cancelled_token_stops_before_external_call():
    kg = FakeKG()
    token = CancellationToken()
    token.cancel()
    with pytest.raises(TurnCancelled):
        _executor(kg).execute(ToolCall(id="c", name="checkHealth", arguments={}), token)
    assert kg.calls == []


def test_describe_for_trace():
    te = _executor()
    line = te.describe(ToolCall(id="x", name="getSubgraph", arguments={"entity": "TP53"}))
    assert line == "→ PrimeKG: subgraph for TP53 (hops=1, limit=50)"
    assert te.describe(ToolCall(id="y", name="nope", arguments={})) == "→ nope"
