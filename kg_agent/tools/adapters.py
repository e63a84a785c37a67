"""工具适配表。

把抽象的工具名（ToolName）映射到：
- 暴露给模型的函数声明（ToolDef）；
- 实际调用外部服务的 handler；
- 外部服务返回 404 时给模型看的“未找到”提示；
- 是否对结果做条目截断；
- 写入轨迹（trace）的简短描述。

表以 ToolName 为键构建，build_adapter_table() 会校验每个 ToolName 都有适配器。
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from kg_agent.domain.cancellation import CancellationToken
from kg_agent.services.literature_client import ENTITY_TYPES, Citation
from .definitions import ToolDef, ToolName, ToolParam

Handler = Callable[[Dict[str, Any], Optional[CancellationToken]], Any]

DEFAULT_NOT_FOUND = "No matching data found in the Knowledge Graph for this query."
LITERATURE_LIMIT = 5
ABSTRACT_PREVIEW_CHARS = 300


class KnowledgeGraphService(Protocol):
    def get_health(self, token: Optional[CancellationToken] = None) -> Any: ...

    def get_stats(self, token: Optional[CancellationToken] = None) -> Any: ...

    def search_text(self, query: str, token: Optional[CancellationToken] = None) -> Any: ...

    def search_semantic(self, query: str, token: Optional[CancellationToken] = None) -> Any: ...

    def get_neighbors(self, node: str, token: Optional[CancellationToken] = None) -> Any: ...

    def get_subgraph(
        self, entity: str, hops: int = 1, limit: int = 50, token: Optional[CancellationToken] = None
    ) -> Any: ...

    def get_shortest_path(self, source: str, target: str, token: Optional[CancellationToken] = None) -> Any: ...

    def get_drug_repurposing(self, disease: str, token: Optional[CancellationToken] = None) -> Any: ...

    def get_therapeutic_targets(self, disease: str, token: Optional[CancellationToken] = None) -> Any: ...

    def get_drug_combinations(self, drug: str, token: Optional[CancellationToken] = None) -> Any: ...

    def get_drug_mechanism(self, drug: str, disease: str, token: Optional[CancellationToken] = None) -> Any: ...

    def get_phenotype_matching(self, disease: str, token: Optional[CancellationToken] = None) -> Any: ...

    def get_environmental_risks(self, disease: str, token: Optional[CancellationToken] = None) -> Any: ...


class LiteratureService(Protocol):
    def search_entity_citations(
        self, entity: str, entity_type: str = "gene", limit: int = 5, token: Optional[CancellationToken] = None
    ) -> List[Citation]: ...


@dataclass
class ToolAdapter:
    name: ToolName
    declaration: ToolDef
    handler: Handler
    not_found_message: str = DEFAULT_NOT_FOUND
    truncate: bool = True
    describe: Optional[Callable[[Dict[str, Any]], str]] = None


def _string(name: str, description: str, required: bool = True) -> ToolParam:
    return ToolParam(name=name, description=description, required=required, schema={"type": "string"})


def _number(name: str, description: str) -> ToolParam:
    return ToolParam(name=name, description=description, required=False, schema={"type": "number"})


def _declare(name: ToolName, description: str, *params: ToolParam) -> ToolDef:
    return ToolDef(name=name.value, description=description, params={p.name: p for p in params})


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


def _simplify_citation(citation: Citation) -> Dict[str, Any]:
    abstract = citation.abstract
    return {
        "id": citation.pmid or citation.id,
        "title": citation.title,
        "year": citation.year,
        "cited": citation.cited_by_count,
        "abstract": abstract[:ABSTRACT_PREVIEW_CHARS] + "..." if abstract else "No abstract",
    }


def knowledge_graph_declarations() -> List[ToolDef]:
    """知识图谱模式下暴露给模型的全部函数声明。"""

    return [
        _declare(ToolName.CHECK_HEALTH, "Check the health status of the PrimeKG API."),
        _declare(
            ToolName.GET_GRAPH_STATS,
            "Get statistics about the Knowledge Graph (node counts, edge counts).",
        ),
        _declare(
            ToolName.SEARCH_TEXT,
            "Perform a text-based search in the Knowledge Graph.",
            _string("query", "The search query text."),
        ),
        _declare(
            ToolName.SEARCH_SEMANTIC,
            "Perform an AI-powered semantic search to find related entities in the Knowledge Graph.",
            _string("query", "The search query."),
        ),
        _declare(
            ToolName.GET_NEIGHBORS,
            "Get 1-hop neighbors for a specific node in the graph. "
            "IMPORTANT: Use the entity NAME (e.g., 'CNR1', 'Aspirin'), NOT the numeric db_id.",
            _string(
                "nodeId",
                "The NAME of the entity (e.g., 'CNR1', 'Aspirin', 'Diabetes'). Do NOT use numeric IDs like '1268'.",
            ),
        ),
        _declare(
            ToolName.GET_SUBGRAPH,
            "Get a subgraph visualization for a specific entity. "
            "IMPORTANT: Use the entity NAME (e.g., 'CNR1', 'Aspirin'), NOT the numeric db_id.",
            _string("entity", "The NAME of the entity (e.g., 'CNR1', 'Aspirin'). Do NOT use numeric IDs."),
            _number("hops", "Number of hops to traverse (1-3). Default: 1"),
            _number("limit", "Maximum number of nodes to return. Default: 50"),
        ),
        _declare(
            ToolName.GET_SHORTEST_PATH,
            "Find the shortest path between two entities in the graph. "
            "IMPORTANT: Use entity NAMES (e.g., 'CNR1', 'Aspirin'), NOT numeric db_ids.",
            _string("source", "The NAME of the source entity (e.g., 'CNR1', 'Aspirin')."),
            _string("target", "The NAME of the target entity (e.g., 'Diabetes', 'TP53')."),
        ),
        _declare(
            ToolName.GET_DRUG_REPURPOSING,
            "Find potential drug repurposing candidates for a specific disease.",
            _string("disease", "The name of the disease."),
        ),
        _declare(
            ToolName.GET_THERAPEUTIC_TARGETS,
            "Identify therapeutic targets (genes/proteins) for a disease.",
            _string("disease", "The name of the disease."),
        ),
        _declare(
            ToolName.GET_MECHANISM,
            "Explore the biological mechanism of action between a drug and a disease.",
            _string("drug", "The drug name."),
            _string("disease", "The disease name."),
        ),
        _declare(
            ToolName.GET_DRUG_COMBINATIONS,
            "Find potential drug combinations and synergistic interactions.",
            _string("drug", "The name of the drug."),
        ),
        _declare(
            ToolName.GET_PHENOTYPE_MATCHING,
            "Find drug candidates based on shared phenotypes (symptoms) with a disease.",
            _string("disease", "The disease name to find matches for."),
        ),
        _declare(
            ToolName.GET_ENVIRONMENTAL_RISKS,
            "Identify environmental exposures and risk factors linked to a disease.",
            _string("disease", "The disease name to analyze."),
        ),
        _declare(
            ToolName.GET_LITERATURE,
            "Search for scientific literature (PubMed/Europe PMC) to find evidence, papers, "
            "or citations for a specific biomedical entity.",
            _string("entity", "The name of the entity (gene, drug, disease)."),
            _string(
                "type",
                "The type of entity: 'gene', 'drug', 'disease', or 'pathway'. Default: 'gene'",
                required=False,
            ),
        ),
    ]


def build_adapter_table(kg: KnowledgeGraphService, literature: LiteratureService) -> Dict[ToolName, ToolAdapter]:
    """构建完整的工具适配表。"""

    declarations = {ToolName(d.name): d for d in knowledge_graph_declarations()}

    def _literature(args: Dict[str, Any], token: Optional[CancellationToken]) -> Any:
        entity_type = str(args.get("type") or "gene").lower()
        if entity_type not in ENTITY_TYPES:
            entity_type = "gene"
        citations = literature.search_entity_citations(
            str(args["entity"]), entity_type, LITERATURE_LIMIT, token=token
        )
        return [_simplify_citation(c) for c in citations]

    adapters = [
        ToolAdapter(
            name=ToolName.CHECK_HEALTH,
            declaration=declarations[ToolName.CHECK_HEALTH],
            handler=lambda args, token: kg.get_health(token=token),
            truncate=False,
            describe=lambda args: "→ PrimeKG: /health",
        ),
        ToolAdapter(
            name=ToolName.GET_GRAPH_STATS,
            declaration=declarations[ToolName.GET_GRAPH_STATS],
            handler=lambda args, token: kg.get_stats(token=token),
            truncate=False,
            describe=lambda args: "→ PrimeKG: /stats",
        ),
        ToolAdapter(
            name=ToolName.SEARCH_TEXT,
            declaration=declarations[ToolName.SEARCH_TEXT],
            handler=lambda args, token: kg.search_text(str(args["query"]), token=token),
            not_found_message="No entities matched this text search.",
            describe=lambda args: f"→ PrimeKG: /search/text?q={args.get('query', '')}",
        ),
        ToolAdapter(
            name=ToolName.SEARCH_SEMANTIC,
            declaration=declarations[ToolName.SEARCH_SEMANTIC],
            handler=lambda args, token: kg.search_semantic(str(args["query"]), token=token),
            not_found_message="No entities matched this semantic search.",
            describe=lambda args: f"→ PrimeKG: /search/semantic?q={args.get('query', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_NEIGHBORS,
            declaration=declarations[ToolName.GET_NEIGHBORS],
            handler=lambda args, token: kg.get_neighbors(str(args["nodeId"]), token=token),
            not_found_message="Entity found, but has no recorded neighbors in this graph view.",
            describe=lambda args: f"→ PrimeKG: neighbors for {args.get('nodeId', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_SUBGRAPH,
            declaration=declarations[ToolName.GET_SUBGRAPH],
            handler=lambda args, token: kg.get_subgraph(
                str(args["entity"]),
                _as_int(args.get("hops"), 1),
                _as_int(args.get("limit"), 50),
                token=token,
            ),
            not_found_message="No subgraph found for this entity.",
            describe=lambda args: (
                f"→ PrimeKG: subgraph for {args.get('entity', '')} "
                f"(hops={_as_int(args.get('hops'), 1)}, limit={_as_int(args.get('limit'), 50)})"
            ),
        ),
        ToolAdapter(
            name=ToolName.GET_SHORTEST_PATH,
            declaration=declarations[ToolName.GET_SHORTEST_PATH],
            handler=lambda args, token: kg.get_shortest_path(str(args["source"]), str(args["target"]), token=token),
            not_found_message="No path found between these entities within limit.",
            describe=lambda args: f"→ PrimeKG: path {args.get('source', '')} → {args.get('target', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_DRUG_REPURPOSING,
            declaration=declarations[ToolName.GET_DRUG_REPURPOSING],
            handler=lambda args, token: kg.get_drug_repurposing(str(args["disease"]), token=token),
            not_found_message="No drug repurposing candidates found for this disease.",
            describe=lambda args: f"→ PrimeKG: repurposing for {args.get('disease', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_THERAPEUTIC_TARGETS,
            declaration=declarations[ToolName.GET_THERAPEUTIC_TARGETS],
            handler=lambda args, token: kg.get_therapeutic_targets(str(args["disease"]), token=token),
            not_found_message="No therapeutic targets found for this disease.",
            describe=lambda args: f"→ PrimeKG: targets for {args.get('disease', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_MECHANISM,
            declaration=declarations[ToolName.GET_MECHANISM],
            handler=lambda args, token: kg.get_drug_mechanism(str(args["drug"]), str(args["disease"]), token=token),
            not_found_message="No direct mechanism of action found in Knowledge Graph.",
            describe=lambda args: f"→ PrimeKG: mechanisms {args.get('drug', '')} ↔ {args.get('disease', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_DRUG_COMBINATIONS,
            declaration=declarations[ToolName.GET_DRUG_COMBINATIONS],
            handler=lambda args, token: kg.get_drug_combinations(str(args["drug"]), token=token),
            not_found_message="No drug combinations found for this drug.",
            describe=lambda args: f"→ PrimeKG: combinations for {args.get('drug', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_PHENOTYPE_MATCHING,
            declaration=declarations[ToolName.GET_PHENOTYPE_MATCHING],
            handler=lambda args, token: kg.get_phenotype_matching(str(args["disease"]), token=token),
            not_found_message="No phenotype-matched drug candidates found for this disease.",
            describe=lambda args: f"→ PrimeKG: phenotype matching for {args.get('disease', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_ENVIRONMENTAL_RISKS,
            declaration=declarations[ToolName.GET_ENVIRONMENTAL_RISKS],
            handler=lambda args, token: kg.get_environmental_risks(str(args["disease"]), token=token),
            not_found_message="No environmental risk factors found for this disease.",
            describe=lambda args: f"→ PrimeKG: environmental risks for {args.get('disease', '')}",
        ),
        ToolAdapter(
            name=ToolName.GET_LITERATURE,
            declaration=declarations[ToolName.GET_LITERATURE],
            handler=_literature,
            not_found_message="No literature found for this entity.",
            describe=lambda args: f"→ PubMed: citations for {args.get('entity', '')}",
        ),
    ]
    table = {adapter.name: adapter for adapter in adapters}
    missing = [name.value for name in ToolName if name not in table]
    if missing:
        raise RuntimeError(f"Tool adapters missing for: {', '.join(missing)}")
    return table
