"""文献检索客户端（Europe PMC REST API）。

为模型提供可引用的真实论文：按实体类型拼接检索式，按被引次数排序，
把原始记录整理为 Citation。Europe PMC 建议的速率不超过每秒 3 次，
这里用一个进程内的最小间隔限速器串行化请求。
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

import httpx

from kg_agent.config.settings import settings as default_settings
from kg_agent.domain.cancellation import CancellationToken
from kg_agent.domain.exceptions import ApiError, NetworkError, NotFoundError, RateLimitError
from kg_agent.infrastructure.logging.logger import logger

EntityType = Literal["gene", "drug", "disease", "pathway"]
ENTITY_TYPES = ("gene", "drug", "disease", "pathway")
DEFAULT_PAGE_SIZE = 10


class RateLimiter:
    """最小请求间隔限速器（线程安全）。"""

    def __init__(self, requests_per_second: float = 3.0):
        self._min_interval = 1.0 / requests_per_second
        self._lock = threading.Lock()
        self._last_request = 0.0

    def acquire(self) -> None:
        with self._lock:
            elapsed = time.monotonic() - self._last_request
            if elapsed < self._min_interval:
                time.sleep(self._min_interval - elapsed)
            self._last_request = time.monotonic()


@dataclass
class Citation:
    id: str
    title: str
    authors: str
    journal: str
    year: str
    cited_by_count: int = 0
    pmid: Optional[str] = None
    doi: Optional[str] = None
    abstract: Optional[str] = None
    is_open_access: bool = False
    pdf_url: Optional[str] = None
    pmc_url: Optional[str] = None
    doi_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class SearchResponse:
    hit_count: int
    results: List[Citation]
    next_cursor_mark: Optional[str] = None


def transform_citation(raw: Dict[str, Any]) -> Citation:
    """把 Europe PMC 的原始记录整理为 Citation。"""

    pdf_url = None
    for entry in (raw.get("fullTextUrlList") or {}).get("fullTextUrl") or []:
        if entry.get("documentStyle") == "pdf" and entry.get("availability") == "Open access":
            pdf_url = entry.get("url")
            break
    cited = int(raw.get("citedByCount") or 0)
    is_open_access = raw.get("isOpenAccess") == "Y"
    pmcid = raw.get("pmcid")
    doi = raw.get("doi")
    tags = [
        t
        for t in (
            raw.get("pubType"),
            "Open Access" if is_open_access else None,
            "Highly Cited" if cited > 100 else None,
        )
        if t
    ]
    return Citation(
        id=str(raw.get("id") or ""),
        pmid=raw.get("pmid"),
        doi=doi,
        title=raw.get("title") or "Untitled",
        authors=raw.get("authorString") or "Unknown authors",
        journal=raw.get("journalTitle") or raw.get("journalAbbreviation") or "Unknown journal",
        year=str(raw.get("pubYear") or "N/A"),
        abstract=raw.get("abstractText"),
        cited_by_count=cited,
        is_open_access=is_open_access,
        pdf_url=pdf_url,
        pmc_url=f"https://europepmc.org/article/PMC/{pmcid.replace('PMC', '')}" if pmcid else None,
        doi_url=f"https://doi.org/{doi}" if doi else None,
        tags=tags,
    )


def build_query(
    query: str,
    *,
    year_from: Optional[int] = None,
    year_to: Optional[int] = None,
    open_access_only: bool = False,
) -> str:
    if year_from or year_to:
        start = year_from or 1900
        end = year_to or datetime.now().year
        query += f" AND PUB_YEAR:[{start} TO {end}]"
    if open_access_only:
        query += " AND OPEN_ACCESS:y"
    return query


def entity_query(entity: str, entity_type: str) -> str:
    if entity_type == "gene":
        return f"{entity} AND (gene OR protein)"
    if entity_type == "drug":
        return f"{entity} AND (drug OR treatment)"
    if entity_type == "disease":
        return f"{entity} AND (disease OR syndrome)"
    return entity


class LiteratureClient:
    name = "europepmc"

    def __init__(
        self,
        settings=default_settings,
        base_url: Optional[str] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self._settings = settings
        self._base_url = (base_url or getattr(settings, "literature_base_url", "")).rstrip("/")
        self._rate_limiter = rate_limiter or RateLimiter(
            getattr(settings, "literature_requests_per_second", 3.0)
        )

    def search_citations(
        self,
        query: str,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort: str = "CITED desc",
        cursor_mark: str = "*",
        year_from: Optional[int] = None,
        year_to: Optional[int] = None,
        open_access_only: bool = False,
        token: Optional[CancellationToken] = None,
    ) -> SearchResponse:
        if token is not None:
            token.raise_if_cancelled("literature search")
        params = {
            "query": build_query(query, year_from=year_from, year_to=year_to, open_access_only=open_access_only),
            "resultType": "core",
            "pageSize": str(page_size),
            "cursorMark": cursor_mark,
            "format": "json",
            "sort": sort,
            "synonym": "true",
        }
        self._rate_limiter.acquire()
        try:
            with httpx.Client(timeout=self._settings.literature_timeout, trust_env=False) as client:
                resp = client.get(
                    f"{self._base_url}/search",
                    params=params,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=f"Literature search timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 404:
            raise NotFoundError(code="NOT_FOUND", message=f"HTTP 404: {resp.text}", http_status=404)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Europe PMC rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=f"HTTP {resp.status_code}: {resp.text}", http_status=resp.status_code)
        data = resp.json()
        results = [transform_citation(r) for r in (data.get("resultList") or {}).get("result") or []]
        logger.info(
            "literature_client.search",
            extra={"extra": {"query": params["query"], "hits": data.get("hitCount", 0), "returned": len(results)}},
        )
        return SearchResponse(
            hit_count=int(data.get("hitCount") or 0),
            results=results,
            next_cursor_mark=data.get("nextCursorMark"),
        )

    def search_entity_citations(
        self,
        entity: str,
        entity_type: str = "gene",
        limit: int = 5,
        token: Optional[CancellationToken] = None,
    ) -> List[Citation]:
        response = self.search_citations(
            entity_query(entity, entity_type),
            page_size=limit,
            sort="CITED desc",
            token=token,
        )
        return response.results

    def search_relationship_citations(
        self,
        entity1: str,
        entity2: str,
        limit: int = 5,
        token: Optional[CancellationToken] = None,
    ) -> List[Citation]:
        query = f'("{entity1}" AND "{entity2}") AND (mechanism OR interaction OR effect OR treatment)'
        return self.search_citations(query, page_size=limit, sort="CITED desc", token=token).results

    def search_mechanism_citations(
        self,
        drug: str,
        disease: str,
        limit: int = 5,
        token: Optional[CancellationToken] = None,
    ) -> List[Citation]:
        query = f'"{drug}" AND "{disease}" AND (mechanism OR "mode of action" OR pathway OR target)'
        return self.search_citations(query, page_size=limit, sort="RELEVANCE", token=token).results
