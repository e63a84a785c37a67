"""知识图谱服务客户端。

PrimeKG HTTP 服务是一个不透明的外部 API，本模块只负责：

1. 拼接各个端点的 URL（实体名需要做 URL 编码）。
2. 发送请求并把网络/HTTP 错误映射到统一的业务异常。
3. 返回解析后的 JSON。

404 会被映射为 NotFoundError，工具适配层据此给出“未找到”的
可读提示，而不是把它当作系统故障。
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from kg_agent.config.settings import settings as default_settings
from kg_agent.domain.cancellation import CancellationToken
from kg_agent.domain.exceptions import ApiError, NetworkError, NotFoundError, RateLimitError
from kg_agent.infrastructure.logging.logger import logger


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class KnowledgeGraphClient:
    """PrimeKG 服务的同步客户端。"""

    name = "primekg"

    def __init__(self, settings=default_settings, base_url: Optional[str] = None):
        self._settings = settings
        self._base_url = (base_url or getattr(settings, "kg_base_url", "")).rstrip("/")

    def _get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        token: Optional[CancellationToken] = None,
    ) -> Any:
        if token is not None:
            token.raise_if_cancelled(f"GET {endpoint}")
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.get(
                    f"{self._base_url}{endpoint}",
                    params=params,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.RequestError as e:
            logger.error("kg_client.network_error", extra={"extra": {"endpoint": endpoint, "error": str(e)}})
            raise NetworkError(code="NETWORK_ERROR", message=str(e), endpoint=endpoint)
        if resp.status_code == 404:
            raise NotFoundError(
                code="NOT_FOUND",
                message=f"API Error: 404 - {resp.text}",
                http_status=404,
                endpoint=endpoint,
            )
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="PrimeKG rate limit", http_status=429)
        if resp.status_code >= 400:
            logger.error(
                "kg_client.api_error",
                extra={"extra": {"endpoint": endpoint, "status": resp.status_code}},
            )
            raise ApiError(
                code="API_ERROR",
                message=f"API Error: {resp.status_code} - {resp.text}",
                http_status=resp.status_code,
                endpoint=endpoint,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(code="INVALID_JSON", message=f"Invalid JSON from {endpoint}: {e}")

    # ---- 系统 ----

    def get_health(self, token: Optional[CancellationToken] = None) -> Any:
        return self._get("/health", token=token)

    def get_stats(self, token: Optional[CancellationToken] = None) -> Any:
        return self._get("/stats", token=token)

    # ---- 检索 ----

    def search_text(self, query: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get("/search/text", params={"q": query}, token=token)

    def search_semantic(self, query: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get("/search/semantic", params={"q": query}, token=token)

    # ---- 图遍历 ----

    def get_neighbors(self, node: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get(f"/neighbors/{_segment(node)}", token=token)

    def get_subgraph(
        self,
        entity: str,
        hops: int = 1,
        limit: int = 50,
        token: Optional[CancellationToken] = None,
    ) -> Any:
        return self._get(
            f"/subgraph/{_segment(entity)}",
            params={"hops": hops, "limit": limit},
            token=token,
        )

    def get_shortest_path(self, source: str, target: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get(f"/path/{_segment(source)}/{_segment(target)}", token=token)

    # ---- 假设生成 ----

    def get_drug_repurposing(self, disease: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get(f"/hypothesis/repurposing/{_segment(disease)}", token=token)

    def get_therapeutic_targets(self, disease: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get(f"/hypothesis/targets/{_segment(disease)}", token=token)

    def get_drug_combinations(self, drug: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get(f"/hypothesis/combinations/{_segment(drug)}", token=token)

    def get_drug_mechanism(self, drug: str, disease: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get(f"/hypothesis/mechanisms/{_segment(drug)}/{_segment(disease)}", token=token)

    def get_phenotype_matching(self, disease: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get(f"/hypothesis/phenotypes/{_segment(disease)}", token=token)

    def get_environmental_risks(self, disease: str, token: Optional[CancellationToken] = None) -> Any:
        return self._get(f"/risk/environmental/{_segment(disease)}", token=token)
