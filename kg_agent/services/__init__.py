"""外部服务客户端：PrimeKG 知识图谱与 Europe PMC 文献检索。"""

from kg_agent.services.kg_client import KnowledgeGraphClient
from kg_agent.services.literature_client import LiteratureClient

__all__ = ["KnowledgeGraphClient", "LiteratureClient"]
