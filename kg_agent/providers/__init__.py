"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置、价格 (registry)。
- 提供具体实现 (gemini_client)。
"""

from typing import Optional

from kg_agent.config.settings import settings
from kg_agent.providers.base import ProviderClient
from kg_agent.providers.gemini_client import GeminiClient


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "gemini")).lower()
    if provider_name == "gemini":
        return GeminiClient(settings)
    raise KeyError(f"Unknown provider: {provider_name!r}")
