"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "flash"。
- provider_model：厂商实际提供的模型 ID，例如 "gemini-3-flash-preview"。

另外登记每个模型的价格（美元 / 百万 token），用于估算单轮对话成本。"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float
    input_price_per_million: float = 0.0
    output_price_per_million: float = 0.0


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]

    def resolve(self, model: str) -> ModelConfig:
        """按逻辑名或厂商模型 ID 查找模型配置。"""

        if model in self.models:
            return self.models[model]
        for cfg in self.models.values():
            if cfg.provider_model == model:
                return cfg
        raise KeyError(f"Unknown model for provider {self.name!r}: {model!r}")


GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    models={
        "flash": ModelConfig(
            logical_name="flash",
            provider_model="gemini-3-flash-preview",
            max_tokens=8192,
            default_temperature=0.7,
            input_price_per_million=0.50,
            output_price_per_million=3.00,
        ),
        "pro": ModelConfig(
            logical_name="pro",
            provider_model="gemini-3-pro-preview",
            max_tokens=8192,
            default_temperature=0.7,
            input_price_per_million=2.00,
            output_price_per_million=12.00,
        ),
        "flash-2.0-exp": ModelConfig(
            logical_name="flash-2.0-exp",
            provider_model="gemini-2.0-flash-exp",
            max_tokens=8192,
            default_temperature=0.7,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "gemini": GEMINI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")


def estimate_cost(provider: str, model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """按登记的单价估算美元成本；未知模型按 0 计。"""

    try:
        cfg = get_provider_config(provider).resolve(model)
    except KeyError:
        return 0.0
    return (
        prompt_tokens / 1_000_000 * cfg.input_price_per_million
        + completion_tokens / 1_000_000 * cfg.output_price_per_million
    )
