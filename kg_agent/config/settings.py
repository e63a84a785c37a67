"""配置管理模块。

支持从初始化参数、环境变量、.env 以及 config.yaml 加载配置，
优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("KG_AGENT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    default_provider: str = Field(default="gemini", description="默认使用的 Provider 名称")
    default_model: str = Field(
        default="flash",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API 基础URL",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="生成温度")

    # ---- 外部服务 ----
    kg_base_url: str = Field(default="https://kg.sarkome.com", description="知识图谱服务地址")
    literature_base_url: str = Field(
        default="https://www.ebi.ac.uk/europepmc/webservices/rest",
        description="Europe PMC 文献检索服务地址",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    literature_timeout: float = Field(default=10.0, ge=1.0, description="文献检索超时时间（秒）")
    literature_requests_per_second: float = Field(
        default=3.0,
        gt=0.0,
        description="文献检索每秒最大请求数",
    )

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 上下文与结果裁剪 ----
    max_history_messages: int = Field(default=10, ge=1, le=100, description="每次请求携带的最大历史消息数")
    max_message_length: int = Field(default=2000, ge=100, description="单条历史消息的最大字符数")
    include_history_summary: bool = Field(default=True, description="裁剪历史时是否插入摘要提示")
    max_tool_response_items: int = Field(default=25, ge=1, description="单个工具结果的最大条目数")
    max_tool_rounds: int = Field(
        default=5,
        ge=1,
        le=5,
        description="单轮对话内工具调用最大批次（硬上限 5）",
    )
    graph_max_nodes: int = Field(default=100, ge=1, description="图谱展示的最大节点数")
    graph_max_edges: int = Field(default=200, ge=1, description="图谱展示的最大边数")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("gemini_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
