"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取：
- primeai_system.md：基础 system prompt；
- tool_focus.yaml：UI 选中某个工具时追加的聚焦提示词。
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml


PROMPTS_DIR = Path(__file__).resolve().parent


def load_system_prompt(agent_type: str = "primeai", locale: str = "en") -> str:
    """根据 Agent 类型和语言加载系统提示词文本。"""

    fname = PROMPTS_DIR / locale / f"{agent_type}_system.md"
    return fname.read_text(encoding="utf-8").strip()


@lru_cache(maxsize=4)
def load_tool_focus(locale: str = "en") -> Dict[str, Dict[str, str]]:
    fname = PROMPTS_DIR / locale / "tool_focus.yaml"
    with fname.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {str(k): v for k, v in data.items() if isinstance(v, dict)}


def tool_focus_section(tool_id: Optional[str], locale: str = "en") -> str:
    """返回 "## ACTIVE TOOL" 段落；未知工具或没有提示词时返回空串。"""

    if not tool_id:
        return ""
    entry = load_tool_focus(locale).get(tool_id)
    if not entry or not entry.get("prompt"):
        return ""
    label = str(entry.get("label") or tool_id).upper()
    return f"## ACTIVE TOOL: {label}\n{entry['prompt'].strip()}"
