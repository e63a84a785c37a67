import pytest

from kg_agent.flows.mode import Mode, ToolSet, select_tool_set
from kg_agent.tools.definitions import ToolName


def test_knowledge_graph_mode_exposes_all_tools():
    ts = select_tool_set(False)
    assert ts.mode is Mode.KNOWLEDGE_GRAPH
    assert ts.web_search is False
    assert {d.name for d in ts.tool_defs} == {name.value for name in ToolName}
    assert "PRIMEKG" in ts.instruction


def test_web_search_mode_has_no_function_tools():
    ts = select_tool_set(True)
    assert ts.mode is Mode.WEB_SEARCH
    assert ts.web_search is True
    assert ts.tool_defs == ()
    assert "WEB SEARCH" in ts.instruction
    assert "do NOT have direct access to PrimeKG" in ts.instruction


def test_tool_set_rejects_both_capabilities():
    defs = select_tool_set(False).tool_defs
    with pytest.raises(ValueError):
        ToolSet(mode=Mode.KNOWLEDGE_GRAPH, tool_defs=defs, web_search=True, instruction="")
