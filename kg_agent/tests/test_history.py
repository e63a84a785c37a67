from kg_agent.domain.conversation import ConversationMessage
from kg_agent.flows.history import TRUNCATION_MARKER, window_history


def _history(n, length=10):
    return [
        ConversationMessage(role="user" if i % 2 == 0 else "model", content=f"{i}:" + "x" * length)
        for i in range(n)
    ]


def test_short_history_kept_and_capped():
    msgs = _history(3) + [ConversationMessage(role="user", content="y" * 50)]
    out = window_history(msgs, max_messages=10, max_length=20)
    assert len(out) == 4
    assert out[-1].content == "y" * 20 + TRUNCATION_MARKER
    assert out[0].content == msgs[0].content
    assert msgs[-1].content == "y" * 50


def test_long_history_gets_summary_and_last_messages():
    msgs = _history(25)
    out = window_history(msgs, max_messages=10, max_length=2000)
    assert len(out) == 11
    summary = out[0]
    assert summary.role == "system"
    assert summary.meta == {"history_summary": True, "omitted": 15}
    assert "15 earlier messages not shown" in summary.content
    assert [m.content for m in out[1:]] == [m.content for m in msgs[-10:]]


def test_summary_can_be_disabled():
    out = window_history(_history(12), max_messages=10, include_summary=False)
    assert len(out) == 10
    assert all(m.role != "system" for m in out)


def test_windowing_is_idempotent():
    msgs = _history(30, length=3000)
    once = window_history(msgs, max_messages=10, max_length=2000)
    twice = window_history(once, max_messages=10, max_length=2000)
    assert [(m.role, m.content, m.meta) for m in twice] == [(m.role, m.content, m.meta) for m in once]


def test_existing_summary_merges_with_new_drops():
    once = window_history(_history(15), max_messages=10)
    grown = once + _history(2)
    out = window_history(grown, max_messages=10)
    assert len(out) == 11
    assert out[0].meta["omitted"] == 7


def test_input_not_mutated():
    msgs = _history(12, length=50)
    before = [(m.role, m.content, dict(m.meta)) for m in msgs]
    window_history(msgs, max_messages=5, max_length=10)
    assert [(m.role, m.content, dict(m.meta)) for m in msgs] == before
