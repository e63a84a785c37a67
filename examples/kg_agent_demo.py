"""Minimal demonstration of one knowledge-graph research turn."""

from kg_agent.api.service import run_turn

if __name__ == "__main__":
    question = "What genes and drugs are directly connected to CNR1?"
    reply = run_turn(question, on_log=lambda line: print("  ·", line))
    print("User:", question)
    print("Agent:", reply["text"])
    if reply["graphPayload"]:
        print("Graph nodes:", len(reply["graphPayload"]["nodes"]))
    print(f"Tokens: {reply['tokenUsage']['totalTokens']}  Cost: ${reply['cost']:.4f}")
