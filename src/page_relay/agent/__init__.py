"""Tab-scoped agents."""

from page_relay.agent.tab_agent import AgentState, TabAgent

__all__ = [
    "AgentState",
    "TabAgent",
]
