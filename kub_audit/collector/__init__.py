# SPDX-License-Identifier: MIT

"""Node agent snapshot collection."""

from kub_audit.collector.agents import AgentFleet, AgentState, HostAgentCollector, HostAgentStatus
from kub_audit.collector.host_snapshot import HostSnapshot, parse_snapshot

__all__ = [
    "AgentFleet",
    "AgentState",
    "HostAgentCollector",
    "HostAgentStatus",
    "HostSnapshot",
    "parse_snapshot",
]
