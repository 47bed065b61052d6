# SPDX-License-Identifier: MIT

"""Node readiness and pressure conditions."""

from __future__ import annotations

from kub_audit.checks.base import AuditContext, Inspector, check
from kub_audit.models import Check, Domain, Severity

PRESSURE_CONDITIONS = ("MemoryPressure", "DiskPressure", "PIDPressure")


class NodeInspector(Inspector):
    key = "nodes"
    domain = Domain.NODES

    @check("Node Readiness", "Checks if all nodes are in Ready state")
    def readiness(self, ctx: AuditContext) -> Check:
        nodes = self.fetch("nodes")
        ready = 0
        for node in nodes:
            name = node.metadata.name
            conds = {c.type: c for c in node.status.conditions or []} if node.status else {}
            rc = conds.get("Ready")
            if rc is not None and rc.status == "True":
                ready += 1
                continue
            reason = (rc.reason or "Ready condition not True") if rc is not None else "no Ready condition"
            ctx.add(
                Severity.CRITICAL, "Node", f"Node {name} is not ready ({reason})",
                "Check node status and kubelet logs", resource=name, code="NODE-001",
                evidence=[f"kubectl describe node {name}", "journalctl -u kubelet --since '1 hour ago'"],
            )
        # No nodes at all is itself a failure.
        return ctx.ratio(ready, len(nodes), detail=f"{ready}/{len(nodes)} nodes ready",
                         recommendation="Investigate nodes that are not ready", empty_score=0.0)

    @check("Node Pressure", "Checks nodes for memory, disk and PID pressure")
    def pressure(self, ctx: AuditContext) -> Check:
        nodes = self.fetch("nodes")
        healthy = 0
        for node in nodes:
            name = node.metadata.name
            pressured = [
                c.type for c in (node.status.conditions if node.status else None) or []
                if c.type in PRESSURE_CONDITIONS and c.status == "True"
            ]
            if not pressured:
                healthy += 1
                continue
            for kind in pressured:
                ctx.add(
                    Severity.WARNING, "Node", f"Node {name} has {kind}",
                    "Free up resources on the node or add capacity", resource=name, code="NODE-002",
                    evidence=[f"kubectl describe node {name}"],
                )
        return ctx.ratio(healthy, len(nodes), detail=f"{healthy}/{len(nodes)} nodes without pressure",
                         recommendation="Relieve resource pressure on affected nodes")
