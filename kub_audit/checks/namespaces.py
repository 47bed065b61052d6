# SPDX-License-Identifier: MIT

"""Per-namespace inventory table."""

from __future__ import annotations

from collections import Counter

from kub_audit.checks.base import AuditContext, Inspector, check
from kub_audit.models import Check, Domain, NamespaceRow


class NamespaceInspector(Inspector):
    key = "namespaces"
    domain = Domain.NAMESPACES

    @check("Namespace Summary", "Summarises workloads and governance objects per namespace")
    def summary(self, ctx: AuditContext) -> Check:
        if ctx.namespace:
            names = [ctx.namespace]
        else:
            names = sorted(ns.metadata.name for ns in self.fetch("namespaces"))
        pods = Counter(p.metadata.namespace for p in self.fetch("pods", ctx))
        deployments = Counter(d.metadata.namespace for d in self.fetch("deployments", ctx))
        policies = {p.metadata.namespace for p in self.fetch("network_policies", ctx)}
        quotas = {q.metadata.namespace for q in self.fetch("resource_quotas", ctx)}
        limits = {r.metadata.namespace for r in self.fetch("limit_ranges", ctx)}

        rows = ctx.table("namespace_rows")
        for name in names:
            rows.append(NamespaceRow(
                name=name,
                pod_count=pods.get(name, 0),
                deployment_count=deployments.get(name, 0),
                has_network_policy=name in policies,
                has_resource_quota=name in quotas,
                has_limit_range=name in limits,
            ))
        return ctx.scored(100, detail=f"{len(rows)} namespaces summarised")
