# SPDX-License-Identifier: MIT

"""ResourceQuota, LimitRange and PodDisruptionBudget governance."""

from __future__ import annotations

from typing import Any

from kub_audit.checks.base import SYSTEM_NAMESPACES, AuditContext, Inspector, check, ref
from kub_audit.models import Check, Domain, Severity

NO_QUOTA_SCORE = 60
NO_LIMIT_RANGE_SCORE = 65
NO_PDB_SCORE = 70
BLOCKED_PDB_SCORE = 80


def _pdb_selects(pdb: Any, labels: dict[str, str]) -> bool:
    selector = pdb.spec.selector if pdb.spec else None
    match = (selector.match_labels if selector else None) or {}
    return bool(match) and all(labels.get(k) == v for k, v in match.items())


class PolicyInspector(Inspector):
    key = "policies"
    domain = Domain.POLICIES

    def _user_namespaces(self, ctx: AuditContext) -> list[str]:
        if ctx.namespace:
            return [ctx.namespace]
        return sorted(ns.metadata.name for ns in self.fetch("namespaces")
                      if ns.metadata.name not in SYSTEM_NAMESPACES)

    @check("Resource Quotas", "Checks ResourceQuota coverage of user namespaces")
    def quotas(self, ctx: AuditContext) -> Check:
        quotas = self.fetch("resource_quotas", ctx)
        if not quotas:
            ctx.add(
                Severity.WARNING, "Policy", f"No ResourceQuota configured in {ctx.scope}",
                "Define ResourceQuotas for tenant namespaces", resource=ctx.namespace, code="POLICY-001",
            )
            return ctx.scored(NO_QUOTA_SCORE, detail="No ResourceQuotas found",
                              recommendations=["Define ResourceQuotas for tenant namespaces"])
        namespaces = self._user_namespaces(ctx)
        covered = {q.metadata.namespace for q in quotas}
        hit = sum(1 for name in namespaces if name in covered)
        return ctx.ratio(hit, len(namespaces), detail=f"{hit}/{len(namespaces)} namespaces have ResourceQuotas",
                         recommendation="Add ResourceQuotas to the remaining namespaces")

    @check("Limit Ranges", "Checks LimitRange coverage of user namespaces")
    def limit_ranges(self, ctx: AuditContext) -> Check:
        ranges = self.fetch("limit_ranges", ctx)
        if not ranges:
            ctx.add(
                Severity.WARNING, "Policy", f"No LimitRange configured in {ctx.scope}",
                "Define LimitRanges so containers get default requests and limits",
                resource=ctx.namespace, code="POLICY-002",
            )
            return ctx.scored(NO_LIMIT_RANGE_SCORE, detail="No LimitRanges found",
                              recommendations=["Define LimitRanges for tenant namespaces"])
        namespaces = self._user_namespaces(ctx)
        covered = {r.metadata.namespace for r in ranges}
        hit = sum(1 for name in namespaces if name in covered)
        return ctx.ratio(hit, len(namespaces), detail=f"{hit}/{len(namespaces)} namespaces have LimitRanges",
                         recommendation="Add LimitRanges to the remaining namespaces")

    @check("Pod Disruption Budgets", "Checks PDB coverage of replicated workloads")
    def disruption_budgets(self, ctx: AuditContext) -> Check:
        pdbs = self.fetch("pdbs", ctx)
        by_ns: dict[str, list[Any]] = {}
        for pdb in pdbs:
            by_ns.setdefault(pdb.metadata.namespace, []).append(pdb)

        for dep in self.fetch("deployments", ctx):
            if dep.metadata.namespace in SYSTEM_NAMESPACES or (dep.spec.replicas or 0) <= 1:
                continue
            labels = (dep.spec.template.metadata.labels
                      if dep.spec.template and dep.spec.template.metadata else None) or {}
            if not any(_pdb_selects(p, labels) for p in by_ns.get(dep.metadata.namespace, [])):
                ctx.add(
                    Severity.WARNING, "Policy",
                    f"Deployment {ref(dep)} ({dep.spec.replicas} replicas) has no PodDisruptionBudget",
                    "Create a PDB to keep the workload available during node drains",
                    resource=ref(dep), code="POLICY-003",
                )

        if not pdbs:
            return ctx.scored(NO_PDB_SCORE, detail="No PodDisruptionBudgets found",
                              recommendations=["Create PDBs for critical workloads"])

        blocked = 0
        for pdb in pdbs:
            status = pdb.status
            if status is not None and status.disruptions_allowed == 0 and (status.expected_pods or 0) > 1:
                blocked += 1
                ctx.add(
                    Severity.WARNING, "Policy",
                    f"PDB {ref(pdb)} allows no disruptions ({status.current_healthy}/{status.expected_pods} healthy)",
                    "Raise the replica count or relax minAvailable/maxUnavailable",
                    resource=ref(pdb), code="POLICY-004",
                )
        score = BLOCKED_PDB_SCORE if blocked else 100
        return ctx.scored(score, detail=f"{len(pdbs)} PDBs, {blocked} blocking disruptions",
                          recommendations=["Fix PDBs that block all voluntary disruptions"])
