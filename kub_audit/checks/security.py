# SPDX-License-Identifier: MIT

"""RBAC, pod security context and service account checks."""

from __future__ import annotations

from typing import Any

from kub_audit.checks.base import SYSTEM_NAMESPACES, AuditContext, Inspector, check, ref
from kub_audit.models import Check, Domain, Severity

RISKY_BINDING_FACTOR = 0.7
MIN_POLICY_COVERAGE = 50.0


def _is_wildcard_role(role: Any) -> bool:
    for rule in role.rules or []:
        if "*" in (rule.verbs or []) or "*" in (rule.resources or []):
            return True
    return False


def _user_pods(pods: list[Any]) -> list[Any]:
    return [
        p for p in pods
        if p.metadata.namespace not in SYSTEM_NAMESPACES
        and not (p.status is not None and p.status.phase in ("Succeeded", "Failed"))
    ]


class SecurityInspector(Inspector):
    key = "security"
    domain = Domain.SECURITY

    @check("RBAC Configuration", "Checks ClusterRoles for wildcards and cluster-admin bindings")
    def rbac(self, ctx: AuditContext) -> Check:
        roles = self.fetch("cluster_roles")
        safe = 0
        for role in roles:
            name = role.metadata.name
            if name.startswith("system:") or name.startswith("cluster-admin") or not _is_wildcard_role(role):
                safe += 1
                continue
            ctx.add(
                Severity.WARNING, "RBAC", f"ClusterRole {name} grants wildcard verbs or resources",
                "Scope the role down to specific resources and verbs", resource=name, code="SEC-001",
                evidence=[f"kubectl describe clusterrole {name}"],
            )

        risky_bindings = 0
        for crb in self.fetch("cluster_role_bindings"):
            if not crb.role_ref or crb.role_ref.name != "cluster-admin":
                continue
            for subject in crb.subjects or []:
                subject_name = subject.name or ""
                if subject.kind == "User" and not subject_name.startswith("system:"):
                    risky_bindings += 1
                    ctx.add(
                        Severity.WARNING, "RBAC",
                        f"User {subject_name} is bound to cluster-admin via {crb.metadata.name}",
                        "Grant a narrower role (principle of least privilege)",
                        resource=crb.metadata.name, code="SEC-002",
                    )
                elif subject.kind == "ServiceAccount" and subject.namespace != "kube-system":
                    risky_bindings += 1
                    ctx.add(
                        Severity.CRITICAL, "RBAC",
                        f"ServiceAccount {subject.namespace}/{subject_name} is bound to cluster-admin "
                        f"via {crb.metadata.name}",
                        "Replace the binding with a namespace-scoped Role",
                        resource=f"{subject.namespace}/{subject_name}", code="SEC-003",
                    )

        score = safe * 100.0 / len(roles) if roles else 100.0
        if risky_bindings:
            score *= RISKY_BINDING_FACTOR
        return ctx.scored(score, detail=f"{safe}/{len(roles)} ClusterRoles scoped, "
                                        f"{risky_bindings} risky cluster-admin bindings",
                          recommendations=["Review wildcard ClusterRoles and cluster-admin bindings"])

    @check("Pod Security Standards", "Checks pods for root, privileged and escalating containers")
    def pod_security(self, ctx: AuditContext) -> Check:
        pods = _user_pods(self.fetch("pods", ctx))
        secure = 0
        for pod in pods:
            pod_ref = ref(pod)
            issues = 0
            pod_sc = pod.spec.security_context
            if pod_sc is not None and pod_sc.run_as_user == 0:
                issues += 1
                ctx.add(
                    Severity.WARNING, "Security", f"Pod {pod_ref} runs as root (runAsUser: 0)",
                    "Set a non-zero runAsUser and runAsNonRoot: true", resource=pod_ref, code="SEC-004",
                )
            for container in pod.spec.containers or []:
                sc = container.security_context
                if sc is None:
                    continue
                if sc.privileged:
                    issues += 1
                    ctx.add(
                        Severity.WARNING, "Security", f"Container {container.name} in pod {pod_ref} is privileged",
                        "Use specific capabilities instead of privileged mode", resource=pod_ref, code="SEC-005",
                    )
                if sc.run_as_user == 0:
                    issues += 1
                    ctx.add(
                        Severity.WARNING, "Security", f"Container {container.name} in pod {pod_ref} runs as root",
                        "Set a non-zero runAsUser", resource=pod_ref, code="SEC-006",
                    )
                if sc.allow_privilege_escalation:
                    issues += 1
                    ctx.add(
                        Severity.WARNING, "Security",
                        f"Container {container.name} in pod {pod_ref} allows privilege escalation",
                        "Set allowPrivilegeEscalation: false", resource=pod_ref, code="SEC-007",
                    )
            if not issues:
                secure += 1
        return ctx.ratio(secure, len(pods), detail=f"{secure}/{len(pods)} pods pass security context checks",
                         recommendation="Harden pod and container security contexts")

    @check("Network Policy Coverage", "Checks NetworkPolicy coverage of user namespaces")
    def network_policies(self, ctx: AuditContext) -> Check:
        if ctx.namespace:
            namespaces = [ctx.namespace]
        else:
            namespaces = [ns.metadata.name for ns in self.fetch("namespaces")
                          if ns.metadata.name not in SYSTEM_NAMESPACES]
        covered = {p.metadata.namespace for p in self.fetch("network_policies", ctx)}
        with_policy = sum(1 for name in namespaces if name in covered)
        coverage = with_policy * 100.0 / len(namespaces) if namespaces else 0.0
        if coverage < MIN_POLICY_COVERAGE:
            ctx.add(
                Severity.WARNING, "Network",
                f"Only {with_policy}/{len(namespaces)} namespaces have NetworkPolicies",
                "Add default-deny NetworkPolicies to user namespaces", code="SEC-008",
            )
        return ctx.ratio(with_policy, len(namespaces),
                         detail=f"{coverage:.0f}% of namespaces covered by NetworkPolicies",
                         recommendation="Increase NetworkPolicy coverage", empty_score=0.0)

    @check("Service Account Usage", "Checks pods for use of the default ServiceAccount")
    def service_accounts(self, ctx: AuditContext) -> Check:
        pods = _user_pods(self.fetch("pods", ctx))
        dedicated = 0
        for pod in pods:
            sa_name = pod.spec.service_account_name or "default"
            if sa_name != "default":
                dedicated += 1
                continue
            ctx.add(
                Severity.WARNING, "Security", f"Pod {ref(pod)} uses the default ServiceAccount",
                "Create a dedicated ServiceAccount for this workload", resource=ref(pod), code="SEC-009",
            )
        return ctx.ratio(dedicated, len(pods), detail=f"{dedicated}/{len(pods)} pods use a dedicated ServiceAccount",
                         recommendation="Use dedicated ServiceAccounts")
