# SPDX-License-Identifier: MIT

"""Service configuration, NetworkPolicy coverage and cluster DNS."""

from __future__ import annotations

from kub_audit.checks.base import AuditContext, Inspector, check, ref
from kub_audit.models import Check, Domain, Severity

NODEPORT_MIN = 30000
NODEPORT_MAX = 32767
DNS_DEPLOYMENTS = ("coredns", "kube-dns")


class NetworkInspector(Inspector):
    key = "network"
    domain = Domain.NETWORK

    @check("Service Configuration", "Checks services for missing selectors, ingress and port issues")
    def services(self, ctx: AuditContext) -> Check:
        services = self.fetch("services", ctx)
        healthy = 0
        for svc in services:
            svc_ref = ref(svc)
            spec = svc.spec
            ok = True
            if spec.type == "LoadBalancer":
                ingress = (svc.status.load_balancer.ingress
                           if svc.status and svc.status.load_balancer else None)
                if not ingress:
                    ok = False
                    ctx.add(
                        Severity.WARNING, "Service", f"LoadBalancer service {svc_ref} has no external IP",
                        "Check the cloud load balancer controller and service events",
                        resource=svc_ref, code="NET-001",
                        evidence=[f"kubectl describe service {svc.metadata.name} -n {svc.metadata.namespace}"],
                    )
            if spec.type == "NodePort":
                for port in spec.ports or []:
                    if port.node_port and not NODEPORT_MIN <= port.node_port <= NODEPORT_MAX:
                        ctx.add(
                            Severity.INFO, "Service",
                            f"Service {svc_ref} uses NodePort {port.node_port} outside "
                            f"{NODEPORT_MIN}-{NODEPORT_MAX}",
                            "Use a NodePort in the default range", resource=svc_ref, code="NET-002",
                        )
            is_default_api = svc.metadata.namespace == "default" and svc.metadata.name == "kubernetes"
            headless = spec.cluster_ip == "None"
            if not spec.selector and not headless and not is_default_api and spec.type != "ExternalName":
                ok = False
                ctx.add(
                    Severity.WARNING, "Service", f"Service {svc_ref} has no selector",
                    "Add a selector or manage Endpoints explicitly", resource=svc_ref, code="NET-003",
                )
            if ok:
                healthy += 1
        return ctx.ratio(healthy, len(services), detail=f"{healthy}/{len(services)} services configured correctly",
                         recommendation="Fix service configuration issues")

    @check("Network Policy Coverage", "Checks how many namespaces have NetworkPolicies")
    def policy_coverage(self, ctx: AuditContext) -> Check:
        if ctx.namespace:
            namespaces = [ctx.namespace]
        else:
            namespaces = [ns.metadata.name for ns in self.fetch("namespaces")]
        covered = {p.metadata.namespace for p in self.fetch("network_policies", ctx)}
        with_policy = sum(1 for name in namespaces if name in covered)
        return ctx.ratio(with_policy, len(namespaces),
                         detail=f"{with_policy}/{len(namespaces)} namespaces have NetworkPolicies",
                         recommendation="Add NetworkPolicies to isolate namespace traffic", empty_score=0.0)

    @check("DNS Configuration", "Checks the cluster DNS deployment in kube-system")
    def dns(self, ctx: AuditContext) -> Check:
        deployments = self.accessor.list_objects("deployments", namespace="kube-system")
        dns = [d for d in deployments if d.metadata.name in DNS_DEPLOYMENTS]
        if not dns:
            ctx.add(
                Severity.CRITICAL, "DNS", "No CoreDNS or kube-dns deployment found in kube-system",
                "Deploy cluster DNS", resource="kube-system", code="NET-005",
            )
            return ctx.scored(0, detail="DNS deployment not found")

        ready = 0
        for dep in dns:
            desired = dep.spec.replicas if dep.spec.replicas is not None else 1
            available = (dep.status.ready_replicas if dep.status else None) or 0
            if desired > 0 and available >= desired:
                ready += 1
                continue
            ctx.add(
                Severity.CRITICAL, "DNS",
                f"DNS deployment {ref(dep)} has {available}/{desired} replicas ready",
                "Check DNS pod logs and events", resource=ref(dep), code="NET-004",
                evidence=["kubectl -n kube-system get pods -l k8s-app=kube-dns"],
            )
        return ctx.ratio(ready, len(dns), detail=f"{ready}/{len(dns)} DNS deployments ready",
                         recommendation="Restore DNS replicas")
