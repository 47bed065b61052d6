# SPDX-License-Identifier: MIT

"""Control plane component health."""

from __future__ import annotations

from kub_audit.checks.base import AuditContext, Inspector, check, ref
from kub_audit.errors import CollectionError
from kub_audit.models import Check, Domain, Severity

CONTROL_PLANE_COMPONENTS = ("kube-apiserver", "kube-controller-manager", "kube-scheduler", "etcd")


class ControlPlaneInspector(Inspector):
    key = "control_plane"
    domain = Domain.CONTROL_PLANE

    @check("Component Status", "Checks ComponentStatus health conditions")
    def component_status(self, ctx: AuditContext) -> Check:
        try:
            components = self.fetch("component_statuses")
        except CollectionError as exc:
            if not exc.not_found:
                raise
            # Removed in Kubernetes 1.24+.
            return ctx.scored(100, detail="Component Status API not available (e.g. Kubernetes 1.24+); check skipped.")

        healthy = 0
        for comp in components:
            name = comp.metadata.name
            ok = any(c.type == "Healthy" and c.status == "True" for c in comp.conditions or [])
            if ok:
                healthy += 1
                continue
            msg = next((c.message or c.error for c in comp.conditions or [] if c.message or c.error), "")
            ctx.add(
                Severity.CRITICAL, "ControlPlane", f"Component {name} is not healthy {msg}".strip(),
                "Check the component's logs on the control plane nodes", resource=name, code="CTRL-001",
            )
        return ctx.ratio(healthy, len(components), detail=f"{healthy}/{len(components)} components healthy",
                         recommendation="Restore unhealthy control plane components")

    @check("Control Plane Pods", "Checks static control plane pods in kube-system")
    def static_pods(self, ctx: AuditContext) -> Check:
        pods = [
            p for p in self.accessor.list_objects("pods", namespace="kube-system")
            if p.metadata.name.startswith(CONTROL_PLANE_COMPONENTS)
        ]
        if not pods:
            return ctx.scored(100, detail="No control plane pods visible (managed control plane?)")

        running = 0
        for pod in pods:
            phase = (pod.status.phase if pod.status else None) or "Unknown"
            if phase == "Running":
                running += 1
                continue
            ctx.add(
                Severity.CRITICAL, "ControlPlane", f"Static pod {ref(pod)} is {phase}",
                "Check the manifest under /etc/kubernetes/manifests and kubelet logs",
                resource=ref(pod), code="CTRL-002",
                evidence=[f"kubectl -n kube-system describe pod {pod.metadata.name}"],
            )
        return ctx.ratio(running, len(pods), detail=f"{running}/{len(pods)} control plane pods running",
                         recommendation="Restore control plane static pods")
