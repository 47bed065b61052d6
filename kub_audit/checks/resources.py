# SPDX-License-Identifier: MIT

"""Container requests/limits and namespace quota coverage."""

from __future__ import annotations

from typing import Any, Iterator

from kub_audit.checks.base import SYSTEM_NAMESPACES, AuditContext, Inspector, check, ref
from kub_audit.models import Check, Domain, Severity
from kub_audit.quantity import fmt_memory, parse_cpu_millicores, parse_memory_bytes


def _containers(pods: list[Any]) -> Iterator[tuple[Any, Any]]:
    for pod in pods:
        if pod.status is not None and pod.status.phase in ("Succeeded", "Failed"):
            continue
        for container in pod.spec.containers or []:
            yield pod, container


def _requests(container: Any) -> dict[str, str]:
    return (container.resources.requests if container.resources else None) or {}


def _limits(container: Any) -> dict[str, str]:
    return (container.resources.limits if container.resources else None) or {}


class ResourceInspector(Inspector):
    key = "resources"
    domain = Domain.RESOURCES

    @check("Resource Requests", "Checks that containers declare CPU and memory requests")
    def requests(self, ctx: AuditContext) -> Check:
        total = with_requests = 0
        for pod, container in _containers(self.fetch("pods", ctx)):
            total += 1
            req = _requests(container)
            if "cpu" in req and "memory" in req:
                with_requests += 1
                continue
            ctx.add(
                Severity.WARNING, "Resource",
                f"Container {container.name} in pod {ref(pod)} has no CPU/memory requests",
                "Set resources.requests so the scheduler can place the pod correctly",
                resource=ref(pod), code="RES-001",
            )
        return ctx.ratio(with_requests, total, detail=f"{with_requests}/{total} containers with requests",
                         recommendation="Set resource requests for all containers")

    @check("Resource Limits", "Checks that containers declare CPU and memory limits")
    def limits(self, ctx: AuditContext) -> Check:
        total = with_limits = 0
        for pod, container in _containers(self.fetch("pods", ctx)):
            total += 1
            lim = _limits(container)
            if "cpu" in lim and "memory" in lim:
                with_limits += 1
                continue
            ctx.add(
                Severity.WARNING, "Resource",
                f"Container {container.name} in pod {ref(pod)} has no CPU/memory limits",
                "Set resources.limits to bound container resource usage",
                resource=ref(pod), code="RES-002",
            )
        return ctx.ratio(with_limits, total, detail=f"{with_limits}/{total} containers with limits",
                         recommendation="Set resource limits for all containers")

    @check("Complete Resource Configuration", "Checks requests, limits and namespace quotas together")
    def complete(self, ctx: AuditContext) -> Check:
        total = complete = 0
        for pod, container in _containers(self.fetch("pods", ctx)):
            total += 1
            req, lim = _requests(container), _limits(container)
            if all(k in req and k in lim for k in ("cpu", "memory")) and self._limits_cover_requests(
                ctx, pod, container, req, lim
            ):
                complete += 1

        quotas = self.fetch("resource_quotas", ctx)
        covered = {q.metadata.namespace for q in quotas}
        if ctx.namespace:
            namespaces = [ctx.namespace]
        else:
            namespaces = sorted(ns.metadata.name for ns in self.fetch("namespaces"))
        for name in namespaces:
            if name in SYSTEM_NAMESPACES or name in covered:
                continue
            ctx.add(
                Severity.WARNING, "Namespace", f"Namespace {name} has no ResourceQuota",
                "Create a ResourceQuota to cap namespace resource consumption",
                resource=name, code="RES-003",
            )

        return ctx.ratio(complete, total, detail=f"{complete}/{total} containers fully configured",
                         recommendation="Configure requests and limits consistently for all containers")

    def _limits_cover_requests(self, ctx: AuditContext, pod: Any, container: Any,
                               req: dict[str, str], lim: dict[str, str]) -> bool:
        ok = True
        cpu_req, cpu_lim = parse_cpu_millicores(req.get("cpu")), parse_cpu_millicores(lim.get("cpu"))
        if cpu_req is not None and cpu_lim is not None and cpu_lim < cpu_req:
            ok = False
            ctx.add(
                Severity.CRITICAL, "Resource",
                f"Container {container.name} in pod {ref(pod)} has CPU limit {cpu_lim:.0f}m "
                f"below request {cpu_req:.0f}m",
                "Raise the CPU limit to at least the request", resource=ref(pod), code="RES-004",
            )
        mem_req, mem_lim = parse_memory_bytes(req.get("memory")), parse_memory_bytes(lim.get("memory"))
        if mem_req is not None and mem_lim is not None and mem_lim < mem_req:
            ok = False
            ctx.add(
                Severity.CRITICAL, "Resource",
                f"Container {container.name} in pod {ref(pod)} has memory limit {fmt_memory(mem_lim)} "
                f"below request {fmt_memory(mem_req)}",
                "Raise the memory limit to at least the request", resource=ref(pod), code="RES-005",
            )
        return ok
