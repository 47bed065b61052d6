# SPDX-License-Identifier: MIT

"""Pod phase, container state and restart checks."""

from __future__ import annotations

from typing import Any

from kub_audit.checks.base import AuditContext, Inspector, check, condition, ref
from kub_audit.models import Check, ContainerState, Domain, Severity

RESTART_INFO = 1
RESTART_WARN = 4
RESTART_CRIT = 11
UNSTABLE_RESTARTS = 3

WAITING_CODES = {
    "ImagePullBackOff": "POD-005",
    "ErrImagePull": "POD-006",
    "CrashLoopBackOff": "POD-007",
    "ContainerCreating": "POD-008",
    "CreateContainerConfigError": "POD-009",
}

WAITING_ADVICE = {
    "ImagePullBackOff": "Verify image name/tag, check imagePullSecrets, ensure registry is reachable",
    "ErrImagePull": "Verify image name/tag, check imagePullSecrets, ensure registry is reachable",
    "CrashLoopBackOff": "Check previous container logs for the crash reason",
    "ContainerCreating": "Check volume mounts, CNI and image pulls in pod events",
    "CreateContainerConfigError": "A referenced ConfigMap, Secret or key likely doesn't exist",
}


def _all_statuses(pod: Any) -> list[Any]:
    status = pod.status
    if status is None:
        return []
    return list(status.init_container_statuses or []) + list(status.container_statuses or [])


def _max_restarts(pod: Any) -> int:
    return max((cs.restart_count or 0 for cs in _all_statuses(pod)), default=0)


class PodInspector(Inspector):
    key = "pods"
    domain = Domain.PODS

    @check("Pod Health", "Checks that pods are running")
    def health(self, ctx: AuditContext) -> Check:
        pods = self.fetch("pods", ctx)
        running = 0
        states = ctx.table("container_states")

        for pod in pods:
            pod_ref = ref(pod)
            phase = (pod.status.phase if pod.status else None) or "Unknown"
            if phase == "Running":
                running += 1
                ready = condition(pod, "Ready")
                if ready is not None and ready.status == "False":
                    ctx.add(
                        Severity.CRITICAL, "Pod", f"Pod {pod_ref} is Running but not Ready",
                        "Check readiness probes and container logs", resource=pod_ref, code="POD-012",
                        evidence=[f"kubectl describe pod {pod.metadata.name} -n {pod.metadata.namespace}"],
                    )
            elif phase == "Failed":
                reason = pod.status.reason or "unknown reason"
                ctx.add(
                    Severity.CRITICAL, "Pod", f"Pod {pod_ref} is in Failed state ({reason})",
                    "Check pod events and logs. If Evicted, review node resource pressure",
                    resource=pod_ref, code="POD-001",
                )
            elif phase == "Pending":
                scheduled = condition(pod, "PodScheduled")
                if scheduled is not None and scheduled.status == "False":
                    ctx.add(
                        Severity.WARNING, "Pod",
                        f"Pod {pod_ref} cannot be scheduled: {scheduled.reason or ''} {scheduled.message or ''}".strip(),
                        "Check resource availability, node selectors, taints and PVC binding",
                        resource=pod_ref, code="POD-002",
                        evidence=[f"kubectl describe pod {pod.metadata.name} -n {pod.metadata.namespace}"],
                    )

            for cs in _all_statuses(pod):
                self._container_state(ctx, pod, pod_ref, cs, states)

        return ctx.ratio(running, len(pods), detail=f"{running}/{len(pods)} pods running",
                         recommendation="Investigate pods that are not running")

    def _container_state(self, ctx: AuditContext, pod: Any, pod_ref: str, cs: Any,
                         states: list[ContainerState]) -> None:
        state = cs.state
        if state is None:
            return
        if state.waiting is not None:
            reason = state.waiting.reason or "Waiting"
            message = state.waiting.message or ""
            if reason == "PodInitializing":
                return
            states.append(ContainerState(pod_ref, cs.name, "waiting", reason, message))
            ctx.add(
                Severity.CRITICAL, "Container",
                f"Container {cs.name} in pod {pod_ref} is waiting: {reason}",
                WAITING_ADVICE.get(reason, "Check pod events and container logs"),
                resource=pod_ref, code=WAITING_CODES.get(reason, "POD-004"),
                evidence=[f"kubectl logs {pod.metadata.name} -c {cs.name} -n {pod.metadata.namespace} --previous"],
            )
        elif state.terminated is not None and (state.terminated.exit_code or 0) != 0:
            term = state.terminated
            reason = term.reason or "Error"
            states.append(ContainerState(pod_ref, cs.name, "terminated", reason, f"exit code {term.exit_code}"))
            if reason == "OOMKilled":
                ctx.add(
                    Severity.CRITICAL, "Container", f"Container {cs.name} in pod {pod_ref} was OOMKilled",
                    "Increase memory limits or investigate memory leaks", resource=pod_ref, code="POD-010",
                )
            else:
                ctx.add(
                    Severity.CRITICAL, "Container",
                    f"Container {cs.name} in pod {pod_ref} terminated with exit code {term.exit_code} ({reason})",
                    "Check container logs for the failure cause", resource=pod_ref, code="POD-011",
                )

    @check("Pod Stability", "Checks container restart counts")
    def stability(self, ctx: AuditContext) -> Check:
        pods = self.fetch("pods", ctx)
        unstable = 0
        for pod in pods:
            pod_ref = ref(pod)
            if _max_restarts(pod) > UNSTABLE_RESTARTS:
                unstable += 1
            for cs in _all_statuses(pod):
                restarts = cs.restart_count or 0
                if restarts < RESTART_INFO:
                    continue
                if restarts >= RESTART_CRIT:
                    severity = Severity.CRITICAL
                elif restarts >= RESTART_WARN:
                    severity = Severity.WARNING
                else:
                    severity = Severity.INFO
                ctx.add(
                    severity, "Container",
                    f"Container {cs.name} in pod {pod_ref} has restarted {restarts} times",
                    "Investigate container restart history", resource=pod_ref, code="POD-003",
                )
        stable = len(pods) - unstable
        return ctx.ratio(stable, len(pods), detail=f"{unstable} pods with more than {UNSTABLE_RESTARTS} restarts",
                         recommendation="Stabilise frequently restarting workloads")
