# SPDX-License-Identifier: MIT

"""HorizontalPodAutoscaler configuration and status."""

from __future__ import annotations

from typing import Any

from kub_audit.checks.base import AuditContext, Inspector, check, ref
from kub_audit.models import Check, Domain, Severity

NO_HPA_SCORE = 70
HEALTH_CONDITIONS = ("AbleToScale", "ScalingActive")

_METRIC_SOURCES = ("resource", "pods", "object", "external", "container_resource")


def _metric_target(metric: Any) -> Any | None:
    for attr in _METRIC_SOURCES:
        source = getattr(metric, attr, None)
        if source is not None:
            return getattr(source, "target", None)
    return None


class AutoscalingInspector(Inspector):
    key = "autoscaling"
    domain = Domain.AUTOSCALING

    @check("Horizontal Pod Autoscalers", "Checks HPA replica ranges, metrics and conditions")
    def hpas(self, ctx: AuditContext) -> Check:
        hpas = self.fetch("hpas", ctx)
        if not hpas:
            return ctx.scored(NO_HPA_SCORE, detail="No HorizontalPodAutoscalers found",
                              recommendations=["Consider HPAs for workloads with variable load"])

        healthy = 0
        for hpa in hpas:
            hpa_ref = ref(hpa)
            spec = hpa.spec
            ok = True
            min_replicas = spec.min_replicas or 1
            if min_replicas == spec.max_replicas:
                ok = False
                ctx.add(
                    Severity.WARNING, "Autoscaling",
                    f"HPA {hpa_ref} has minReplicas == maxReplicas ({min_replicas}); it cannot scale",
                    "Widen the replica range", resource=hpa_ref, code="AUTO-001",
                )
            metrics = spec.metrics or []
            if not metrics:
                ok = False
                ctx.add(
                    Severity.CRITICAL, "Autoscaling", f"HPA {hpa_ref} has no metrics configured",
                    "Add at least one resource or custom metric", resource=hpa_ref, code="AUTO-002",
                )
            for metric in metrics:
                target = _metric_target(metric)
                if target is None or (target.average_utilization is None and target.average_value is None
                                      and target.value is None):
                    ok = False
                    ctx.add(
                        Severity.WARNING, "Autoscaling",
                        f"HPA {hpa_ref} has a {metric.type} metric without a target value",
                        "Set averageUtilization, averageValue or value", resource=hpa_ref, code="AUTO-005",
                    )
            behavior = spec.behavior
            if behavior is not None:
                for direction in ("scale_up", "scale_down"):
                    rules = getattr(behavior, direction, None)
                    if rules is not None and rules.select_policy == "Disabled":
                        ctx.add(
                            Severity.INFO, "Autoscaling",
                            f"HPA {hpa_ref} has {direction.replace('_', ' ')} disabled",
                            "Confirm the scaling behavior is intentional", resource=hpa_ref, code="AUTO-004",
                        )
            failing = [c for c in (hpa.status.conditions if hpa.status else None) or []
                       if c.type in HEALTH_CONDITIONS and c.status != "True"]
            if failing:
                ok = False
                reasons = ", ".join(f"{c.type}={c.reason or c.status}" for c in failing)
                ctx.add(
                    Severity.CRITICAL, "Autoscaling", f"HPA {hpa_ref} is not healthy ({reasons})",
                    "Check the scale target and the metrics API", resource=hpa_ref, code="AUTO-003",
                    evidence=[f"kubectl describe hpa {hpa.metadata.name} -n {hpa.metadata.namespace}"],
                )
            if ok:
                healthy += 1
        return ctx.ratio(healthy, len(hpas), detail=f"{healthy}/{len(hpas)} HPAs healthy",
                         recommendation="Fix HPA configuration issues")
