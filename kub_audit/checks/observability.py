# SPDX-License-Identifier: MIT

"""Metrics, DNS, logging and monitoring stack presence."""

from __future__ import annotations

from typing import Any, Iterable

from kub_audit.checks.base import AuditContext, Inspector, check, is_pod_ready
from kub_audit.models import Check, Domain, Severity

METRICS_SERVER_PENALTY = 30
KUBE_STATE_METRICS_PENALTY = 20
NO_LOGGING_SCORE = 70
NO_MONITORING_SCORE = 65

KSM_NAMESPACES = ("kube-system", "monitoring", "prometheus")
LOGGING_KEYWORDS = ("fluent", "logstash", "loki", "vector")
MONITORING_KEYWORDS = ("prometheus", "thanos", "victoriametrics")
DNS_KEYWORDS = ("coredns", "kube-dns")


def _ready_matching(pods: Iterable[Any], keywords: Iterable[str],
                    namespaces: Iterable[str] | None = None) -> list[Any]:
    keywords = tuple(keywords)
    allowed = set(namespaces) if namespaces is not None else None
    return [
        p for p in pods
        if (allowed is None or p.metadata.namespace in allowed)
        and any(k in p.metadata.name for k in keywords)
        and is_pod_ready(p)
    ]


class ObservabilityInspector(Inspector):
    key = "observability"
    domain = Domain.OBSERVABILITY

    def _all_pods(self) -> list[Any]:
        return self.fetch("pods", cluster_wide=True)

    @check("Metrics Pipeline", "Checks metrics-server and kube-state-metrics")
    def metrics(self, ctx: AuditContext) -> Check:
        pods = self._all_pods()
        score = 100
        missing = []
        if not _ready_matching(pods, ["metrics-server"], ["kube-system"]):
            score -= METRICS_SERVER_PENALTY
            missing.append("metrics-server")
            ctx.add(
                Severity.CRITICAL, "Observability", "metrics-server is not running",
                "Deploy metrics-server; HPAs and kubectl top depend on it", code="OBS-001",
            )
        if not _ready_matching(pods, ["kube-state-metrics"], KSM_NAMESPACES):
            score -= KUBE_STATE_METRICS_PENALTY
            missing.append("kube-state-metrics")
            ctx.add(
                Severity.WARNING, "Observability", "kube-state-metrics is not running",
                "Deploy kube-state-metrics for object-level metrics", code="OBS-002",
            )
        detail = f"Missing: {', '.join(missing)}" if missing else "metrics-server and kube-state-metrics running"
        return ctx.scored(score, detail=detail, recommendations=["Deploy the missing metrics components"])

    @check("Cluster DNS (CoreDNS)", "Checks that cluster DNS pods are ready")
    def dns(self, ctx: AuditContext) -> Check:
        dns_pods = [p for p in self._all_pods()
                    if p.metadata.namespace == "kube-system" and any(k in p.metadata.name for k in DNS_KEYWORDS)]
        if not dns_pods:
            ctx.add(
                Severity.CRITICAL, "Observability", "No CoreDNS/kube-dns pods found",
                "Deploy cluster DNS", resource="kube-system", code="NET-005",
            )
            return ctx.scored(0, detail="No DNS pods found")
        ready = sum(1 for p in dns_pods if is_pod_ready(p))
        return ctx.ratio(ready, len(dns_pods), detail=f"{ready}/{len(dns_pods)} DNS pods ready",
                         recommendation="Restore DNS pods")

    @check("Logging Stack", "Checks for a log aggregation agent")
    def logging_stack(self, ctx: AuditContext) -> Check:
        found = _ready_matching(self._all_pods(), LOGGING_KEYWORDS)
        if found:
            return ctx.scored(100, detail=f"{len(found)} log aggregation pods running")
        ctx.add(
            Severity.WARNING, "Observability", "No log aggregation agent (fluent*, logstash, loki, vector) found",
            "Deploy a log aggregation stack", code="OBS-003",
        )
        return ctx.scored(NO_LOGGING_SCORE, detail="No log aggregation detected",
                          recommendations=["Deploy a log aggregation stack"])

    @check("Monitoring & Alerting", "Checks for a Prometheus-compatible monitoring stack")
    def monitoring(self, ctx: AuditContext) -> Check:
        namespaces = [ctx.namespace or "monitoring", "prometheus", "observability", "kube-system"]
        found = _ready_matching(self._all_pods(), MONITORING_KEYWORDS, namespaces)
        if found:
            return ctx.scored(100, detail=f"{len(found)} monitoring pods running")
        ctx.add(
            Severity.WARNING, "Observability", "No Prometheus/Thanos/VictoriaMetrics pods found",
            "Deploy a monitoring and alerting stack", code="OBS-004",
        )
        return ctx.scored(NO_MONITORING_SCORE, detail="No monitoring stack detected",
                          recommendations=["Deploy a monitoring and alerting stack"])
