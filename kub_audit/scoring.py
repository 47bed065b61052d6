# SPDX-License-Identifier: MIT

"""Cross-domain scoring and finding aggregation.

A domain's own score is the plain mean of its checks (see
``AuditResult.build``). Only here, across domains, is a weight applied.
Everything returned from this module is a pure function of the input
result list: grouping dicts are always materialised and sorted before
they leave.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence

from kub_audit.config import DEFAULT_MAX_RECOMMENDATIONS
from kub_audit.issue_codes import short_title
from kub_audit.models import (
    AggregatedFinding, AuditResult, CheckStatus, Domain, ExecutiveSummary, Finding,
    HealthTier, ScoreRow, Severity,
)

DEFAULT_WEIGHT = 1.0

DOMAIN_WEIGHTS: dict[str, float] = {
    Domain.NODES.value: 2.0,
    Domain.PODS.value: 2.5,
    Domain.SECURITY.value: 2.2,
    Domain.RESOURCES.value: 1.8,
    Domain.NETWORK.value: 1.8,
    Domain.STORAGE.value: 1.5,
    Domain.CONTROL_PLANE.value: 2.5,
    Domain.AUTOSCALING.value: 1.8,
    Domain.BATCH.value: 1.2,
    Domain.POLICIES.value: 1.6,
    Domain.OBSERVABILITY.value: 1.4,
    Domain.UPGRADE.value: 1.7,
}

# (lower bound, tier), highest first.
TIER_BOUNDS: tuple[tuple[float, HealthTier], ...] = (
    (90.0, HealthTier.EXCELLENT),
    (80.0, HealthTier.GOOD),
    (70.0, HealthTier.FAIR),
    (60.0, HealthTier.POOR),
)

IMPROVEMENT_POINTS = {Severity.CRITICAL: 15, Severity.WARNING: 8, Severity.INFO: 2}


def health_tier(score: float) -> HealthTier:
    for bound, tier in TIER_BOUNDS:
        if score >= bound:
            return tier
    return HealthTier.CRITICAL


class ScoringEngine:
    def __init__(self, weights: dict[str, float] | None = None,
                 max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS):
        self.weights = dict(DOMAIN_WEIGHTS)
        if weights:
            self.weights.update(weights)
        self.max_recommendations = max_recommendations

    def weight_for(self, domain: str) -> float:
        return self.weights.get(domain, DEFAULT_WEIGHT)

    def weighted_score(self, results: Sequence[AuditResult]) -> float:
        total_weight = sum(self.weight_for(r.domain) for r in results)
        if not results or total_weight <= 0:
            return 0.0
        weighted = sum(r.overall_score * self.weight_for(r.domain) for r in results)
        return weighted / total_weight

    def score_breakdown(self, results: Sequence[AuditResult]) -> list[ScoreRow]:
        rows = [
            ScoreRow(
                domain=r.domain,
                score=r.overall_score,
                weight=self.weight_for(r.domain),
                tier=health_tier(r.overall_score),
                check_count=len(r.checks),
                critical_checks=sum(1 for c in r.checks if c.status == CheckStatus.CRITICAL),
                warning_checks=sum(1 for c in r.checks if c.status == CheckStatus.WARNING),
            )
            for r in results
        ]
        return sorted(rows, key=lambda row: row.domain)

    def aggregate_findings(self, results: Iterable[AuditResult]) -> list[AggregatedFinding]:
        findings = [f for r in results for f in r.findings]
        return aggregate_findings(findings)

    def aggregate_recommendations(self, results: Iterable[AuditResult]) -> list[str]:
        findings = [f for r in results for f in r.findings]
        return aggregate_recommendations(findings, self.max_recommendations)

    def executive_summary(self, results: Sequence[AuditResult]) -> ExecutiveSummary:
        score = self.weighted_score(results)
        findings = [f for r in results for f in r.findings]
        return ExecutiveSummary(
            health_tier=health_tier(score),
            overall_score=score,
            key_findings=tuple(aggregate_findings(findings)),
            priority_recommendations=tuple(aggregate_recommendations(findings, self.max_recommendations)),
            score_breakdown={row.domain: row.score for row in self.score_breakdown(results)},
            improvement_score=improvement_score(findings),
        )


# =====================================================================
# Aggregation
# =====================================================================

def _group_key(finding: Finding) -> tuple[str, ...]:
    if finding.code:
        return ("code", finding.code)
    return ("text", finding.category, finding.recommendation)


def aggregate_findings(findings: Iterable[Finding]) -> list[AggregatedFinding]:
    """Group Critical findings by rule code, else by (category, recommendation)."""
    groups: dict[tuple[str, ...], dict] = {}
    for f in findings:
        if f.severity != Severity.CRITICAL:
            continue
        group = groups.setdefault(_group_key(f), {
            "code": f.code,
            "category": f.category,
            "recommendation": f.recommendation,
            "title": short_title(f.code) or f.description,
            "resources": set(),
            "occurrences": 0,
        })
        group["occurrences"] += 1
        if f.resource:
            group["resources"].add(f.resource)

    rows = [
        AggregatedFinding(
            title=g["title"], category=g["category"], recommendation=g["recommendation"],
            code=g["code"], resources=tuple(sorted(g["resources"])), occurrences=g["occurrences"],
        )
        for g in groups.values()
    ]
    rows.sort(key=lambda r: (-r.resource_count, r.code or "", r.category, r.title))
    return rows


def aggregate_recommendations(findings: Iterable[Finding],
                              limit: int = DEFAULT_MAX_RECOMMENDATIONS) -> list[str]:
    counts = Counter(
        f.recommendation for f in findings
        if f.severity == Severity.CRITICAL and f.recommendation
    )
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [text for text, _ in ranked[:limit]]


def improvement_score(findings: Iterable[Finding]) -> float:
    """Points recoverable by fixing every finding, capped at 100."""
    return float(min(100, sum(IMPROVEMENT_POINTS[f.severity] for f in findings)))


# =====================================================================
# Filters
# =====================================================================

def filter_by_severity(results: Iterable[AuditResult], minimum: Severity) -> list[AuditResult]:
    """Keep findings at or above ``minimum``. Check scores are untouched."""
    return [
        r.with_findings(f for f in r.findings if f.severity.sort_order <= minimum.sort_order)
        for r in results
    ]


def filter_by_category(results: Iterable[AuditResult], categories: Iterable[str]) -> list[AuditResult]:
    """Keep findings whose category contains any of ``categories`` (case-insensitive).

    Domains left without a matching finding are dropped, so the weighted
    score and breakdown computed afterwards cover only the matching domains.
    Check scores are untouched.
    """
    wanted = [c.lower() for c in categories if c]
    if not wanted:
        return list(results)
    filtered = []
    for r in results:
        kept = [f for f in r.findings if any(w in f.category.lower() for w in wanted)]
        if kept:
            filtered.append(r.with_findings(kept))
    return filtered
