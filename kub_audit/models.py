# SPDX-License-Identifier: MIT

"""Result model shared by every inspector, the scoring engine and the runner."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from kub_audit.issue_codes import doc_path

PASS_THRESHOLD = 90.0
WARNING_THRESHOLD = 70.0
MAX_SCORE = 100.0


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def sort_order(self) -> int:
        return {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}[self]


class CheckStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    CRITICAL = "critical"
    ERROR = "error"


class HealthTier(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    CRITICAL = "Critical"


class Domain(str, Enum):
    NODES = "Node Health"
    CONTROL_PLANE = "Control Plane"
    NETWORK = "Network Connectivity"
    STORAGE = "Storage"
    RESOURCES = "Resource Usage"
    PODS = "Pod Status"
    AUTOSCALING = "Autoscaling"
    BATCH = "Batch Workloads"
    SECURITY = "Security Configuration"
    POLICIES = "Policy & Governance"
    OBSERVABILITY = "Observability"
    NAMESPACES = "Namespace"
    CERTIFICATES = "Certificates"
    UPGRADE = "Upgrade Readiness"
    NODE_INSPECTION = "Node Inspection"


def status_for_score(score: float) -> CheckStatus:
    if score >= PASS_THRESHOLD:
        return CheckStatus.PASS
    if score >= WARNING_THRESHOLD:
        return CheckStatus.WARNING
    return CheckStatus.CRITICAL


def mean_score(checks: Iterable[Check]) -> float:
    scores = [c.score for c in checks]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


@dataclass(frozen=True)
class AuditScope:
    namespace: str | None = None

    def __str__(self) -> str:
        return self.namespace or "all namespaces"


@dataclass(frozen=True)
class Finding:
    severity: Severity
    category: str
    description: str
    recommendation: str = ""
    resource: str | None = None
    code: str | None = None
    evidence: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "category": self.category,
            "description": self.description,
            "recommendation": self.recommendation,
            "resource": self.resource,
            "code": self.code,
            "evidence": list(self.evidence),
        }


@dataclass(frozen=True)
class Check:
    name: str
    description: str
    status: CheckStatus
    score: float
    max_score: float = MAX_SCORE
    detail: str | None = None
    recommendations: tuple[str, ...] = ()

    @classmethod
    def scored(cls, name: str, description: str, score: float, detail: str | None = None,
               recommendations: Iterable[str] = ()) -> Check:
        score = max(0.0, min(MAX_SCORE, float(score)))
        status = status_for_score(score)
        recs = tuple(recommendations) if status != CheckStatus.PASS else ()
        return cls(name=name, description=description, status=status, score=score,
                   detail=detail, recommendations=recs)

    @classmethod
    def ratio(cls, name: str, description: str, healthy: int, total: int, detail: str | None = None,
              recommendation: str | None = None, empty_score: float = MAX_SCORE) -> Check:
        """(healthy/total)*100, or ``empty_score`` when there is nothing to evaluate."""
        score = healthy * MAX_SCORE / total if total else empty_score
        return cls.scored(name, description, score, detail, [recommendation] if recommendation else [])

    @classmethod
    def error(cls, name: str, description: str, reason: Exception | str) -> Check:
        return cls(name=name, description=description, status=CheckStatus.ERROR, score=0.0,
                   detail=f"Collection failed: {reason}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "score": round(self.score, 2),
            "max_score": self.max_score,
            "detail": self.detail,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class AuditSummary:
    total_checks: int
    passed_checks: int
    warning_checks: int
    critical_checks: int
    error_checks: int
    findings: tuple[Finding, ...] = ()

    @classmethod
    def from_checks(cls, checks: Iterable[Check], findings: Iterable[Finding]) -> AuditSummary:
        checks = list(checks)

        def _count(status: CheckStatus) -> int:
            return sum(1 for c in checks if c.status == status)

        return cls(
            total_checks=len(checks),
            passed_checks=_count(CheckStatus.PASS),
            warning_checks=_count(CheckStatus.WARNING),
            critical_checks=_count(CheckStatus.CRITICAL),
            error_checks=_count(CheckStatus.ERROR),
            findings=tuple(findings),
        )

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.findings if f.severity == severity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_checks": self.total_checks,
            "passed_checks": self.passed_checks,
            "warning_checks": self.warning_checks,
            "critical_checks": self.critical_checks,
            "error_checks": self.error_checks,
            "critical_count": self.count(Severity.CRITICAL),
            "warning_count": self.count(Severity.WARNING),
            "info_count": self.count(Severity.INFO),
            "findings": [f.to_dict() for f in self.findings],
        }


# =====================================================================
# Side tables
# =====================================================================

@dataclass(frozen=True)
class CertificateExpiry:
    secret_namespace: str
    secret_name: str
    subject: str
    expiry_utc: str
    days_until_expiry: int


@dataclass(frozen=True)
class ContainerState:
    pod: str
    container: str
    state: str
    reason: str = ""
    detail: str = ""


@dataclass(frozen=True)
class NamespaceRow:
    name: str
    pod_count: int
    deployment_count: int
    has_network_policy: bool
    has_resource_quota: bool
    has_limit_range: bool


@dataclass(frozen=True)
class AuditResult:
    domain: str
    checks: tuple[Check, ...]
    summary: AuditSummary
    overall_score: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    certificate_expiries: tuple[CertificateExpiry, ...] | None = None
    container_states: tuple[ContainerState, ...] | None = None
    namespace_rows: tuple[NamespaceRow, ...] | None = None

    @classmethod
    def build(cls, domain: str, checks: Iterable[Check], findings: Iterable[Finding] = (),
              timestamp: datetime | None = None, **tables: Iterable[Any] | None) -> AuditResult:
        checks = tuple(checks)
        side = {name: tuple(rows) for name, rows in tables.items() if rows is not None}
        return cls(
            domain=str(getattr(domain, "value", domain)),
            checks=checks,
            summary=AuditSummary.from_checks(checks, findings),
            overall_score=mean_score(checks),
            timestamp=timestamp or datetime.now(timezone.utc),
            **side,
        )

    @property
    def findings(self) -> tuple[Finding, ...]:
        return self.summary.findings

    def with_findings(self, findings: Iterable[Finding]) -> AuditResult:
        """Same checks and score, different finding set (used by filters)."""
        return replace(self, summary=AuditSummary.from_checks(self.checks, findings))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "domain": self.domain,
            "timestamp": self.timestamp.isoformat(),
            "overall_score": round(self.overall_score, 2),
            "checks": [c.to_dict() for c in self.checks],
            "summary": self.summary.to_dict(),
        }
        for name in ("certificate_expiries", "container_states", "namespace_rows"):
            rows = getattr(self, name)
            if rows is not None:
                data[name] = [asdict(r) for r in rows]
        return data


# =====================================================================
# Derived, cross-domain records
# =====================================================================

@dataclass(frozen=True)
class AggregatedFinding:
    title: str
    category: str
    recommendation: str
    code: str | None = None
    resources: tuple[str, ...] = ()
    occurrences: int = 0

    @property
    def resource_count(self) -> int:
        return len(self.resources)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "title": self.title,
            "category": self.category,
            "recommendation": self.recommendation,
            "resources": list(self.resources),
            "resource_count": self.resource_count,
            "occurrences": self.occurrences,
            "doc": doc_path(self.code) if self.code else None,
        }


@dataclass(frozen=True)
class ScoreRow:
    domain: str
    score: float
    weight: float
    tier: HealthTier
    check_count: int
    critical_checks: int
    warning_checks: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "score": round(self.score, 2),
            "weight": self.weight,
            "tier": self.tier.value,
            "check_count": self.check_count,
            "critical_checks": self.critical_checks,
            "warning_checks": self.warning_checks,
        }


@dataclass(frozen=True)
class ExecutiveSummary:
    health_tier: HealthTier
    overall_score: float
    key_findings: tuple[AggregatedFinding, ...]
    priority_recommendations: tuple[str, ...]
    score_breakdown: dict[str, float]
    improvement_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "health_tier": self.health_tier.value,
            "overall_score": round(self.overall_score, 2),
            "key_findings": [f.to_dict() for f in self.key_findings],
            "priority_recommendations": list(self.priority_recommendations),
            "score_breakdown": {k: round(v, 2) for k, v in self.score_breakdown.items()},
            "improvement_score": self.improvement_score,
        }
