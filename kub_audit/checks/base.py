# SPDX-License-Identifier: MIT

"""Inspector base class.

An inspector owns one domain. Its checks are methods decorated with
``@check``; ``inspect`` runs them in definition order, turns each into a
``Check`` and wraps everything into one ``AuditResult``. A collection
failure inside one check becomes an Error check and never stops its
siblings. Only when every check fails does the inspector raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Iterable

from kub_audit.errors import AuditUnitError, CollectionError
from kub_audit.models import (
    MAX_SCORE, AuditResult, AuditScope, Check, Domain, Finding, Severity,
)

logger = logging.getLogger(__name__)

SYSTEM_NAMESPACES = frozenset({"kube-system", "kube-public", "kube-node-lease"})


@dataclass(frozen=True)
class CheckSpec:
    name: str
    description: str
    method: str


def check(name: str, description: str) -> Callable[[Callable[..., Check]], Callable[..., Check]]:
    def decorator(func: Callable[..., Check]) -> Callable[..., Check]:
        func._check_spec = CheckSpec(name, description, func.__name__)  # type: ignore[attr-defined]
        return func
    return decorator


@dataclass
class AuditContext:
    """Mutable scratch space for one ``inspect`` call."""

    scope: AuditScope
    findings: list[Finding] = field(default_factory=list)
    tables: dict[str, list[Any]] = field(default_factory=dict)
    current: CheckSpec | None = None

    @property
    def namespace(self) -> str | None:
        return self.scope.namespace

    def add(self, severity: Severity, category: str, description: str, recommendation: str,
            resource: str | None = None, code: str | None = None, evidence: Iterable[str] = ()) -> None:
        self.findings.append(Finding(
            severity=severity, category=category, description=description,
            recommendation=recommendation, resource=resource, code=code,
            evidence=tuple(evidence),
        ))

    def ratio(self, healthy: int, total: int, detail: str | None = None,
              recommendation: str | None = None, empty_score: float = MAX_SCORE) -> Check:
        return Check.ratio(self.current.name, self.current.description, healthy, total,
                           detail=detail, recommendation=recommendation, empty_score=empty_score)

    def scored(self, score: float, detail: str | None = None, recommendations: Iterable[str] = ()) -> Check:
        return Check.scored(self.current.name, self.current.description, score,
                            detail=detail, recommendations=recommendations)

    def table(self, name: str) -> list[Any]:
        return self.tables.setdefault(name, [])


class Inspector:
    key: ClassVar[str] = ""
    domain: ClassVar[Domain]

    _registry: ClassVar[dict[str, type[Inspector]]] = {}
    _checks: ClassVar[tuple[CheckSpec, ...]] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._checks = tuple(
            value._check_spec for value in vars(cls).values() if hasattr(value, "_check_spec")
        )
        if cls.key:
            Inspector._registry[cls.key] = cls

    def __init__(self, accessor: Any):
        self.accessor = accessor

    @classmethod
    def registry(cls) -> dict[str, type[Inspector]]:
        return dict(cls._registry)

    def fetch(self, kind: str, ctx: AuditContext | None = None, cluster_wide: bool = False,
              **kwargs: Any) -> list[Any]:
        namespace = None if cluster_wide or ctx is None else ctx.namespace
        return self.accessor.list_objects(kind, namespace=namespace, **kwargs)

    def inspect(self, scope: AuditScope | None = None) -> AuditResult:
        ctx = AuditContext(scope or AuditScope())
        checks: list[Check] = []
        failures: list[CollectionError] = []

        for spec in self._checks:
            ctx.current = spec
            try:
                checks.append(getattr(self, spec.method)(ctx))
            except CollectionError as exc:
                logger.debug("%s / %s failed: %s", self.domain.value, spec.name, exc)
                failures.append(exc)
                checks.append(Check.error(spec.name, spec.description, exc))

        if checks and len(failures) == len(checks):
            raise AuditUnitError(self.domain.value, failures)
        return AuditResult.build(self.domain, checks, ctx.findings, **ctx.tables)


# =====================================================================
# Shared object helpers
# =====================================================================

def ref(obj: Any) -> str:
    meta = obj.metadata
    if getattr(meta, "namespace", None):
        return f"{meta.namespace}/{meta.name}"
    return meta.name


def annotations_of(obj: Any) -> dict[str, str]:
    return (obj.metadata.annotations if obj.metadata else None) or {}


def is_pod_ready(pod: Any) -> bool:
    """Running and every container ready."""
    status = pod.status
    if status is None or status.phase != "Running":
        return False
    statuses = status.container_statuses or []
    return bool(statuses) and all(cs.ready for cs in statuses)


def condition(obj: Any, cond_type: str) -> Any | None:
    for cond in (obj.status.conditions if obj.status else None) or []:
        if cond.type == cond_type:
            return cond
    return None
