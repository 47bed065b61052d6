# SPDX-License-Identifier: MIT

"""Run configuration.

The Ansible module's ``argument_spec`` is the user-facing surface; this
module holds the defaults and turns the validated params into typed config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kub_audit.errors import ConfigurationError
from kub_audit.models import Severity

DEFAULT_CHECKS = [
    "nodes", "control_plane", "network", "storage", "resources", "pods",
    "autoscaling", "batch", "security", "policies", "observability",
    "namespaces", "certificates", "upgrade",
]

# Accepted spellings for ``checks`` entries.
CHECK_ALIASES = {
    "node": "nodes",
    "pod": "pods",
    "resource": "resources",
    "networking": "network",
    "control": "control_plane",
    "control-plane": "control_plane",
    "controlplane": "control_plane",
    "hpa": "autoscaling",
    "cron": "batch",
    "cronjob": "batch",
    "jobs": "batch",
    "rbac": "security",
    "policy": "policies",
    "monitoring": "observability",
    "namespace": "namespaces",
    "upgrade-readiness": "upgrade",
    "csr": "certificates",
    "certs": "certificates",
}

DEFAULT_MAX_RECOMMENDATIONS = 5


@dataclass
class HostAgentConfig:
    enabled: bool = True
    namespace: str = "kub-audit"
    daemonset: str = "kub-audit-node-agent"
    label_selector: str = "app=kub-audit-node-agent"
    container: str = "agent"
    poll_interval: float = 6.0
    poll_timeout: float = 300.0
    staleness_hours: float = 24.0
    rollout_timeout: float = 180.0
    rollout_interval: float = 2.0
    max_workers: int = 8


@dataclass
class AuditConfig:
    namespace: str | None = None
    checks: list[str] = field(default_factory=lambda: list(DEFAULT_CHECKS))
    severity_threshold: Severity = Severity.INFO
    categories: list[str] = field(default_factory=list)
    max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS
    max_workers: int = 1
    domain_weights: dict[str, float] = field(default_factory=dict)
    host_agents: HostAgentConfig = field(default_factory=HostAgentConfig)

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> AuditConfig:
        """Build config from Ansible module params (missing keys use defaults)."""
        agents = HostAgentConfig()
        for key, attr in (
            ("host_agents", "enabled"),
            ("agent_namespace", "namespace"),
            ("agent_daemonset", "daemonset"),
            ("agent_selector", "label_selector"),
            ("agent_container", "container"),
            ("poll_interval", "poll_interval"),
            ("poll_timeout", "poll_timeout"),
            ("staleness_hours", "staleness_hours"),
        ):
            if params.get(key) is not None:
                setattr(agents, attr, params[key])

        if agents.poll_interval <= 0 or agents.poll_timeout < 0:
            raise ConfigurationError("poll_interval must be > 0 and poll_timeout >= 0")
        if agents.staleness_hours <= 0:
            raise ConfigurationError("staleness_hours must be > 0")

        threshold = params.get("severity_threshold") or Severity.INFO.value
        try:
            severity = Severity(threshold)
        except ValueError:
            raise ConfigurationError(f"unknown severity_threshold '{threshold}'") from None

        max_recs = params.get("max_recommendations")
        if max_recs is None:
            max_recs = DEFAULT_MAX_RECOMMENDATIONS
        if max_recs < 1:
            raise ConfigurationError("max_recommendations must be >= 1")

        weights = {}
        for domain, weight in (params.get("domain_weights") or {}).items():
            try:
                weights[domain] = float(weight)
            except (TypeError, ValueError):
                raise ConfigurationError(f"weight for '{domain}' is not a number: {weight!r}") from None
            if weights[domain] <= 0:
                raise ConfigurationError(f"weight for '{domain}' must be > 0")

        return cls(
            namespace=params.get("namespace") or None,
            checks=normalize_checks(params.get("checks") or DEFAULT_CHECKS),
            severity_threshold=severity,
            categories=list(params.get("categories") or []),
            max_recommendations=max_recs,
            max_workers=max(1, params.get("max_workers") or 1),
            domain_weights=weights,
            host_agents=agents,
        )


def normalize_checks(names: list[str]) -> list[str]:
    """Resolve aliases, drop duplicates, keep caller order. 'all' expands."""
    resolved: list[str] = []
    for raw in names:
        name = raw.strip().lower()
        if name == "all":
            candidates = DEFAULT_CHECKS
        else:
            candidates = [CHECK_ALIASES.get(name, name.replace("-", "_"))]
        for candidate in candidates:
            if candidate not in DEFAULT_CHECKS:
                raise ConfigurationError(
                    f"unknown check '{raw}'; choose from {', '.join(DEFAULT_CHECKS)}"
                )
            if candidate not in resolved:
                resolved.append(candidate)
    return resolved
