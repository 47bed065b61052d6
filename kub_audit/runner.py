# SPDX-License-Identifier: MIT

"""Run the selected inspectors and assemble the final report."""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from kub_audit.accessor import verify_connection
from kub_audit.checks import registered_inspectors
from kub_audit.collector import AgentFleet, AgentState, HostAgentCollector, HostAgentStatus, HostSnapshot
from kub_audit.collector.inspection import inspect_hosts
from kub_audit.config import DEFAULT_CHECKS, AuditConfig
from kub_audit.errors import AuditUnitError, ConfigurationError
from kub_audit.models import AuditResult, AuditScope, ExecutiveSummary
from kub_audit.scoring import ScoringEngine, filter_by_category, filter_by_severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditReport:
    cluster_name: str
    results: tuple[AuditResult, ...]
    executive_summary: ExecutiveSummary
    hosts: tuple[HostSnapshot, ...] = ()
    host_agent_status: HostAgentStatus | None = None
    unit_errors: dict[str, str] = field(default_factory=dict)
    namespace: str | None = None
    report_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def overall_score(self) -> float:
        return self.executive_summary.overall_score

    @property
    def fleet_restarted(self) -> bool:
        return (self.host_agent_status is not None
                and self.host_agent_status.state == AgentState.RESTARTED_AND_READY)

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": self.report_id,
            "timestamp": self.timestamp.isoformat(),
            "cluster_name": self.cluster_name,
            "namespace": self.namespace,
            "overall_score": round(self.overall_score, 2),
            "health_tier": self.executive_summary.health_tier.value,
            "executive_summary": self.executive_summary.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "hosts": [h.to_dict() for h in self.hosts],
            "host_agent_status": self.host_agent_status.to_dict() if self.host_agent_status else None,
            "unit_errors": dict(self.unit_errors),
        }


class AuditRunner:
    def __init__(self, accessor: Any, config: AuditConfig | None = None,
                 collector: HostAgentCollector | None = None, cluster_name: str = "unknown"):
        self.accessor = accessor
        self.config = config or AuditConfig()
        self.cluster_name = cluster_name
        self.engine = ScoringEngine(self.config.domain_weights, self.config.max_recommendations)
        if collector is None and self.config.host_agents.enabled:
            collector = HostAgentCollector(accessor, AgentFleet.from_config(self.config.host_agents),
                                           self.config.host_agents)
        self.collector = collector

    def run(self) -> AuditReport:
        """Run every selected inspector and build the report.

        Raises ConfigurationError when the API server cannot be reached, or
        when no inspector produced a result.
        """
        verify_connection(self.accessor)
        results, errors = self.run_inspectors()
        if errors and not results:
            first = next(iter(errors.values()))
            raise ConfigurationError(f"No inspector could read the cluster ({len(errors)} failed): {first}")

        status, hosts = None, []
        if self.collector is not None and "nodes" in self.config.checks:
            status, hosts = self.collect_hosts()
            if hosts:
                results.append(inspect_hosts(hosts))

        results = filter_by_severity(results, self.config.severity_threshold)
        results = filter_by_category(results, self.config.categories)

        return AuditReport(
            cluster_name=self.cluster_name,
            namespace=self.config.namespace,
            results=tuple(results),
            executive_summary=self.engine.executive_summary(results),
            hosts=tuple(hosts),
            host_agent_status=status,
            unit_errors=errors,
        )

    def run_inspectors(self) -> tuple[list[AuditResult], dict[str, str]]:
        registry = registered_inspectors()
        selected = [key for key in DEFAULT_CHECKS if key in self.config.checks and key in registry]
        scope = AuditScope(self.config.namespace)

        def _run(key: str) -> AuditResult:
            logger.debug("Running %s inspector (%s)", key, scope)
            return registry[key](self.accessor).inspect(scope)

        results: list[AuditResult] = []
        errors: dict[str, str] = {}
        if self.config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                futures = [(key, pool.submit(_run, key)) for key in selected]
                # Joined in canonical order, not completion order.
                for key, future in futures:
                    self._record(key, future.result, results, errors)
        else:
            for key in selected:
                self._record(key, lambda key=key: _run(key), results, errors)
        return results, errors

    def _record(self, key: str, produce: Any, results: list[AuditResult], errors: dict[str, str]) -> None:
        try:
            results.append(produce())
        except AuditUnitError as exc:
            logger.warning("%s", exc)
            errors[key] = str(exc)
        except Exception as exc:
            logger.exception("Inspector %s crashed", key)
            errors[key] = f"{type(exc).__name__}: {exc}"

    def collect_hosts(self) -> tuple[HostAgentStatus, list[HostSnapshot]]:
        status = self.collector.ensure_ready()
        if not status.usable:
            logger.info(status.describe())
            return status, []
        hosts = self.collector.collect()
        logger.info("%s Collected %d host snapshots.", status.describe(), len(hosts))
        return status, hosts
