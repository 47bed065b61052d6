# SPDX-License-Identifier: MIT

import pytest

from k8s_objects import FakeAccessor, node, pod, snapshot_json, storage_class
from kub_audit.collector import AgentState, HostAgentStatus, parse_snapshot
from kub_audit.config import DEFAULT_CHECKS, AuditConfig, HostAgentConfig
from kub_audit.errors import CollectionError, ConfigurationError
from kub_audit.models import Severity
from kub_audit.runner import AuditRunner


class StubCollector:
    def __init__(self, status, hosts=()):
        self.status = status
        self.hosts = list(hosts)
        self.collected = False

    def ensure_ready(self):
        return self.status

    def collect(self):
        self.collected = True
        return self.hosts


def _config(checks, **kwargs):
    return AuditConfig(checks=checks, host_agents=HostAgentConfig(enabled=False), **kwargs)


def _accessor(**kwargs):
    return FakeAccessor({
        "nodes": [node("node-1"), node("node-2", ready=False)],
        "pods": [pod("web-1"), pod("web-2", phase="Failed"), pod("web-3", restarts=5)],
        "storage_classes": [storage_class("gp3", default=True)],
    }, **kwargs)


def test_results_follow_canonical_order():
    report = AuditRunner(_accessor(), _config(["storage", "pods", "nodes"])).run()
    assert [r.domain for r in report.results] == ["Node Health", "Storage", "Pod Status"]
    assert report.unit_errors == {}
    assert 0 <= report.overall_score <= 100


def test_parallel_run_matches_sequential():
    checks = ["nodes", "pods", "storage", "upgrade"]
    seq = AuditRunner(_accessor(), _config(checks)).run()
    par = AuditRunner(_accessor(), _config(checks, max_workers=4)).run()
    assert [r.domain for r in par.results] == [r.domain for r in seq.results]
    assert par.overall_score == pytest.approx(seq.overall_score)
    assert par.executive_summary.key_findings == seq.executive_summary.key_findings


def test_failed_unit_is_reported_not_scored():
    accessor = _accessor(errors={"nodes": CollectionError("nodes", "connection refused")})
    report = AuditRunner(accessor, _config(["nodes", "pods"])).run()

    assert [r.domain for r in report.results] == ["Pod Status"]
    assert "nodes" in report.unit_errors
    assert "Pod Status" in report.executive_summary.score_breakdown
    assert "Node Health" not in report.executive_summary.score_breakdown


def test_crashing_inspector_does_not_stop_the_run():
    accessor = _accessor(errors={"storage_classes": RuntimeError("boom")})
    report = AuditRunner(accessor, _config(["upgrade", "storage"])).run()
    assert [r.domain for r in report.results] == ["Upgrade Readiness"]
    assert report.unit_errors["storage"] == "RuntimeError: boom"


class UnreachableCluster:
    """Every API call fails the way a refused TCP connection does."""

    def list_objects(self, kind, namespace=None, label_selector=None, cached=True):
        raise CollectionError(kind, "Connection refused")

    def server_version(self):
        raise CollectionError("version", "Connection refused")


def test_unreachable_cluster_produces_no_report():
    with pytest.raises(ConfigurationError, match="Connection refused"):
        AuditRunner(UnreachableCluster(), _config(list(DEFAULT_CHECKS))).run()


def test_every_unit_failing_produces_no_report():
    errors = {kind: CollectionError(kind, "Forbidden", 403) for kind in ("nodes", "pvs", "pvcs", "storage_classes")}
    with pytest.raises(ConfigurationError, match="2 failed"):
        AuditRunner(FakeAccessor(errors=errors), _config(["nodes", "storage"])).run()


def test_forbidden_version_endpoint_is_not_fatal():
    accessor = _accessor(errors={"version": CollectionError("version", "Forbidden", 403)})
    report = AuditRunner(accessor, _config(["nodes", "upgrade"])).run()
    assert [r.domain for r in report.results] == ["Node Health", "Upgrade Readiness"]


def test_severity_threshold_filters_findings():
    report = AuditRunner(_accessor(), _config(["pods"], severity_threshold=Severity.CRITICAL)).run()
    (pods,) = report.results
    assert {f.severity for f in pods.findings} == {Severity.CRITICAL}
    unfiltered = AuditRunner(_accessor(), _config(["pods"])).run()
    assert pods.overall_score == unfiltered.results[0].overall_score


def test_category_filter():
    report = AuditRunner(_accessor(), _config(["nodes", "pods"], categories=["Node"])).run()
    assert {f.category for r in report.results for f in r.findings} == {"Node"}


def test_host_snapshots_are_merged_as_node_inspection():
    hosts = [parse_snapshot(snapshot_json("node-1", zombie_count=1))]
    collector = StubCollector(HostAgentStatus(AgentState.READY, 1, 1), hosts)
    report = AuditRunner(_accessor(), _config(["nodes"]), collector=collector).run()

    assert [r.domain for r in report.results] == ["Node Health", "Node Inspection"]
    assert report.hosts == tuple(hosts)
    assert not report.fleet_restarted
    data = report.to_dict()
    assert data["host_agent_status"]["state"] == "ready"
    assert data["hosts"][0]["node_name"] == "node-1"


def test_undeployed_agents_skip_collection():
    collector = StubCollector(HostAgentStatus(AgentState.NOT_DEPLOYED))
    report = AuditRunner(_accessor(), _config(["nodes"]), collector=collector).run()

    assert not collector.collected
    assert report.hosts == ()
    assert [r.domain for r in report.results] == ["Node Health"]


def test_agents_only_consulted_with_node_checks():
    collector = StubCollector(HostAgentStatus(AgentState.READY, 1, 1), [])
    report = AuditRunner(_accessor(), _config(["pods"]), collector=collector).run()
    assert report.host_agent_status is None
    assert not collector.collected


def test_restart_is_reported_as_change():
    collector = StubCollector(HostAgentStatus(AgentState.RESTARTED_AND_READY, 2, 2), [])
    report = AuditRunner(_accessor(), _config(["nodes"]), collector=collector).run()
    assert report.fleet_restarted


def test_report_to_dict():
    report = AuditRunner(_accessor(), _config(["nodes", "pods"]), cluster_name="prod").run()
    data = report.to_dict()

    assert data["cluster_name"] == "prod"
    assert data["health_tier"] == report.executive_summary.health_tier.value
    assert [r["domain"] for r in data["results"]] == ["Node Health", "Pod Status"]
    assert data["executive_summary"]["key_findings"][0]["code"] in {"NODE-001", "POD-001"}
    assert data["host_agent_status"] is None
    assert len(data["report_id"]) == 8
