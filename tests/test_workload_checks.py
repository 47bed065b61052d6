# SPDX-License-Identifier: MIT

from datetime import timedelta

import pytest
from kubernetes.client import (
    RbacV1Subject, V1ClusterRole, V1ClusterRoleBinding, V1Job, V1JobStatus, V1PolicyRule,
    V1ResourceQuota, V1RoleRef,
)

from k8s_objects import NOW, FakeAccessor, meta, namespace, pod
from kub_audit.checks import batch
from kub_audit.checks.batch import BatchInspector
from kub_audit.checks.namespaces import NamespaceInspector
from kub_audit.checks.observability import ObservabilityInspector
from kub_audit.checks.policies import PolicyInspector
from kub_audit.checks.resources import ResourceInspector
from kub_audit.checks.security import SecurityInspector
from kub_audit.models import AuditScope, Severity


def _check(result, name):
    return next(c for c in result.checks if c.name == name)


def _codes(result):
    return sorted(f.code for f in result.findings)


def test_limit_below_request_is_critical():
    pods = [pod("api", namespace="shop",
                requests={"cpu": "500m", "memory": "256Mi"}, limits={"cpu": "250m", "memory": "512Mi"})]
    accessor = FakeAccessor({
        "pods": pods,
        "namespaces": [namespace("shop"), namespace("kube-system")],
    })
    result = ResourceInspector(accessor).inspect()

    assert _check(result, "Resource Requests").score == 100.0
    assert _check(result, "Complete Resource Configuration").score == 0.0
    assert _codes(result) == ["RES-003", "RES-004"]
    quota = next(f for f in result.findings if f.code == "RES-003")
    assert quota.resource == "shop"


def test_missing_requests_and_limits():
    result = ResourceInspector(FakeAccessor({"pods": [pod("bare")]})).inspect()
    assert _codes(result) == ["RES-001", "RES-002"]


def test_no_governance_objects_use_fixed_scores():
    result = PolicyInspector(FakeAccessor()).inspect()
    assert _check(result, "Resource Quotas").score == 60.0
    assert _check(result, "Limit Ranges").score == 65.0
    assert _check(result, "Pod Disruption Budgets").score == 70.0
    assert _codes(result) == ["POLICY-001", "POLICY-002"]


def test_quota_coverage_ratio():
    accessor = FakeAccessor({
        "namespaces": [namespace("a"), namespace("b"), namespace("kube-system")],
        "resource_quotas": [V1ResourceQuota(metadata=meta("q", "a"))],
    })
    result = PolicyInspector(accessor).inspect()
    assert _check(result, "Resource Quotas").score == 50.0


def test_observability_stack_detection():
    pods = [
        pod("metrics-server-7d9f", namespace="kube-system"),
        pod("coredns-abc", namespace="kube-system"),
        pod("loki-0", namespace="logging"),
    ]
    result = ObservabilityInspector(FakeAccessor({"pods": pods})).inspect()

    assert _check(result, "Metrics Pipeline").score == 80.0
    assert _check(result, "Cluster DNS (CoreDNS)").score == 100.0
    assert _check(result, "Logging Stack").score == 100.0
    assert _check(result, "Monitoring & Alerting").score == 65.0
    assert _codes(result) == ["OBS-002", "OBS-004"]


def test_observability_ignores_namespace_scope():
    pods = [pod("coredns-abc", namespace="kube-system")]
    accessor = FakeAccessor({"pods": pods})
    result = ObservabilityInspector(accessor).inspect(AuditScope("shop"))
    assert _check(result, "Cluster DNS (CoreDNS)").score == 100.0


@pytest.fixture
def batch_now(monkeypatch):
    monkeypatch.setattr(batch, "_now", lambda: NOW)


def test_stuck_and_failed_jobs(batch_now):
    jobs = [
        V1Job(metadata=meta("stuck", "etl"), status=V1JobStatus(active=1, start_time=NOW - timedelta(hours=2))),
        V1Job(metadata=meta("fresh", "etl"), status=V1JobStatus(active=1, start_time=NOW - timedelta(minutes=5))),
        V1Job(metadata=meta("broken", "etl"), status=V1JobStatus(failed=3)),
        V1Job(metadata=meta("done", "etl"), status=V1JobStatus(succeeded=1)),
    ]
    result = BatchInspector(FakeAccessor({"jobs": jobs})).inspect()

    assert _check(result, "Jobs").score == 50.0
    assert _check(result, "CronJobs").score == 70.0
    assert _codes(result) == ["BATCH-004", "BATCH-005"]
    stuck = next(f for f in result.findings if f.code == "BATCH-005")
    assert "120m" in stuck.description


def test_namespace_rows():
    accessor = FakeAccessor({
        "namespaces": [namespace("b"), namespace("a")],
        "pods": [pod("p1", namespace="a"), pod("p2", namespace="a")],
        "resource_quotas": [V1ResourceQuota(metadata=meta("q", "b"))],
    })
    result = NamespaceInspector(accessor).inspect()
    assert result.overall_score == 100.0
    rows = {r.name: r for r in result.namespace_rows}
    assert [r.name for r in result.namespace_rows] == ["a", "b"]
    assert rows["a"].pod_count == 2
    assert rows["b"].has_resource_quota and not rows["a"].has_resource_quota


def test_rbac_wildcards_and_cluster_admin_bindings():
    roles = [
        V1ClusterRole(metadata=meta("system:controller"), rules=[V1PolicyRule(verbs=["*"], resources=["*"])]),
        V1ClusterRole(metadata=meta("ops-all"), rules=[V1PolicyRule(verbs=["*"], resources=["pods"])]),
        V1ClusterRole(metadata=meta("viewer"), rules=[V1PolicyRule(verbs=["get"], resources=["pods"])]),
        V1ClusterRole(metadata=meta("editor"), rules=[V1PolicyRule(verbs=["update"], resources=["pods"])]),
    ]
    bindings = [V1ClusterRoleBinding(
        metadata=meta("ci-admin"),
        role_ref=V1RoleRef(api_group="rbac.authorization.k8s.io", kind="ClusterRole", name="cluster-admin"),
        subjects=[RbacV1Subject(kind="ServiceAccount", name="deployer", namespace="ci")],
    )]
    result = SecurityInspector(FakeAccessor({"cluster_roles": roles, "cluster_role_bindings": bindings})).inspect()

    assert _check(result, "RBAC Configuration").score == pytest.approx(75 * 0.7)
    sa = next(f for f in result.findings if f.code == "SEC-003")
    assert sa.severity == Severity.CRITICAL
    assert sa.resource == "ci/deployer"
    assert "SEC-001" in _codes(result)
