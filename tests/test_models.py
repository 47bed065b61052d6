# SPDX-License-Identifier: MIT

from kub_audit.models import (
    AuditResult, Check, CheckStatus, Finding, Severity, status_for_score,
)


def test_ratio_check_nine_of_ten_is_pass():
    chk = Check.ratio("Pods", "running pods", healthy=9, total=10)
    assert chk.score == 90.0
    assert chk.status == CheckStatus.PASS


def test_just_below_pass_boundary_is_warning():
    assert status_for_score(89.999) == CheckStatus.WARNING
    assert status_for_score(70.0) == CheckStatus.WARNING
    assert status_for_score(69.99) == CheckStatus.CRITICAL


def test_ratio_check_with_nothing_to_evaluate():
    assert Check.ratio("x", "", 0, 0).score == 100.0
    degraded = Check.ratio("x", "", 0, 0, empty_score=0.0)
    assert degraded.score == 0.0
    assert degraded.status == CheckStatus.CRITICAL


def test_passing_check_drops_recommendations():
    assert Check.scored("x", "", 95, recommendations=["do things"]).recommendations == ()
    assert Check.scored("x", "", 50, recommendations=["do things"]).recommendations == ("do things",)


def test_scored_check_is_clamped():
    assert Check.scored("x", "", 140).score == 100.0
    assert Check.scored("x", "", -3).score == 0.0


def test_audit_result_score_is_unweighted_mean():
    checks = [Check.scored("a", "", 100), Check.scored("b", "", 50), Check.error("c", "", "boom")]
    result = AuditResult.build("Storage", checks)
    assert result.overall_score == 50.0
    assert result.summary.total_checks == 3
    assert result.summary.passed_checks == 1
    assert result.summary.critical_checks == 1
    assert result.summary.error_checks == 1


def test_with_findings_keeps_checks_and_score():
    finding = Finding(Severity.CRITICAL, "Pod", "down", "fix", resource="ns/p")
    result = AuditResult.build("Pod Status", [Check.scored("a", "", 80)], [finding])
    filtered = result.with_findings([])
    assert filtered.overall_score == result.overall_score
    assert filtered.checks == result.checks
    assert filtered.findings == ()
    assert result.findings == (finding,)


def test_side_tables_only_serialised_when_present():
    result = AuditResult.build("Namespace", [Check.scored("a", "", 100)], namespace_rows=[])
    data = result.to_dict()
    assert data["namespace_rows"] == []
    assert "certificate_expiries" not in data
