# SPDX-License-Identifier: MIT

import random

import pytest

from kub_audit.models import AuditResult, Check, Finding, HealthTier, Severity
from kub_audit.scoring import (
    DOMAIN_WEIGHTS, ScoringEngine, aggregate_findings, aggregate_recommendations,
    filter_by_category, filter_by_severity, health_tier, improvement_score,
)


def _result(domain, score, findings=()):
    return AuditResult.build(domain, [Check.scored("c", "", score)], findings)


def _critical(desc, resource=None, code=None, category="Pod", rec="fix it"):
    return Finding(Severity.CRITICAL, category, desc, rec, resource=resource, code=code)


def test_weighted_score_uses_domain_table():
    results = [_result("Pod Status", 100), _result("Storage", 40), _result("Custom", 70)]
    expected = (100 * 2.5 + 40 * 1.5 + 70 * 1.0) / (2.5 + 1.5 + 1.0)
    assert ScoringEngine().weighted_score(results) == pytest.approx(expected)


def test_weighted_score_empty_input_is_zero():
    assert ScoringEngine().weighted_score([]) == 0.0


def test_weighted_score_stays_in_bounds():
    rng = random.Random(7)
    domains = list(DOMAIN_WEIGHTS) + ["Namespace", "Certificates"]
    engine = ScoringEngine()
    for _ in range(50):
        results = [_result(rng.choice(domains), rng.uniform(0, 100)) for _ in range(rng.randint(1, 8))]
        assert 0.0 <= engine.weighted_score(results) <= 100.0


def test_weight_override():
    engine = ScoringEngine(weights={"Storage": 10.0})
    results = [_result("Storage", 0), _result("Custom", 100)]
    assert engine.weighted_score(results) == pytest.approx(100 / 11)


@pytest.mark.parametrize("score,tier", [
    (100, HealthTier.EXCELLENT), (90, HealthTier.EXCELLENT), (89.99, HealthTier.GOOD),
    (80, HealthTier.GOOD), (70, HealthTier.FAIR), (60, HealthTier.POOR),
    (59.9, HealthTier.CRITICAL), (0, HealthTier.CRITICAL),
])
def test_health_tier_buckets(score, tier):
    assert health_tier(score) == tier


def test_health_tier_is_monotonic():
    order = [HealthTier.CRITICAL, HealthTier.POOR, HealthTier.FAIR, HealthTier.GOOD, HealthTier.EXCELLENT]
    previous = 0
    for step in range(0, 10001):
        rank = order.index(health_tier(step / 100))
        assert rank >= previous
        previous = rank


def test_score_breakdown_sorted_by_domain():
    results = [
        AuditResult.build("Storage", [Check.scored("a", "", 50), Check.scored("b", "", 75)]),
        _result("Autoscaling", 95),
    ]
    rows = ScoringEngine().score_breakdown(results)
    assert [r.domain for r in rows] == ["Autoscaling", "Storage"]
    storage = rows[1]
    assert storage.weight == 1.5
    assert storage.check_count == 2
    assert storage.critical_checks == 1
    assert storage.warning_checks == 1


def test_aggregation_groups_by_code_and_unions_resources():
    findings = [
        _critical("pod a crashing", "ns/a", "POD-007"),
        _critical("pod b crashing", "ns/b", "POD-007"),
        _critical("pod a crashing again", "ns/a", "POD-007"),
        _critical("node down", "n1", "NODE-001", category="Node"),
        Finding(Severity.WARNING, "Pod", "ignored", "x", resource="ns/z", code="POD-003"),
    ]
    rows = aggregate_findings(findings)
    assert [r.code for r in rows] == ["POD-007", "NODE-001"]
    assert rows[0].resources == ("ns/a", "ns/b")
    assert rows[0].title == "CrashLoopBackOff"
    assert rows[0].occurrences == 3


def test_aggregation_without_code_groups_by_category_and_recommendation():
    findings = [
        _critical("first text", "r1", rec="restart"),
        _critical("second text", "r2", rec="restart"),
        _critical("third", "r3", rec="other"),
    ]
    rows = aggregate_findings(findings)
    assert len(rows) == 2
    assert rows[0].title == "first text"
    assert rows[0].resources == ("r1", "r2")


def test_regrouping_aggregated_rows_keeps_row_count():
    findings = [
        _critical("a", "ns/a", "POD-007"), _critical("b", "ns/b", "POD-007"),
        _critical("c", "ns/c", "POD-001"), _critical("d", "n1", rec="check"),
    ]
    rows = aggregate_findings(findings)
    expanded = [
        Finding(Severity.CRITICAL, row.category, row.title, row.recommendation, resource=res, code=row.code)
        for row in rows for res in row.resources
    ]
    regrouped = aggregate_findings(expanded)
    assert len(regrouped) == len(rows)
    assert [r.resources for r in regrouped] == [r.resources for r in rows]


def test_aggregation_is_order_independent():
    findings = [_critical(f"f{i}", f"ns/p{i % 4}", f"POD-00{i % 3 + 1}") for i in range(12)]
    findings += [_critical("x", "r", rec=f"rec {i % 2}") for i in range(4)]
    baseline = aggregate_findings(findings)
    for seed in range(5):
        shuffled = findings[:]
        random.Random(seed).shuffle(shuffled)
        assert aggregate_findings(shuffled) == baseline


def test_recommendations_deduped_ranked_and_truncated():
    findings = []
    for i, count in enumerate([1, 4, 2, 3, 5, 1, 2]):
        findings += [_critical("x", rec=f"rec-{i}")] * count
    findings.append(Finding(Severity.WARNING, "Pod", "x", "warning only"))
    recs = aggregate_recommendations(findings, limit=5)
    assert recs == ["rec-4", "rec-1", "rec-3", "rec-2", "rec-6"]


def test_executive_summary_is_deterministic():
    results = [
        _result("Pod Status", 60, [_critical("a", "ns/a", "POD-001")]),
        _result("Node Health", 95),
    ]
    engine = ScoringEngine()
    first = engine.executive_summary(results)
    second = engine.executive_summary(list(reversed(results)))
    assert first.key_findings == second.key_findings
    assert first.priority_recommendations == second.priority_recommendations
    assert first.overall_score == pytest.approx(second.overall_score)
    assert list(first.score_breakdown) == ["Node Health", "Pod Status"]


def test_improvement_score_is_capped():
    assert improvement_score([_critical("a")]) == 15
    assert improvement_score([_critical("a")] * 10) == 100


def test_severity_filter_recomputes_summary_not_score():
    findings = [
        _critical("a"), Finding(Severity.WARNING, "Pod", "b", "r"), Finding(Severity.INFO, "Pod", "c", "r"),
    ]
    result = _result("Pod Status", 75, findings)
    (filtered,) = filter_by_severity([result], Severity.WARNING)
    assert [f.severity for f in filtered.findings] == [Severity.CRITICAL, Severity.WARNING]
    assert filtered.overall_score == result.overall_score


def test_category_filter():
    findings = [_critical("a", category="Pod"), _critical("b", category="Node")]
    (filtered,) = filter_by_category([_result("X", 50, findings)], ["node"])
    assert [f.category for f in filtered.findings] == ["Node"]
    assert filter_by_category([_result("X", 50, findings)], [])[0].findings == tuple(findings)


def test_category_filter_drops_unmatched_domains_and_rescores():
    results = [
        _result("Storage", 0, [_critical("disk", category="Storage")]),
        _result("Pod Status", 100, [_critical("crash", category="Pod")]),
    ]
    engine = ScoringEngine()
    assert engine.weighted_score(results) == pytest.approx(62.5)

    filtered = filter_by_category(results, ["pod"])
    assert [r.domain for r in filtered] == ["Pod Status"]
    summary = engine.executive_summary(filtered)
    assert summary.overall_score == 100.0
    assert summary.health_tier == HealthTier.EXCELLENT
    assert list(summary.score_breakdown) == ["Pod Status"]


def test_category_filter_matches_substrings_case_insensitively():
    findings = [_critical("a", category="Persistent Storage"), _critical("b", category="Pod")]
    (filtered,) = filter_by_category([_result("Storage", 40, findings)], ["STOR"])
    assert [f.category for f in filtered.findings] == ["Persistent Storage"]
    assert filter_by_category([_result("Storage", 40, findings)], ["network"]) == []
