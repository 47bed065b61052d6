# SPDX-License-Identifier: MIT

import pytest

from kub_audit.issue_codes import SHORT_TITLES, doc_path, short_title
from kub_audit.quantity import fmt_memory, parse_cpu_millicores, parse_memory_bytes


@pytest.mark.parametrize("raw,expected", [
    ("250m", 250.0), ("1.5", 1500.0), (2, 2000.0), ("500000u", 500.0), ("100000000n", 100.0),
])
def test_parse_cpu(raw, expected):
    assert parse_cpu_millicores(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw,expected", [
    ("128Mi", 128 * 1024**2), ("1Gi", 1024**3), ("1G", 1000**3), ("500k", 500_000), ("1024", 1024.0),
])
def test_parse_memory(raw, expected):
    assert parse_memory_bytes(raw) == expected


def test_unparseable_quantities():
    assert parse_cpu_millicores("lots") is None
    assert parse_memory_bytes("12Qi") is None
    assert parse_memory_bytes(None) is None


def test_fmt_memory():
    assert fmt_memory(1.5 * 1024**3) == "1.5Gi"
    assert fmt_memory(256 * 1024**2) == "256Mi"
    assert fmt_memory(2048) == "2Ki"


def test_issue_codes():
    assert short_title("STO-009") == "No default StorageClass"
    assert short_title("XYZ-999") is None
    assert short_title(None) is None
    assert doc_path("POD-007") == "docs/issues/POD-007.md"
    assert all(code.split("-")[1].isdigit() for code in SHORT_TITLES)
