# SPDX-License-Identifier: MIT

"""Turn collected host snapshots into a regular AuditResult."""

from __future__ import annotations

from typing import Sequence

from kub_audit.collector.host_snapshot import STATUS_OK, HostSnapshot
from kub_audit.models import AuditResult, Check, Domain, Finding, Severity

DISK_WARN_PCT = 80.0
DISK_CRIT_PCT = 90.0
CERT_WARN_DAYS = 30


def _disk_usage(snap: HostSnapshot) -> list[tuple[str, float]]:
    if snap.node_disks:
        return [(d.mount_point, d.used_pct) for d in snap.node_disks if d.used_pct is not None]
    if snap.resources.root_disk_pct is not None:
        return [("/", snap.resources.root_disk_pct)]
    return []


def inspect_hosts(hosts: Sequence[HostSnapshot]) -> AuditResult:
    findings: list[Finding] = []
    total = len(hosts)

    ok_hosts = 0
    no_zombies = 0
    disks_ok = 0
    certs_ok = 0
    for snap in hosts:
        node = snap.node_name
        if snap.health == STATUS_OK:
            ok_hosts += 1

        if snap.zombie_count:
            findings.append(Finding(
                severity=Severity.WARNING, category="Node",
                description=f"Node {node} has {snap.zombie_count} zombie processes",
                recommendation="Find and restart the parent processes that are not reaping children",
                resource=node, code="NODE-003",
            ))
        else:
            no_zombies += 1

        full = False
        for mount, used in _disk_usage(snap):
            if used >= DISK_CRIT_PCT:
                full = True
                findings.append(Finding(
                    severity=Severity.CRITICAL, category="Node",
                    description=f"Node {node} mount {mount} is {used:.0f}% full",
                    recommendation="Free disk space or expand the volume", resource=node, code="NODE-005",
                ))
            elif used >= DISK_WARN_PCT:
                full = True
                findings.append(Finding(
                    severity=Severity.WARNING, category="Node",
                    description=f"Node {node} mount {mount} is {used:.0f}% full",
                    recommendation="Plan disk cleanup or expansion", resource=node, code="NODE-004",
                ))
        if not full:
            disks_ok += 1

        expired = False
        for cert in snap.node_certificates or []:
            if cert.days_remaining is None:
                continue
            if cert.days_remaining < 0:
                expired = True
                findings.append(Finding(
                    severity=Severity.CRITICAL, category="Certificate",
                    description=f"Certificate {cert.path} on node {node} has expired",
                    recommendation="Renew node certificates (kubeadm certs renew)", resource=node, code="CERT-003",
                ))
            elif cert.days_remaining <= CERT_WARN_DAYS:
                findings.append(Finding(
                    severity=Severity.WARNING, category="Certificate",
                    description=f"Certificate {cert.path} on node {node} expires in {cert.days_remaining} days",
                    recommendation="Renew node certificates before they expire", resource=node, code="CERT-002",
                ))
        if not expired:
            certs_ok += 1

    checks = [
        Check.ratio("Host Health", "Aggregated status reported by the node agent", ok_hosts, total,
                    detail=f"{ok_hosts}/{total} hosts report ok",
                    recommendation="Review node agent warnings per host"),
        Check.ratio("Zombie Processes", "Checks hosts for zombie processes", no_zombies, total,
                    detail=f"{total - no_zombies} hosts with zombie processes",
                    recommendation="Clean up zombie processes"),
        Check.ratio("Node Disk Usage", f"Checks host mounts against {DISK_WARN_PCT:.0f}% usage", disks_ok, total,
                    detail=f"{total - disks_ok} hosts with a mount above {DISK_WARN_PCT:.0f}%",
                    recommendation="Free disk space on affected hosts"),
        Check.ratio("Node Certificates", "Checks host certificate expiry", certs_ok, total,
                    detail=f"{total - certs_ok} hosts with expired certificates",
                    recommendation="Renew expired node certificates"),
    ]
    return AuditResult.build(Domain.NODE_INSPECTION, checks, findings)
