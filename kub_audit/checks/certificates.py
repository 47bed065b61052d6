# SPDX-License-Identifier: MIT

"""CertificateSigningRequests and TLS secret expiry."""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any

from cryptography import x509
from cryptography.x509.oid import NameOID

from kub_audit.checks.base import AuditContext, Inspector, check, ref
from kub_audit.models import CertificateExpiry, Check, Domain, Severity

logger = logging.getLogger(__name__)

TLS_SECRET_TYPE = "kubernetes.io/tls"
EXPIRING_SOON_DAYS = 30
EXPIRING_LATER_DAYS = 90


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_tls_certificate(encoded: str) -> tuple[str, datetime] | None:
    """Decode a base64 ``tls.crt`` value; return (subject CN, notAfter) or None."""
    try:
        cert = x509.load_pem_x509_certificate(base64.b64decode(encoded))
    except ValueError as exc:
        logger.debug("unparseable tls.crt: %s", exc)
        return None
    names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    subject = str(names[0].value) if names else cert.subject.rfc4514_string()
    return subject, cert.not_valid_after_utc


def _csr_state(csr: Any) -> str:
    types = {c.type for c in (csr.status.conditions if csr.status else None) or []}
    for state in ("Denied", "Failed", "Approved"):
        if state in types:
            return state
    return "Pending"


class CertificateInspector(Inspector):
    key = "certificates"
    domain = Domain.CERTIFICATES

    @check("CertificateSigningRequests", "Checks CSRs for pending, denied or failed requests")
    def csrs(self, ctx: AuditContext) -> Check:
        csrs = self.fetch("csrs")
        bad = 0
        for csr in csrs:
            name = csr.metadata.name
            state = _csr_state(csr)
            if state in ("Denied", "Failed"):
                bad += 1
                ctx.add(
                    Severity.WARNING, "Certificate", f"CSR {name} is {state}",
                    "Review the requester and clean up the CSR", resource=name, code="CERT-001",
                )
            elif state == "Pending":
                bad += 1
                ctx.add(
                    Severity.INFO, "Certificate", f"CSR {name} is Pending approval",
                    "Approve or deny the CSR", resource=name, code="CERT-001",
                    evidence=[f"kubectl certificate approve {name}"],
                )
        return ctx.ratio(len(csrs) - bad, len(csrs), detail=f"{bad}/{len(csrs)} CSRs pending or rejected",
                         recommendation="Resolve pending and rejected CSRs")

    @check("TLS certificate expiry", "Checks expiry of certificates stored in TLS secrets")
    def tls_expiry(self, ctx: AuditContext) -> Check:
        now = _now()
        rows = ctx.table("certificate_expiries")
        expired = 0
        for secret in self.fetch("secrets", ctx):
            if secret.type != TLS_SECRET_TYPE:
                continue
            encoded = (secret.data or {}).get("tls.crt")
            if not encoded:
                continue
            parsed = parse_tls_certificate(encoded)
            if parsed is None:
                continue
            subject, not_after = parsed
            days = (not_after - now).days
            rows.append(CertificateExpiry(
                secret_namespace=secret.metadata.namespace, secret_name=secret.metadata.name,
                subject=subject, expiry_utc=not_after.strftime("%Y-%m-%d %H:%M:%S UTC"),
                days_until_expiry=days,
            ))
            if not_after <= now:
                expired += 1
                ctx.add(
                    Severity.CRITICAL, "Certificate", f"Certificate in secret {ref(secret)} ({subject}) has expired",
                    "Renew the certificate", resource=ref(secret), code="CERT-003",
                )
            elif days <= EXPIRING_SOON_DAYS:
                ctx.add(
                    Severity.WARNING, "Certificate",
                    f"Certificate in secret {ref(secret)} ({subject}) expires in {days} days",
                    "Renew the certificate before it expires", resource=ref(secret), code="CERT-002",
                )
        rows.sort(key=lambda r: (r.days_until_expiry, r.secret_namespace, r.secret_name))

        if expired:
            score = 40
        elif any(r.days_until_expiry <= EXPIRING_SOON_DAYS for r in rows):
            score = 70
        elif any(r.days_until_expiry <= EXPIRING_LATER_DAYS for r in rows):
            score = 85
        else:
            score = 100
        return ctx.scored(score, detail=f"{len(rows)} TLS certificates checked",
                          recommendations=["Renew expired or soon-expiring certificates"])
