# SPDX-License-Identifier: MIT

"""Exception hierarchy shared by the accessor, inspectors and collector."""

from __future__ import annotations

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

# Anything the K8s client can raise for a single call that is worth
# classifying rather than crashing on.
TRANSPORT_ERRORS = (ApiException, HTTPError, OSError)

NOT_FOUND_STATUSES = (404, 410)


class KubAuditError(Exception):
    """Base class for all kub-audit errors."""


class ConfigurationError(KubAuditError):
    """No usable connection to the cluster, or invalid options. Fatal."""


class CollectionError(KubAuditError):
    """A single list/get/log call failed."""

    def __init__(self, kind: str, reason: str, status: int | None = None):
        self.kind = kind
        self.reason = reason
        self.status = status
        prefix = f"{kind}: " if kind else ""
        code = f"HTTP {status} " if status else ""
        super().__init__(f"{prefix}{code}{reason}".strip())

    @property
    def not_found(self) -> bool:
        return self.status in NOT_FOUND_STATUSES

    @property
    def forbidden(self) -> bool:
        return self.status in (401, 403)

    @classmethod
    def from_exception(cls, kind: str, exc: Exception) -> CollectionError:
        if isinstance(exc, ApiException):
            return cls(kind, exc.reason or "API error", status=exc.status)
        return cls(kind, str(exc) or type(exc).__name__)


class AuditUnitError(KubAuditError):
    """Every check of an inspector failed, so no partial result exists."""

    def __init__(self, domain: str, failures: list[CollectionError]):
        self.domain = domain
        self.failures = failures
        first = failures[0] if failures else "no checks ran"
        super().__init__(f"{domain}: all checks failed ({first})")
