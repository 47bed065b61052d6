# SPDX-License-Identifier: MIT

"""Upgrade readiness: kubelet version skew and server version."""

from __future__ import annotations

import logging

from kub_audit.checks.base import AuditContext, Inspector, check
from kub_audit.errors import CollectionError
from kub_audit.models import Check, Domain

logger = logging.getLogger(__name__)

NO_NODES_SCORE = 60
SKEW_PENALTY = 10


class UpgradeInspector(Inspector):
    key = "upgrade"
    domain = Domain.UPGRADE

    @check("Kubelet Versions", "Checks that all nodes run the same kubelet version")
    def kubelet_versions(self, ctx: AuditContext) -> Check:
        nodes = self.fetch("nodes")
        if not nodes:
            return ctx.scored(NO_NODES_SCORE, detail="No nodes found",
                              recommendations=["Verify node registration before upgrading"])
        versions = sorted({
            (n.status.node_info.kubelet_version if n.status and n.status.node_info else None) or "unknown"
            for n in nodes
        })
        score = 100 - SKEW_PENALTY * (len(versions) - 1)
        return ctx.scored(score, detail=f"Kubelet versions: {', '.join(versions)}",
                          recommendations=["Align kubelet versions before the next upgrade"])

    @check("Deprecated API usage", "Reports the API server version for deprecation review")
    def deprecated_apis(self, ctx: AuditContext) -> Check:
        try:
            version = self.accessor.server_version()
        except CollectionError as exc:
            logger.debug("Server version unavailable: %s", exc)
            version = "unknown"
        return ctx.scored(100, detail=f"Server version {version}; review deprecated APIs before upgrading")
