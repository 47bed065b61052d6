# SPDX-License-Identifier: MIT

"""Domain inspectors. Importing this package registers every inspector."""

from kub_audit.checks import (  # noqa: F401
    autoscaling,
    batch,
    certificates,
    control_plane,
    namespaces,
    network,
    nodes,
    observability,
    pods,
    policies,
    resources,
    security,
    storage,
    upgrade,
)
from kub_audit.checks.base import Inspector

__all__ = ["Inspector", "registered_inspectors"]


def registered_inspectors() -> dict[str, type[Inspector]]:
    return Inspector.registry()
