# SPDX-License-Identifier: MIT

"""Read-only Kubernetes cluster audit.

Runs one inspector per domain against the K8s API, scores each domain,
combines the domains into a weighted cluster score, and optionally collects
host snapshots from the node agent DaemonSet.
"""

__version__ = "1.0.0"
