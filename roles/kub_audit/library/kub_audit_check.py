#!/usr/bin/python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT

"""Ansible module wrapping the kub_audit package.

Connects to the K8s API from the Ansible control node, runs the selected
domain inspectors, optionally collects host snapshots from the node agent
DaemonSet, and returns the scored results.

Inspectors only list/get. The one write is the rollout restart of the node
agent DaemonSet when its data is stale; ``changed`` reports it.
"""

from __future__ import annotations

DOCUMENTATION = r"""
---
module: kub_audit_check
short_description: Audit a Kubernetes cluster and score its health
version_added: "1.0.0"
description:
  - Connects to a Kubernetes cluster via kubeconfig and runs domain inspectors
    for nodes, control plane, network, storage, resources, pods, autoscaling,
    batch, security, policies, observability, namespaces, certificates and
    upgrade readiness.
  - Each domain gets a score from its checks; domains are combined into a
    weighted cluster score and health tier.
  - Optionally reads per-host snapshots from a node agent DaemonSet. Stale
    agent data triggers one rollout restart of that DaemonSet.
options:
  kubeconfig:
    description: Path to the kubeconfig file.
    type: path
    default: ~/.kube/config
  context:
    description: Kubeconfig context to use. Defaults to current context.
    type: str
  namespace:
    description: Limit namespaced checks to a single namespace. Omit for all namespaces.
    type: str
  severity_threshold:
    description: Minimum finding severity to include in results.
    type: str
    default: info
    choices: [info, warning, critical]
  categories:
    description: Only keep findings in these categories (for example Pod, Node, RBAC).
    type: list
    elements: str
    default: []
  checks:
    description: Inspectors to run. Accepts aliases such as control, hpa, cron, policy, monitoring, csr, or all.
    type: list
    elements: str
    default: [all]
  host_agents:
    description: Collect host snapshots from the node agent DaemonSet.
    type: bool
    default: true
  agent_namespace:
    description: Namespace of the node agent DaemonSet.
    type: str
    default: kub-audit
  agent_daemonset:
    description: Name of the node agent DaemonSet.
    type: str
    default: kub-audit-node-agent
  agent_selector:
    description: Label selector of the node agent pods.
    type: str
    default: app=kub-audit-node-agent
  agent_container:
    description: Container whose log holds the snapshot.
    type: str
    default: agent
  poll_interval:
    description: Seconds between node agent log sweeps.
    type: float
    default: 6
  poll_timeout:
    description: Seconds to wait for all node agents to produce output.
    type: float
    default: 300
  staleness_hours:
    description: Agent data older than this triggers one DaemonSet restart.
    type: float
    default: 24
  max_recommendations:
    description: Number of priority recommendations in the executive summary.
    type: int
    default: 5
  max_workers:
    description: Inspectors run in parallel when greater than 1.
    type: int
    default: 1
  domain_weights:
    description: Override per-domain weights, keyed by domain name.
    type: dict
requirements:
  - kubernetes
  - kub-audit (this repository, pip installable)
author:
  - kub-audit contributors
"""

EXAMPLES = r"""
- name: Audit the current context
  kub_audit_check:
  register: audit

- name: Audit a single namespace, warnings and above only
  kub_audit_check:
    namespace: my-app
    severity_threshold: warning
    host_agents: false
  register: audit

- name: Only security and policy inspectors
  kub_audit_check:
    checks: [security, policy]
  register: audit

- name: Fail the play when the cluster scores Poor or worse
  kub_audit_check:
  register: audit
  failed_when: audit.summary.overall_score < 70
"""

RETURN = r"""
summary:
  description: Cluster-level score, tier and counts.
  type: dict
  returned: always
  sample:
    cluster_name: "prod"
    overall_score: 84.3
    health_tier: "Good"
    critical_count: 3
    warning_count: 12
    info_count: 4
executive_summary:
  description: Aggregated critical findings, priority recommendations and per-domain scores.
  type: dict
  returned: always
results:
  description: One entry per inspected domain with its checks and findings.
  type: list
  elements: dict
  returned: always
hosts:
  description: Host snapshots collected from the node agent.
  type: list
  elements: dict
  returned: always
host_agent_status:
  description: Outcome of the node agent readiness check, with a user-facing message.
  type: dict
  returned: when host_agents is true
unit_errors:
  description: Inspectors that produced no result, keyed by inspector.
  type: dict
  returned: always
"""


def run_module():
    from ansible.module_utils.basic import AnsibleModule

    module = AnsibleModule(
        argument_spec=dict(
            kubeconfig=dict(type="path", default="~/.kube/config"),
            context=dict(type="str", default=None),
            namespace=dict(type="str", default=None),
            severity_threshold=dict(type="str", default="info", choices=["info", "warning", "critical"]),
            categories=dict(type="list", elements="str", default=[]),
            checks=dict(type="list", elements="str", default=["all"]),
            host_agents=dict(type="bool", default=True),
            agent_namespace=dict(type="str", default="kub-audit"),
            agent_daemonset=dict(type="str", default="kub-audit-node-agent"),
            agent_selector=dict(type="str", default="app=kub-audit-node-agent"),
            agent_container=dict(type="str", default="agent"),
            poll_interval=dict(type="float", default=6),
            poll_timeout=dict(type="float", default=300),
            staleness_hours=dict(type="float", default=24),
            max_recommendations=dict(type="int", default=5),
            max_workers=dict(type="int", default=1),
            domain_weights=dict(type="dict", default=None),
        ),
        supports_check_mode=True,
    )

    try:
        from kub_audit.accessor import ClusterAccessor, connect
        from kub_audit.config import AuditConfig
        from kub_audit.errors import ConfigurationError
        from kub_audit.models import Severity
        from kub_audit.runner import AuditRunner
    except ImportError as e:
        module.fail_json(msg=f"The 'kub-audit' and 'kubernetes' Python packages are required: {e}")
        return

    params = dict(module.params)
    if module.check_mode:
        # No DaemonSet restart in check mode.
        params["host_agents"] = False

    try:
        cfg = AuditConfig.from_params(params)
        conn = connect(params["kubeconfig"], params["context"])
    except ConfigurationError as e:
        module.fail_json(msg=str(e))
        return

    runner = AuditRunner(ClusterAccessor(conn.api_client), cfg, cluster_name=conn.cluster_name)
    try:
        report = runner.run()
    except ConfigurationError as e:
        module.fail_json(msg=str(e))
        return
    except Exception as e:
        module.fail_json(msg=f"Failed to audit Kubernetes cluster: {e}")
        return

    status = report.host_agent_status
    if status is not None and (status.partial or not status.usable):
        module.warn(status.describe())
    for key, err in report.unit_errors.items():
        module.warn(f"{key} inspector produced no result: {err}")

    findings = [f for r in report.results for f in r.findings]
    summary = {
        "cluster_name": conn.cluster_name,
        "context": conn.context_name,
        "namespace": cfg.namespace,
        "overall_score": round(report.overall_score, 2),
        "health_tier": report.executive_summary.health_tier.value,
        "total_findings": len(findings),
        "critical_count": sum(1 for f in findings if f.severity == Severity.CRITICAL),
        "warning_count": sum(1 for f in findings if f.severity == Severity.WARNING),
        "info_count": sum(1 for f in findings if f.severity == Severity.INFO),
        "domains": len(report.results),
        "hosts": len(report.hosts),
    }

    data = report.to_dict()
    module.exit_json(
        changed=report.fleet_restarted,
        summary=summary,
        executive_summary=data["executive_summary"],
        results=data["results"],
        hosts=data["hosts"],
        host_agent_status=data["host_agent_status"],
        unit_errors=data["unit_errors"],
    )


def main():
    run_module()


if __name__ == "__main__":
    main()
