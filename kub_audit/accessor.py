# SPDX-License-Identifier: MIT

"""Cluster state accessor.

Thin typed layer over the official K8s Python client. Every call either
returns model objects or raises ``CollectionError``; inspectors decide per
check whether that is fatal. List results are memoised for the lifetime of
the accessor so several inspectors asking for pods cost one API call.

All operations except ``patch_daemon_set`` are read-only.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from kub_audit.errors import TRANSPORT_ERRORS, CollectionError, ConfigurationError

logger = logging.getLogger(__name__)

# kind -> (api group attr, namespaced lister, cluster-wide lister).
# A None namespaced lister marks a cluster-scoped kind.
_KINDS: dict[str, tuple[str, str | None, str]] = {
    "namespaces": ("core", None, "list_namespace"),
    "nodes": ("core", None, "list_node"),
    "pods": ("core", "list_namespaced_pod", "list_pod_for_all_namespaces"),
    "services": ("core", "list_namespaced_service", "list_service_for_all_namespaces"),
    "secrets": ("core", "list_namespaced_secret", "list_secret_for_all_namespaces"),
    "service_accounts": ("core", "list_namespaced_service_account", "list_service_account_for_all_namespaces"),
    "events": ("core", "list_namespaced_event", "list_event_for_all_namespaces"),
    "pvcs": ("core", "list_namespaced_persistent_volume_claim", "list_persistent_volume_claim_for_all_namespaces"),
    "pvs": ("core", None, "list_persistent_volume"),
    "resource_quotas": ("core", "list_namespaced_resource_quota", "list_resource_quota_for_all_namespaces"),
    "limit_ranges": ("core", "list_namespaced_limit_range", "list_limit_range_for_all_namespaces"),
    "component_statuses": ("core", None, "list_component_status"),
    "deployments": ("apps", "list_namespaced_deployment", "list_deployment_for_all_namespaces"),
    "statefulsets": ("apps", "list_namespaced_stateful_set", "list_stateful_set_for_all_namespaces"),
    "daemonsets": ("apps", "list_namespaced_daemon_set", "list_daemon_set_for_all_namespaces"),
    "network_policies": ("net", "list_namespaced_network_policy", "list_network_policy_for_all_namespaces"),
    "cluster_roles": ("rbac", None, "list_cluster_role"),
    "cluster_role_bindings": ("rbac", None, "list_cluster_role_binding"),
    "storage_classes": ("storage", None, "list_storage_class"),
    "hpas": ("autoscaling", "list_namespaced_horizontal_pod_autoscaler",
             "list_horizontal_pod_autoscaler_for_all_namespaces"),
    "pdbs": ("policy", "list_namespaced_pod_disruption_budget", "list_pod_disruption_budget_for_all_namespaces"),
    "cronjobs": ("batch", "list_namespaced_cron_job", "list_cron_job_for_all_namespaces"),
    "jobs": ("batch", "list_namespaced_job", "list_job_for_all_namespaces"),
    "csrs": ("certificates", None, "list_certificate_signing_request"),
}


@dataclass(frozen=True)
class Connection:
    api_client: Any
    cluster_name: str
    context_name: str


def connect(kubeconfig: str | None = None, context: str | None = None) -> Connection:
    """Load kubeconfig (falling back to in-cluster config) and return a client."""
    try:
        try:
            config.load_kube_config(config_file=kubeconfig, context=context)
        except ConfigException:
            config.load_incluster_config()
        api_client = client.ApiClient()
    except (ConfigException, OSError) as exc:
        raise ConfigurationError(f"Failed to connect to Kubernetes cluster: {exc}") from exc

    try:
        _, active_ctx = config.list_kube_config_contexts(config_file=kubeconfig)
        cluster_name = active_ctx.get("context", {}).get("cluster", "unknown")
        context_name = context or active_ctx.get("name", "unknown")
    except (ConfigException, OSError):
        cluster_name = "in-cluster"
        context_name = context or "in-cluster"

    verify_connection(ClusterAccessor(api_client))
    return Connection(api_client, cluster_name, context_name)


def verify_connection(accessor: Any) -> str:
    """Ask the API server for its version; unreachable or unauthenticated is fatal.

    A 403 on /version still proves the server answered, so it is let through.
    """
    try:
        version = accessor.server_version()
    except CollectionError as exc:
        if exc.status is None or exc.status == 401:
            raise ConfigurationError(f"Failed to connect to Kubernetes cluster: {exc}") from exc
        logger.debug("Server version unavailable: %s", exc)
        return "unknown"
    logger.info("Connected to Kubernetes %s", version)
    return version


class ClusterAccessor:
    def __init__(self, api_client: Any):
        self.api_client = api_client
        self._apis = {
            "core": client.CoreV1Api(api_client),
            "apps": client.AppsV1Api(api_client),
            "net": client.NetworkingV1Api(api_client),
            "rbac": client.RbacAuthorizationV1Api(api_client),
            "storage": client.StorageV1Api(api_client),
            "autoscaling": client.AutoscalingV2Api(api_client),
            "policy": client.PolicyV1Api(api_client),
            "batch": client.BatchV1Api(api_client),
            "certificates": client.CertificatesV1Api(api_client),
        }
        self._cache: dict[tuple[str, str | None, str | None], list[Any]] = {}
        # Per-key locks: concurrent misses on one key share a single fetch.
        self._cache_lock = threading.Lock()
        self._key_locks: dict[tuple[str, str | None, str | None], threading.Lock] = {}

    def list_objects(self, kind: str, namespace: str | None = None, label_selector: str | None = None,
                     cached: bool = True) -> list[Any]:
        try:
            namespaced_fn = _KINDS[kind][1]
        except KeyError:
            raise ValueError(f"unknown kind '{kind}'") from None

        if namespaced_fn is None:
            namespace = None
        if not cached:
            return self._fetch(kind, namespace, label_selector)

        key = (kind, namespace, label_selector)
        with self._cache_lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        with key_lock:
            if key not in self._cache:
                self._cache[key] = self._fetch(kind, namespace, label_selector)
            return self._cache[key]

    def _fetch(self, kind: str, namespace: str | None, label_selector: str | None) -> list[Any]:
        group, namespaced_fn, all_ns_fn = _KINDS[kind]
        api = self._apis[group]
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if namespace:
            func = getattr(api, namespaced_fn)
            kwargs["namespace"] = namespace
        else:
            func = getattr(api, all_ns_fn)

        return self._call(kind, func, **kwargs).items or []

    def read_log(self, name: str, namespace: str, container: str | None = None) -> str:
        kwargs = {"container": container} if container else {}
        return self._call("pod log", self._apis["core"].read_namespaced_pod_log, name, namespace, **kwargs) or ""

    def read_daemon_set(self, name: str, namespace: str) -> Any:
        return self._call("daemonset", self._apis["apps"].read_namespaced_daemon_set, name, namespace)

    def patch_daemon_set(self, name: str, namespace: str, body: dict[str, Any]) -> Any:
        return self._call("daemonset", self._apis["apps"].patch_namespaced_daemon_set, name, namespace, body)

    def server_version(self) -> str:
        info = self._call("version", client.VersionApi(self.api_client).get_code)
        return info.git_version or "unknown"

    def _call(self, kind: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except TRANSPORT_ERRORS as exc:
            logger.debug("API call %s failed: %s", getattr(func, "__name__", "?"), exc)
            raise CollectionError.from_exception(kind, exc) from exc
