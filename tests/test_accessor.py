# SPDX-License-Identifier: MIT

import time
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace
from unittest import mock

import pytest
from kubernetes.client.exceptions import ApiException

from kub_audit.accessor import ClusterAccessor, connect, verify_connection
from kub_audit.errors import CollectionError, ConfigurationError


@pytest.fixture
def accessor():
    acc = ClusterAccessor(mock.MagicMock())
    acc._apis = {group: mock.MagicMock() for group in acc._apis}
    return acc


def _items(*names):
    return SimpleNamespace(items=[SimpleNamespace(name=n) for n in names])


def test_namespaced_and_cluster_wide_listers(accessor):
    core = accessor._apis["core"]
    core.list_namespaced_pod.return_value = _items("a")
    core.list_pod_for_all_namespaces.return_value = _items("a", "b")

    assert len(accessor.list_objects("pods", namespace="shop")) == 1
    core.list_namespaced_pod.assert_called_once_with(namespace="shop")
    assert len(accessor.list_objects("pods")) == 2


def test_cluster_scoped_kind_ignores_namespace(accessor):
    accessor._apis["core"].list_node.return_value = _items("n1")
    accessor.list_objects("nodes", namespace="shop")
    accessor._apis["core"].list_node.assert_called_once_with()


def test_lists_are_cached_unless_asked(accessor):
    lister = accessor._apis["storage"].list_storage_class
    lister.return_value = _items("gp3")
    accessor.list_objects("storage_classes")
    accessor.list_objects("storage_classes")
    assert lister.call_count == 1
    accessor.list_objects("storage_classes", cached=False)
    assert lister.call_count == 2


def test_label_selector_is_passed(accessor):
    lister = accessor._apis["core"].list_namespaced_pod
    lister.return_value = _items()
    accessor.list_objects("pods", namespace="kub-audit", label_selector="app=agent", cached=False)
    lister.assert_called_once_with(namespace="kub-audit", label_selector="app=agent")


def test_api_errors_become_collection_errors(accessor):
    accessor._apis["core"].list_component_status.side_effect = ApiException(status=404, reason="Not Found")
    with pytest.raises(CollectionError) as info:
        accessor.list_objects("component_statuses")
    assert info.value.not_found
    assert info.value.kind == "component_statuses"


def test_transport_errors_become_collection_errors(accessor):
    accessor._apis["core"].read_namespaced_pod_log.side_effect = ConnectionResetError("reset")
    with pytest.raises(CollectionError) as info:
        accessor.read_log("agent-0", "kub-audit", container="agent")
    assert info.value.status is None
    assert "reset" in str(info.value)


def test_unknown_kind(accessor):
    with pytest.raises(ValueError):
        accessor.list_objects("widgets")


def test_concurrent_misses_share_one_fetch(accessor):
    def slow_list():
        time.sleep(0.05)
        return _items("a", "b")

    lister = accessor._apis["core"].list_pod_for_all_namespaces
    lister.side_effect = slow_list
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: accessor.list_objects("pods"), range(8)))

    assert lister.call_count == 1
    assert all(r is results[0] for r in results)


# =====================================================================
# Connectivity
# =====================================================================

@pytest.fixture
def version_api(monkeypatch):
    api = mock.MagicMock()
    monkeypatch.setattr("kub_audit.accessor.client.VersionApi", api)
    return api.return_value


def test_verify_connection_returns_server_version(accessor, version_api):
    version_api.get_code.return_value = SimpleNamespace(git_version="v1.30.1")
    assert verify_connection(accessor) == "v1.30.1"


@pytest.mark.parametrize("error", [
    ConnectionRefusedError("Connection refused"),
    ApiException(status=401, reason="Unauthorized"),
])
def test_unreachable_or_unauthenticated_is_fatal(accessor, version_api, error):
    version_api.get_code.side_effect = error
    with pytest.raises(ConfigurationError):
        verify_connection(accessor)


def test_forbidden_version_endpoint_still_connects(accessor, version_api):
    version_api.get_code.side_effect = ApiException(status=403, reason="Forbidden")
    assert verify_connection(accessor) == "unknown"


@pytest.fixture
def kubeconfig(monkeypatch):
    monkeypatch.setattr("kub_audit.accessor.config.load_kube_config", lambda **kwargs: None)
    monkeypatch.setattr("kub_audit.accessor.config.list_kube_config_contexts",
                        lambda **kwargs: ([], {"name": "dev", "context": {"cluster": "kind-dev"}}))


def test_connect_reads_context_names(kubeconfig, version_api):
    version_api.get_code.return_value = SimpleNamespace(git_version="v1.30.1")
    conn = connect()
    assert (conn.cluster_name, conn.context_name) == ("kind-dev", "dev")


def test_connect_fails_when_api_server_is_down(kubeconfig, version_api):
    version_api.get_code.side_effect = ConnectionRefusedError("Connection refused")
    with pytest.raises(ConfigurationError, match="Connection refused"):
        connect()
