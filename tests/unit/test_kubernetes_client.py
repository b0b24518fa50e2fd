"""Tests for the kubernetes-asyncio adapter, with the DynamicClient mocked out."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from kubernetes_asyncio.client.exceptions import ApiException
from kubernetes_asyncio.dynamic.exceptions import ResourceNotFoundError

from kubegraph.cluster.kubernetes import KubernetesClusterClient
from kubegraph.errors import ClusterApiError

_MANIFEST = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cm", "namespace": "apps"}, "data": {}}


def _client(namespaced: bool = True) -> tuple[KubernetesClusterClient, MagicMock, MagicMock]:
    api = MagicMock()
    api.namespaced = namespaced
    dynamic = MagicMock()
    dynamic.resources.get = AsyncMock(return_value=api)
    client = KubernetesClusterClient(MagicMock())
    client._dynamic = dynamic
    return client, dynamic, api


def _result(obj: dict) -> MagicMock:
    result = MagicMock()
    result.to_dict.return_value = obj
    return result


class TestKubernetesClusterClient:
    async def test_create_returns_dict(self) -> None:
        client, dynamic, api = _client()
        dynamic.create = AsyncMock(return_value=_result({"kind": "ConfigMap", "metadata": {"uid": "u1"}}))

        live = await client.create(_MANIFEST)

        assert live["metadata"]["uid"] == "u1"
        dynamic.create.assert_awaited_once_with(api, body=_MANIFEST, namespace="apps")
        dynamic.resources.get.assert_awaited_once_with(api_version="v1", kind="ConfigMap")

    async def test_cluster_scoped_kind_drops_namespace(self) -> None:
        client, dynamic, api = _client(namespaced=False)
        dynamic.get = AsyncMock(return_value=_result({}))
        await client.read(_MANIFEST)
        dynamic.get.assert_awaited_once_with(api, name="cm", namespace=None)

    async def test_api_lookup_is_cached(self) -> None:
        client, dynamic, _ = _client()
        dynamic.get = AsyncMock(return_value=_result({}))
        await client.read(_MANIFEST)
        await client.read(_MANIFEST)
        assert dynamic.resources.get.await_count == 1

    async def test_api_exception_mapped(self) -> None:
        client, dynamic, _ = _client()
        dynamic.create = AsyncMock(side_effect=ApiException(status=409, reason="Conflict"))

        with pytest.raises(ClusterApiError) as info:
            await client.create(_MANIFEST)

        assert info.value.status == 409
        assert info.value.is_conflict

    async def test_unknown_kind_is_not_found_and_evicted(self) -> None:
        client, dynamic, _ = _client()
        dynamic.resources.get = AsyncMock(side_effect=ResourceNotFoundError("no Widget"))
        widget = {"apiVersion": "example.com/v1", "kind": "Widget", "metadata": {"name": "w"}}

        with pytest.raises(ClusterApiError) as info:
            await client.read(widget)

        assert info.value.is_not_found
        assert ("example.com/v1", "Widget") not in client._apis

    async def test_transport_error_has_no_status(self) -> None:
        client, dynamic, _ = _client()
        dynamic.get = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(ClusterApiError) as info:
            await client.read(_MANIFEST)
        assert info.value.status is None

    async def test_delete_sends_grace_period(self) -> None:
        client, dynamic, api = _client()
        dynamic.delete = AsyncMock(return_value=None)

        await client.delete(_MANIFEST, grace_period=0)

        body = dynamic.delete.await_args.kwargs["body"]
        assert body["gracePeriodSeconds"] == 0
        dynamic.delete.assert_awaited_once_with(api, name="cm", namespace="apps", body=body)

    async def test_patch_uses_merge_patch(self) -> None:
        client, dynamic, _ = _client()
        dynamic.patch = AsyncMock(return_value=_result({}))
        await client.patch(_MANIFEST)
        assert dynamic.patch.await_args.kwargs["content_type"] == "application/merge-patch+json"

    async def test_close_closes_api_client(self) -> None:
        api_client = MagicMock()
        api_client.close = AsyncMock()
        async with KubernetesClusterClient(api_client):
            pass
        api_client.close.assert_awaited_once()
