"""ClusterClient implementation backed by kubernetes-asyncio's DynamicClient."""

from __future__ import annotations

from typing import Any

import structlog

from kubegraph.errors import ClusterApiError
from kubegraph.observability.logging import get_logger

_MERGE_PATCH = "application/merge-patch+json"


class KubernetesClusterClient:
    """Adapts ``kubernetes_asyncio.dynamic.DynamicClient`` to ClusterClient.

    Construct with an existing ``ApiClient`` or use ``from_environment()``,
    which loads in-cluster config and falls back to kubeconfig.
    """

    def __init__(self, api_client: Any, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._api_client = api_client
        self._dynamic: Any = None
        self._apis: dict[tuple[str, str], Any] = {}
        self._log = logger or get_logger("cluster.kubernetes")

    @classmethod
    async def from_environment(cls, logger: structlog.stdlib.BoundLogger | None = None) -> KubernetesClusterClient:
        log = logger or get_logger("cluster.kubernetes")
        # Imported lazily so the engine can be used with a fake client
        # without kubernetes-asyncio probing for cluster config.
        import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
        from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

        try:
            k8s_config.load_incluster_config()
            log.info("k8s_client_configured", source="incluster")
        except k8s_config.ConfigException:
            await k8s_config.load_kube_config()
            log.info("k8s_client_configured", source="kubeconfig")
        return cls(k8s_client.ApiClient(), logger=log)

    async def close(self) -> None:
        await self._api_client.close()

    async def __aenter__(self) -> KubernetesClusterClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # ClusterClient
    # ------------------------------------------------------------------

    async def read(self, address: dict[str, Any]) -> dict[str, Any]:
        async def call(client: Any, api: Any, name: str, namespace: str | None) -> Any:
            return await client.get(api, name=name, namespace=namespace)

        return await self._call("read", address, call)

    async def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        async def call(client: Any, api: Any, name: str, namespace: str | None) -> Any:
            return await client.create(api, body=manifest, namespace=namespace)

        return await self._call("create", manifest, call)

    async def replace(self, manifest: dict[str, Any]) -> dict[str, Any]:
        async def call(client: Any, api: Any, name: str, namespace: str | None) -> Any:
            return await client.replace(api, body=manifest, name=name, namespace=namespace)

        return await self._call("replace", manifest, call)

    async def patch(self, manifest: dict[str, Any]) -> dict[str, Any]:
        async def call(client: Any, api: Any, name: str, namespace: str | None) -> Any:
            return await client.patch(api, body=manifest, name=name, namespace=namespace, content_type=_MERGE_PATCH)

        return await self._call("patch", manifest, call)

    async def delete(self, address: dict[str, Any], grace_period: int | None = None) -> None:
        body: dict[str, Any] | None = None
        if grace_period is not None:
            body = {"kind": "DeleteOptions", "apiVersion": "v1", "gracePeriodSeconds": grace_period}

        async def call(client: Any, api: Any, name: str, namespace: str | None) -> Any:
            return await client.delete(api, name=name, namespace=namespace, body=body)

        await self._call("delete", address, call)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _client(self) -> Any:
        if self._dynamic is None:
            from kubernetes_asyncio.dynamic import DynamicClient  # type: ignore[import-untyped]

            self._dynamic = await DynamicClient(self._api_client)
        return self._dynamic

    async def _api(self, client: Any, api_version: str, kind: str) -> Any:
        key = (api_version, kind)
        if key not in self._apis:
            self._apis[key] = await client.resources.get(api_version=api_version, kind=kind)
        return self._apis[key]

    async def _call(self, verb: str, obj: dict[str, Any], call: Any) -> dict[str, Any]:
        import aiohttp
        from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]
        from kubernetes_asyncio.dynamic.exceptions import ResourceNotFoundError  # type: ignore[import-untyped]

        metadata = obj.get("metadata") or {}
        api_version = str(obj.get("apiVersion", ""))
        kind = str(obj.get("kind", ""))
        name = metadata.get("name")
        try:
            client = await self._client()
            api = await self._api(client, api_version, kind)
            namespace = metadata.get("namespace") if api.namespaced else None
            result = await call(client, api, name, namespace)
        except ResourceNotFoundError as exc:
            # Kind not served yet, e.g. a CRD that is not established.
            self._apis.pop((api_version, kind), None)
            raise ClusterApiError(404, f"no API for {api_version}/{kind}") from exc
        except ApiException as exc:
            raise ClusterApiError(exc.status, exc.reason or "", exc.body) from exc
        except aiohttp.ClientError as exc:
            raise ClusterApiError(None, str(exc)) from exc

        self._log.debug("k8s_api_call", verb=verb, kind=kind, name=name)
        if result is None:
            return {}
        return result.to_dict() if hasattr(result, "to_dict") else dict(result)
