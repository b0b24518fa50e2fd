"""Tests for status hydration: static/dynamic split and deep merge."""

from __future__ import annotations

from kubegraph.deployment.hydration import StatusHydrator, hydrate, split_status_fields
from kubegraph.models import DeployedResource, Expression, Ref, ResourceStatus
from kubegraph.references import ResolutionContext


class TestHydrate:
    def test_static_dynamic_merge(self) -> None:
        static = {"phase": "Provisioned", "endpoints": {"public": "https://app.example.com", "internal": "pending"}}
        dynamic = {"ready": True, "endpoints": {"internal": "10.0.0.12:8080"}, "replicas": None}

        merged = hydrate(dynamic, static)

        assert merged == {
            "phase": "Provisioned",
            "endpoints": {"public": "https://app.example.com", "internal": "10.0.0.12:8080"},
            "ready": True,
        }

    def test_none_does_not_overwrite(self) -> None:
        assert hydrate({"url": None}, {"url": "http://fallback"}) == {"url": "http://fallback"}

    def test_inputs_not_mutated(self) -> None:
        static = {"a": {"b": 1}}
        dynamic = {"a": {"c": 2}}
        hydrate(dynamic, static)
        assert static == {"a": {"b": 1}}
        assert dynamic == {"a": {"c": 2}}

    def test_dynamic_scalar_replaces_static_dict(self) -> None:
        assert hydrate({"a": "flat"}, {"a": {"nested": True}}) == {"a": "flat"}


class TestSplitStatusFields:
    def test_split_recurses_into_dicts(self) -> None:
        ref = Ref("svc", "spec.clusterIP")
        static, dynamic = split_status_fields({"version": "1.2", "network": {"ip": ref, "port": 80}, "empty": {}})
        assert static == {"version": "1.2", "network": {"port": 80}, "empty": {}}
        assert dynamic == {"network": {"ip": ref}}

    def test_list_with_any_placeholder_is_dynamic(self) -> None:
        expr = Expression("db.status.host")
        static, dynamic = split_status_fields({"hosts": ["static.example.com", expr], "tags": ["a", "b"]})
        assert dynamic == {"hosts": ["static.example.com", expr]}
        assert static == {"tags": ["a", "b"]}


def _deployed(resource_id: str, live: dict) -> DeployedResource:
    record = DeployedResource.from_manifest(resource_id, {"kind": "Service", "metadata": {"name": resource_id}})
    record.advance(ResourceStatus.DEPLOYED)
    record.live = live
    return record


class TestStatusHydrator:
    def test_from_resources(self) -> None:
        context = ResolutionContext(deployed_resources={"svc": _deployed("svc", {"spec": {"clusterIP": "10.96.1.1"}})})
        mappings = {
            "ready": True,
            "endpoint": Expression("http://${svc.spec.clusterIP}"),
            "hosts": ["fixed", Ref("svc", "spec.clusterIP")],
        }
        assert StatusHydrator().hydrate_from_resources(mappings, context) == {
            "ready": True,
            "endpoint": "http://10.96.1.1",
            "hosts": ["fixed", "10.96.1.1"],
        }

    def test_unresolvable_field_left_to_static(self) -> None:
        mappings = {"endpoint": Ref("gone", "status.url"), "name": "demo"}
        assert StatusHydrator().hydrate_from_resources(mappings, ResolutionContext()) == {"name": "demo"}

    def test_from_live(self) -> None:
        mappings = {"kind": "WebApp", "url": Ref("ingress", "status.url"), "db": {"host": Ref("db", "status.host")}}
        live_status = {"url": "https://demo", "db": {"host": "db.internal", "extra": 1}, "state": "ACTIVE"}
        assert StatusHydrator().hydrate_from_live(mappings, live_status) == {
            "kind": "WebApp",
            "url": "https://demo",
            "db": {"host": "db.internal"},
        }
