"""Unit tests for the resource store calls shared by all resources."""

import pytest
from kubernetes_asyncio.client import ApiException, V1ObjectMeta, V1ServiceAccount
from ispn.common.models.labels import Labels
from ispn.resources.base import BaseResource, CREATED, UNCHANGED
from ispn.utils.retry import RetryPolicy, NO_RETRY

NAMESPACE = "default"


@pytest.fixture
def store():
    resource = BaseResource("example", NAMESPACE, "example-config-listener", Labels())
    resource.retry_policy = RetryPolicy(max_attempts=3, min_wait=0, max_wait=0)
    return resource


def service_account(name="example-config-listener"):
    return V1ServiceAccount(metadata=V1ObjectMeta(name=name))


class TestFetch:
    async def test_missing_object_is_none(self, store, cluster):
        assert await store.fetch_deployment(cluster, "absent", NAMESPACE) is None

    async def test_other_errors_are_raised(self, store, cluster, api_error):
        cluster.fail("read", "role", api_error(403, "Forbidden"))

        with pytest.raises(ApiException):
            await store.fetch_role(cluster, "example-config-listener", NAMESPACE)


class TestWrite:
    async def test_create_falls_back_to_replace(self, store, cluster):
        await store.create_service_account(cluster, NAMESPACE, service_account())

        await store.create_service_account(cluster, NAMESPACE, service_account())

        assert [verb for verb, _, _ in cluster.calls] == ["create", "create", "replace"]

    async def test_replace_falls_back_to_create(self, store, cluster):
        await store.replace_service_account(
            cluster, "example-config-listener", NAMESPACE, service_account()
        )

        assert [verb for verb, _, _ in cluster.calls] == ["replace", "create"]
        assert cluster.get("service_account", NAMESPACE, "example-config-listener")

    async def test_delete_of_missing_object_succeeds(self, store, cluster):
        await store.delete_role_binding(cluster, "absent", NAMESPACE)

        assert cluster.calls == [("delete", "role_binding", "absent")]

    async def test_transient_errors_are_retried(self, store, cluster, api_error):
        cluster.fail(
            "create", "service_account", api_error(503, "ServiceUnavailable"), api_error(429, "TooManyRequests")
        )

        await store.create_service_account(cluster, NAMESPACE, service_account())

        assert cluster.calls.count(("create", "service_account", "example-config-listener")) == 3

    async def test_retries_are_bounded(self, store, cluster, api_error):
        cluster.fail("create", "service_account", *[api_error(500, "InternalError")] * 3)

        with pytest.raises(ApiException) as exc_info:
            await store.create_service_account(cluster, NAMESPACE, service_account())

        assert exc_info.value.status == 500
        assert len(cluster.calls) == 3

    async def test_permanent_errors_are_not_retried(self, store, cluster, api_error):
        store.retry_policy = NO_RETRY
        cluster.fail("create", "service_account", api_error(422, "Invalid"))

        with pytest.raises(ApiException):
            await store.create_service_account(cluster, NAMESPACE, service_account())

        assert len(cluster.calls) == 1


class TestCreateOrPatch:
    async def test_creates_missing_object(self, store, cluster):
        def mutate(deployment):
            deployment.metadata.labels = {"app": "listener"}

        outcome = await store.create_or_patch_deployment(
            cluster, "example-config-listener", NAMESPACE, mutate
        )

        assert outcome == CREATED
        created = cluster.get("deployment", NAMESPACE, "example-config-listener")
        assert created.metadata.labels == {"app": "listener"}

    async def test_unchanged_object_is_not_patched(self, store, cluster, api_client):
        store._api_client = api_client
        await store.create_or_patch_deployment(
            cluster, "example-config-listener", NAMESPACE, lambda d: None
        )
        cluster.calls.clear()

        outcome = await store.create_or_patch_deployment(
            cluster, "example-config-listener", NAMESPACE, lambda d: None
        )

        assert outcome == UNCHANGED
        assert cluster.mutating_calls() == []


class TestHash:
    def test_hash_ignores_key_order(self, store):
        assert store.compute_hash({"a": 1, "b": [1, 2]}) == store.compute_hash(
            {"b": [1, 2], "a": 1}
        )

    def test_hash_changes_with_content(self, store):
        assert store.compute_hash({"a": 1}) != store.compute_hash({"a": 2})
        assert len(store.compute_hash("rules")) == 16

    def test_unsupported_type(self, store):
        with pytest.raises(ValueError):
            store.compute_hash(42)
