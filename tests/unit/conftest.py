"""Pytest configuration and fixtures."""

import copy
import json
import pytest
from collections import defaultdict
from datetime import datetime, timezone
from unittest.mock import Mock
from kubernetes_asyncio.client import ApiException
from kubernetes_asyncio.client.api_client import ApiClient
from ispn.resources import ConfigListener
from ispn.sensors import SensorDelegate
from ispn.types.schemas import InfinispanSpecSchema
from ispn.types.settings import Settings

LISTENER_IMAGE = "quay.io/infinispan/operator:2.4.0"


def api_error(status: int, reason: str) -> ApiException:
    ex = ApiException(status=status, reason=reason)
    ex.body = json.dumps({"kind": "Status", "reason": reason, "message": reason})
    return ex


class FakeCluster:
    """In-memory stand-in for the core, rbac and apps API clients.

    Objects are stored per (kind, namespace, name). Every call is recorded in
    `calls` as a (verb, kind, name) tuple. Errors queued in `failures` for a
    (verb, kind) pair are raised, one per call, before the call takes effect.
    """

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.patches = []
        self.failures = defaultdict(list)
        self._version = 0

    def fail(self, verb: str, kind: str, *errors: Exception):
        self.failures[(verb, kind)].extend(errors)

    def get(self, kind: str, namespace: str, name: str):
        return self.objects.get((kind, namespace, name))

    def kinds(self, namespace: str, name: str):
        return sorted(k for (k, ns, n) in self.objects if ns == namespace and n == name)

    def mutating_calls(self):
        return [call for call in self.calls if call[0] != "read"]

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _record(self, verb: str, kind: str, name: str):
        self.calls.append((verb, kind, name))
        pending = self.failures.get((verb, kind))
        if pending:
            raise pending.pop(0)

    def _read(self, kind, name, namespace):
        self._record("read", kind, name)
        obj = self.get(kind, namespace, name)
        if obj is None:
            raise api_error(404, "NotFound")
        return copy.deepcopy(obj)

    def _create(self, kind, namespace, body):
        name = body.metadata.name
        self._record("create", kind, name)
        if (kind, namespace, name) in self.objects:
            raise api_error(409, "AlreadyExists")
        obj = copy.deepcopy(body)
        obj.metadata.namespace = namespace
        obj.metadata.creation_timestamp = datetime.now(timezone.utc)
        obj.metadata.resource_version = self._next_version()
        self.objects[(kind, namespace, name)] = obj
        return copy.deepcopy(obj)

    def _replace(self, kind, name, namespace, body):
        self._record("replace", kind, name)
        current = self.get(kind, namespace, name)
        if current is None:
            raise api_error(404, "NotFound")
        obj = copy.deepcopy(body)
        obj.metadata.namespace = namespace
        obj.metadata.creation_timestamp = current.metadata.creation_timestamp
        obj.metadata.resource_version = self._next_version()
        self.objects[(kind, namespace, name)] = obj
        return copy.deepcopy(obj)

    def _delete(self, kind, name, namespace):
        self._record("delete", kind, name)
        if self.objects.pop((kind, namespace, name), None) is None:
            raise api_error(404, "NotFound")

    # CoreV1Api

    async def read_namespaced_service_account(self, name, namespace):
        return self._read("service_account", name, namespace)

    async def create_namespaced_service_account(self, namespace, body):
        return self._create("service_account", namespace, body)

    async def replace_namespaced_service_account(self, name, namespace, body):
        return self._replace("service_account", name, namespace, body)

    async def delete_namespaced_service_account(self, name, namespace):
        return self._delete("service_account", name, namespace)

    async def read_namespaced_pod(self, name, namespace):
        return self._read("pod", name, namespace)

    # RbacAuthorizationV1Api

    async def read_namespaced_role(self, name, namespace):
        return self._read("role", name, namespace)

    async def create_namespaced_role(self, namespace, body):
        return self._create("role", namespace, body)

    async def replace_namespaced_role(self, name, namespace, body):
        return self._replace("role", name, namespace, body)

    async def delete_namespaced_role(self, name, namespace):
        return self._delete("role", name, namespace)

    async def read_namespaced_role_binding(self, name, namespace):
        return self._read("role_binding", name, namespace)

    async def create_namespaced_role_binding(self, namespace, body):
        return self._create("role_binding", namespace, body)

    async def replace_namespaced_role_binding(self, name, namespace, body):
        return self._replace("role_binding", name, namespace, body)

    async def delete_namespaced_role_binding(self, name, namespace):
        return self._delete("role_binding", name, namespace)

    # AppsV1Api

    async def read_namespaced_deployment(self, name, namespace):
        return self._read("deployment", name, namespace)

    async def create_namespaced_deployment(self, namespace, body):
        return self._create("deployment", namespace, body)

    async def replace_namespaced_deployment(self, name, namespace, body):
        return self._replace("deployment", name, namespace, body)

    async def delete_namespaced_deployment(self, name, namespace):
        return self._delete("deployment", name, namespace)

    async def patch_namespaced_deployment(self, name, namespace, body):
        self._record("patch", "deployment", name)
        current = self.get("deployment", namespace, name)
        if current is None:
            raise api_error(404, "NotFound")
        expected = body.get("metadata", {}).get("resourceVersion")
        if expected is not None and expected != current.metadata.resource_version:
            raise api_error(409, "Conflict")
        self.patches.append(body)
        spec = body.get("spec") or {}
        if "replicas" in spec:
            current.spec.replicas = spec["replicas"]
        current.metadata.resource_version = self._next_version()
        return copy.deepcopy(current)


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def conf():
    return Settings(
        config_listener_image=LISTENER_IMAGE,
        operator_pod_name="infinispan-operator-0",
        operator_namespace="operators",
        resource_retry_attempts=3,
        resource_retry_min_wait_seconds=0,
        resource_retry_max_wait_seconds=0,
    )


@pytest.fixture
async def api_client():
    client = ApiClient()
    yield client
    await client.close()


@pytest.fixture
def sensor():
    delegate = SensorDelegate()
    monitor = Mock()
    monitor.on_reconcile_start.return_value = {"start": 1}
    monitor.on_resource_sync_start.return_value = {"start": 1}
    delegate.add(monitor)
    return monitor, delegate


@pytest.fixture
def make_listener(cluster, conf):
    """Build a config listener of cluster `example` bound to the fake cluster."""

    def make(
        spec=None, labels=None, annotations=None, owner=None, settings=None, api_client=None
    ):
        spec_model = InfinispanSpecSchema().load(spec or {"replicas": 3})
        listener = ConfigListener.from_spec(
            "example",
            "default",
            spec_model,
            labels=labels,
            annotations=annotations,
            owner=owner,
            conf=settings or conf,
        )
        if api_client is not None:
            listener._api_client = api_client
        listener._core_v1_api = cluster
        listener._rbac_v1_api = cluster
        listener._apps_v1_api = cluster
        return listener

    return make


@pytest.fixture
def listener_image():
    return LISTENER_IMAGE


@pytest.fixture(name="api_error")
def api_error_fixture():
    return api_error
