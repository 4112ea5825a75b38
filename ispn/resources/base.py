import copy
import hashlib
import kopf
import mmh3
from functools import cached_property
from typing import Any, Callable, Dict, Mapping, Optional, Union
from ispn.utils.helpers import canonicalize_dict, prepare_merge_patch
from ispn.utils.retry import RetryPolicy, DEFAULT_RETRY_POLICY
from ispn.utils.errors import already_exists_error, not_found_error
from ispn.common.models.labels import Labels
from kubernetes_asyncio.client import (
    ApiException,
    AppsV1Api,
    CoreV1Api,
    RbacAuthorizationV1Api,
    V1Deployment,
    V1ObjectMeta,
    V1OwnerReference,
    V1Role,
    V1RoleBinding,
    V1ServiceAccount,
)
from kubernetes_asyncio.client.api_client import ApiClient

#: Outcomes of create_or_patch_deployment
CREATED = "created"
PATCHED = "patched"
UNCHANGED = "unchanged"


class BaseResource:
    """Base resource model.

    Holds the naming and labelling shared by the objects the operator manages
    for one Infinispan cluster, and the calls used to load, create, replace,
    patch and delete them. Mutating calls go through `retry_policy`.
    """

    OPERATOR_NAME = "infinispan-operator"

    shared_api_client: ApiClient = None  # Shared across all resources
    retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY

    _cluster: str
    _namespace: str
    _component_name: str
    _labels: Labels

    # k8s apis
    _api_client: ApiClient = None
    _core_v1_api: CoreV1Api = None
    _rbac_v1_api: RbacAuthorizationV1Api = None
    _apps_v1_api: AppsV1Api = None

    #: Body of the owning resource; objects are adopted by it when set
    owner: Optional[Mapping[str, Any]] = None

    def __init__(
        self, cluster: str, namespace: str, component_name: str, labels: Labels
    ):
        self._cluster = cluster
        self._namespace = namespace
        self._component_name = component_name
        self._labels = labels

    @property
    def cluster(self) -> str:
        return self._cluster

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def component_name(self) -> str:
        return self._component_name

    @property
    def labels(self) -> Labels:
        return self._labels

    def compute_hash(self, data: Any) -> str:
        """Compute a murmur3 hash."""
        if isinstance(data, dict):
            _data = canonicalize_dict(data)
        elif isinstance(data, str):
            _data = data.encode()
        else:
            raise ValueError(f"Hash of {type(data)} is not supported.")
        mumur_str = str(mmh3.hash128(_data))

        hash_obj = hashlib.sha256(mumur_str.encode("utf-8"))
        full_hash = hash_obj.hexdigest()

        # First 16 characters are enough for labels/annotations
        return full_hash[:16]

    def prepare_hash_annotation(self, key: str, hash: Union[str, int]) -> Dict[str, str]:
        """Prepare hash annotation for k8s resources."""
        return {key: str(hash)}

    def prepare_owner_references(self):
        """Controller owner reference to the owning resource, if known."""
        if not self.owner:
            return None
        ref = kopf.build_owner_reference(self.owner)
        return [
            V1OwnerReference(
                api_version=ref["apiVersion"],
                kind=ref["kind"],
                name=ref["name"],
                uid=ref["uid"],
                controller=ref.get("controller", True),
                block_owner_deletion=ref.get("blockOwnerDeletion", True),
            )
        ]

    async def _retry(self, func: Callable, *args, **kwargs):
        return await self.retry_policy.execute(func, *args, **kwargs)

    async def _fetch(self, read: Callable, name: str, namespace: str):
        try:
            return await read(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def _create_or_replace(
        self, create: Callable, replace: Callable, name: str, namespace: str, body: Any
    ):
        try:
            await self._retry(create, namespace=namespace, body=body)
        except ApiException as ex:
            if already_exists_error(ex):
                await self._retry(replace, name=name, namespace=namespace, body=body)
            else:
                raise

    async def _replace_or_create(
        self, create: Callable, replace: Callable, name: str, namespace: str, body: Any
    ):
        try:
            await self._retry(replace, name=name, namespace=namespace, body=body)
        except ApiException as ex:
            if not_found_error(ex):
                await self._retry(create, namespace=namespace, body=body)
            else:
                raise

    async def _delete(self, delete: Callable, name: str, namespace: str):
        try:
            await self._retry(delete, name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def fetch_service_account(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[V1ServiceAccount]:
        return await self._fetch(
            core_v1_api.read_namespaced_service_account, name, namespace
        )

    async def create_service_account(
        self, core_v1_api: CoreV1Api, namespace: str, service_account: V1ServiceAccount
    ) -> None:
        """Create the service account, replacing it if it already exists."""
        await self._create_or_replace(
            core_v1_api.create_namespaced_service_account,
            core_v1_api.replace_namespaced_service_account,
            service_account.metadata.name,
            namespace,
            service_account,
        )

    async def replace_service_account(
        self,
        core_v1_api: CoreV1Api,
        name: str,
        namespace: str,
        service_account: V1ServiceAccount,
    ) -> None:
        """Replace the service account, creating it if it does not exist."""
        await self._replace_or_create(
            core_v1_api.create_namespaced_service_account,
            core_v1_api.replace_namespaced_service_account,
            name,
            namespace,
            service_account,
        )

    async def delete_service_account(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> None:
        await self._delete(core_v1_api.delete_namespaced_service_account, name, namespace)

    async def fetch_role(
        self, rbac_v1_api: RbacAuthorizationV1Api, name: str, namespace: str
    ) -> Optional[V1Role]:
        return await self._fetch(rbac_v1_api.read_namespaced_role, name, namespace)

    async def create_role(
        self, rbac_v1_api: RbacAuthorizationV1Api, namespace: str, role: V1Role
    ) -> None:
        await self._create_or_replace(
            rbac_v1_api.create_namespaced_role,
            rbac_v1_api.replace_namespaced_role,
            role.metadata.name,
            namespace,
            role,
        )

    async def replace_role(
        self, rbac_v1_api: RbacAuthorizationV1Api, name: str, namespace: str, role: V1Role
    ) -> None:
        await self._replace_or_create(
            rbac_v1_api.create_namespaced_role,
            rbac_v1_api.replace_namespaced_role,
            name,
            namespace,
            role,
        )

    async def delete_role(
        self, rbac_v1_api: RbacAuthorizationV1Api, name: str, namespace: str
    ) -> None:
        await self._delete(rbac_v1_api.delete_namespaced_role, name, namespace)

    async def fetch_role_binding(
        self, rbac_v1_api: RbacAuthorizationV1Api, name: str, namespace: str
    ) -> Optional[V1RoleBinding]:
        return await self._fetch(rbac_v1_api.read_namespaced_role_binding, name, namespace)

    async def create_role_binding(
        self,
        rbac_v1_api: RbacAuthorizationV1Api,
        namespace: str,
        role_binding: V1RoleBinding,
    ) -> None:
        await self._create_or_replace(
            rbac_v1_api.create_namespaced_role_binding,
            rbac_v1_api.replace_namespaced_role_binding,
            role_binding.metadata.name,
            namespace,
            role_binding,
        )

    async def replace_role_binding(
        self,
        rbac_v1_api: RbacAuthorizationV1Api,
        name: str,
        namespace: str,
        role_binding: V1RoleBinding,
    ) -> None:
        await self._replace_or_create(
            rbac_v1_api.create_namespaced_role_binding,
            rbac_v1_api.replace_namespaced_role_binding,
            name,
            namespace,
            role_binding,
        )

    async def delete_role_binding(
        self, rbac_v1_api: RbacAuthorizationV1Api, name: str, namespace: str
    ) -> None:
        await self._delete(rbac_v1_api.delete_namespaced_role_binding, name, namespace)

    async def fetch_deployment(
        self, apps_v1_api: AppsV1Api, name: str, namespace: str
    ) -> Optional[V1Deployment]:
        return await self._fetch(apps_v1_api.read_namespaced_deployment, name, namespace)

    async def create_deployment(
        self, apps_v1_api: AppsV1Api, namespace: str, deployment: V1Deployment
    ) -> None:
        await self._create_or_replace(
            apps_v1_api.create_namespaced_deployment,
            apps_v1_api.replace_namespaced_deployment,
            deployment.metadata.name,
            namespace,
            deployment,
        )

    async def replace_deployment(
        self, apps_v1_api: AppsV1Api, name: str, namespace: str, deployment: V1Deployment
    ) -> None:
        await self._replace_or_create(
            apps_v1_api.create_namespaced_deployment,
            apps_v1_api.replace_namespaced_deployment,
            name,
            namespace,
            deployment,
        )

    async def delete_deployment(
        self, apps_v1_api: AppsV1Api, name: str, namespace: str
    ) -> None:
        await self._delete(apps_v1_api.delete_namespaced_deployment, name, namespace)

    async def create_or_patch_deployment(
        self,
        apps_v1_api: AppsV1Api,
        name: str,
        namespace: str,
        mutate: Callable[[V1Deployment], None],
    ) -> str:
        """Load the deployment (or start from an empty one), apply `mutate` and persist it.

        An existing deployment is persisted as a merge patch carrying the loaded
        resourceVersion, so a concurrent writer makes the patch fail with a
        conflict; the whole load-mutate-patch cycle is then repeated. `mutate`
        may raise to abort before anything is written.
        """

        async def attempt() -> str:
            current = await self.fetch_deployment(apps_v1_api, name, namespace)
            if current is None:
                deployment = V1Deployment(
                    api_version="apps/v1",
                    kind="Deployment",
                    metadata=V1ObjectMeta(name=name, namespace=namespace),
                )
            else:
                deployment = copy.deepcopy(current)
            mutate(deployment)

            if current is None:
                await apps_v1_api.create_namespaced_deployment(
                    namespace=namespace, body=deployment
                )
                return CREATED

            patch = prepare_merge_patch(
                self.api_client.sanitize_for_serialization(current),
                self.api_client.sanitize_for_serialization(deployment),
            )
            if not patch:
                return UNCHANGED
            patch.setdefault("metadata", {})["resourceVersion"] = (
                current.metadata.resource_version
            )
            await apps_v1_api.patch_namespaced_deployment(
                name=name, namespace=namespace, body=patch
            )
            return PATCHED

        return await self._retry(attempt)

    @cached_property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            # Use the shared API client if available, otherwise create a new one
            if self.shared_api_client is not None:
                self._api_client = self.shared_api_client
            else:
                self._api_client = ApiClient()
        return self._api_client

    @cached_property
    def core_v1_api(self) -> CoreV1Api:
        if self._core_v1_api is None:
            self._core_v1_api = CoreV1Api(self.api_client)
        return self._core_v1_api

    @cached_property
    def rbac_v1_api(self) -> RbacAuthorizationV1Api:
        if self._rbac_v1_api is None:
            self._rbac_v1_api = RbacAuthorizationV1Api(self.api_client)
        return self._rbac_v1_api

    @cached_property
    def apps_v1_api(self) -> AppsV1Api:
        if self._apps_v1_api is None:
            self._apps_v1_api = AppsV1Api(self.api_client)
        return self._apps_v1_api
