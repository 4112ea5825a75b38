import logging
from enum import Enum
from logging import Logger
from typing import Any, Callable, Dict, List, Mapping, Optional
from ispn.types.settings import Settings
from ispn.types.models import BundleKey, ConfigListenerResources, InfinispanSpec
from ispn.common.models.labels import Labels
from ispn.resources.base import BaseResource
from ispn.resources.operator_image import (
    ImageLookup,
    OperatorImageLookup,
    resolve_listener_image,
)
from ispn.sensors import SensorDelegate
from ispn.utils.errors import ListenerNotFoundError
from ispn.utils.helpers import find_by_name
from ispn.utils.retry import RetryPolicy
from kubernetes_asyncio.client import (
    RbacV1Subject,
    V1Container,
    V1Deployment,
    V1DeploymentSpec,
    V1LabelSelector,
    V1ObjectMeta,
    V1PodSpec,
    V1PodTemplateSpec,
    V1PolicyRule,
    V1Role,
    V1RoleBinding,
    V1RoleRef,
    V1ServiceAccount,
)


class ReconcileResult(str, Enum):
    """What a reconcile of the config listener did."""

    REMOVED = "Removed"
    CREATED = "Created"
    UPDATED = "Updated"
    SCALED = "Scaled"
    UNCHANGED = "Unchanged"


class ConfigListener(BaseResource):
    """Config listener of an Infinispan cluster.

    The listener is a single-replica Deployment watching the cluster for cache
    changes, plus the ServiceAccount, Role and RoleBinding granting it access
    to the API. All four objects share the name `<cluster>-config-listener`.
    """

    logger: Logger
    conf: Settings = Settings()
    sensor: SensorDelegate = SensorDelegate()

    KIND = "Infinispan"
    COMPONENT_TYPE = "config-listener"
    CONTAINER_NAME = "infinispan-listener"
    POD_APP = "infinispan-config-listener-pod"
    RULES_HASH_ANNOTATION = "infinispan.org/config-listener-rules-hash"

    DEFAULT_REPLICAS = 1

    #: (api group, resource, verbs) granted to the listener
    RULES = (
        ("infinispan.org", "caches", ["create", "delete", "get", "list", "patch", "update", "watch"]),
        ("infinispan.org", "infinispans", ["get"]),
        ("", "pods", ["list"]),
        ("", "pods/exec", ["create"]),
        ("", "secrets", ["get"]),
    )

    key: BundleKey
    enabled: bool
    pod_labels: Labels
    image_lookup: Optional[ImageLookup] = None

    def __init__(self, name: str, namespace: str, labels: Optional[Dict[str, str]] = None):
        component_name = ConfigListenerResources.component_name(name)
        _labels = Labels.generate_default_labels(
            name,
            component_name,
            self.COMPONENT_TYPE,
            self.OPERATOR_NAME,
        )
        _labels.update(labels or {})
        super().__init__(
            cluster=name,
            namespace=namespace,
            component_name=component_name,
            labels=_labels,
        )
        self.key = ConfigListenerResources.bundle_key(name, namespace)

    @classmethod
    def from_spec(
        self,
        name: str,
        namespace: str,
        spec: InfinispanSpec,
        labels: Optional[Mapping[str, str]] = None,
        annotations: Optional[Mapping[str, str]] = None,
        owner: Optional[Mapping[str, Any]] = None,
        logger: Logger = None,
        conf: Settings = None,
    ) -> "ConfigListener":
        listener = ConfigListener(name, namespace)
        listener.logger = logger or logging.getLogger(__name__)
        listener.conf = conf or self.conf
        listener.retry_policy = RetryPolicy.from_settings(listener.conf)
        listener.enabled = spec.config_listener.enabled
        listener.replicas = spec.replicas
        listener.owner = owner
        listener.pod_labels = Labels.generate_pod_labels(
            name, labels, annotations
        ).include_app(self.POD_APP)
        return listener

    @property
    def name(self) -> str:
        return self.key.name

    def prepare_metadata(self) -> V1ObjectMeta:
        return V1ObjectMeta(
            name=self.key.name,
            namespace=self.key.namespace,
            labels=self.labels.as_dict(),
            owner_references=self.prepare_owner_references(),
        )

    def prepare_service_account(self) -> V1ServiceAccount:
        """Build service account resource."""
        return V1ServiceAccount(
            api_version="v1",
            kind="ServiceAccount",
            metadata=self.prepare_metadata(),
        )

    def prepare_rules(self) -> List[V1PolicyRule]:
        return [
            V1PolicyRule(api_groups=[group], resources=[resource], verbs=list(verbs))
            for group, resource, verbs in self.RULES
        ]

    def prepare_rules_hash(self) -> str:
        """Hash of the rules granted to the listener, stamped on its pod template."""
        return self.compute_hash({"rules": [rule.to_dict() for rule in self.prepare_rules()]})

    def prepare_role(self) -> V1Role:
        """Build role resource."""
        return V1Role(
            api_version="rbac.authorization.k8s.io/v1",
            kind="Role",
            metadata=self.prepare_metadata(),
            rules=self.prepare_rules(),
        )

    def prepare_role_binding(self) -> V1RoleBinding:
        """Build role binding resource."""
        return V1RoleBinding(
            api_version="rbac.authorization.k8s.io/v1",
            kind="RoleBinding",
            metadata=self.prepare_metadata(),
            role_ref=V1RoleRef(
                api_group="rbac.authorization.k8s.io",
                kind="Role",
                name=self.key.name,
            ),
            subjects=[
                RbacV1Subject(
                    kind="ServiceAccount",
                    name=self.key.name,
                    namespace=self.key.namespace,
                )
            ],
        )

    def prepare_container(self, image: str) -> V1Container:
        return V1Container(
            name=self.CONTAINER_NAME,
            image=image,
            args=[
                "listener",
                "-namespace",
                self.key.namespace,
                "-cluster",
                self.key.cluster,
            ],
        )

    def prepare_pod_template(self, image: str) -> V1PodTemplateSpec:
        """Build pod template resource."""
        return V1PodTemplateSpec(
            metadata=V1ObjectMeta(
                labels=self.pod_labels.as_dict(),
                annotations=self.prepare_hash_annotation(
                    self.RULES_HASH_ANNOTATION, self.prepare_rules_hash()
                ),
            ),
            spec=V1PodSpec(
                containers=[self.prepare_container(image)],
                service_account_name=self.key.name,
            ),
        )

    def prepare_deployment(self, image: str) -> V1Deployment:
        """Build deployment resource."""
        return V1Deployment(
            api_version="apps/v1",
            kind="Deployment",
            metadata=self.prepare_metadata(),
            spec=V1DeploymentSpec(
                replicas=self.DEFAULT_REPLICAS,
                selector=V1LabelSelector(match_labels=self.pod_labels.as_dict()),
                template=self.prepare_pod_template(image),
            ),
        )

    def prepare_deployment_drift(self, deployment: V1Deployment, image: str) -> List[str]:
        """Fields of an existing deployment that differ from the desired listener."""
        drift = []
        template = deployment.spec.template if deployment.spec else None
        pod_spec = template.spec if template else None
        container = find_by_name(pod_spec.containers if pod_spec else None, self.CONTAINER_NAME)
        if container is None or container.image != image:
            drift.append("image")
        annotations = (template.metadata.annotations if template and template.metadata else None) or {}
        if annotations.get(self.RULES_HASH_ANNOTATION) != self.prepare_rules_hash():
            drift.append("rules")
        return drift

    async def resolve_image(self) -> str:
        lookup = self.image_lookup or OperatorImageLookup(self.core_v1_api, self.conf)
        return await resolve_listener_image(self.conf.config_listener_image, lookup)

    async def reconcile(self, trigger_source: str = "handler", generation: int = 0) -> ReconcileResult:
        """Converge the config listener towards the desired state."""
        sensor_state = self.sensor.on_reconcile_start(
            self.cluster, self.namespace, generation, trigger_source
        )
        result, error = None, None
        try:
            result = await self._reconcile()
            return result
        except Exception as ex:
            error = ex
            raise
        finally:
            self.sensor.on_reconcile_complete(
                self.cluster,
                self.namespace,
                sensor_state,
                error is None,
                result.value if result else None,
                error,
            )

    async def _reconcile(self) -> ReconcileResult:
        if not self.enabled:
            await self.remove()
            return ReconcileResult.REMOVED

        try:
            image = await self.resolve_image()
        except Exception as ex:
            self.logger.error(f"Unable to create config listener {self.name}: {ex}")
            raise

        deployment = await self.fetch_deployment(
            self.apps_v1_api, self.key.name, self.key.namespace
        )
        if deployment is None:
            await self.sync_bundle(image, update=False)
            self.logger.info(f"Created config listener {self.name} with image {image}")
            return ReconcileResult.CREATED

        drift = self.prepare_deployment_drift(deployment, image)
        if not drift:
            if deployment.spec and deployment.spec.replicas == 0:
                await self.scale(1)
                return ReconcileResult.SCALED
            self.logger.debug(f"Config listener {self.name} is up to date")
            return ReconcileResult.UNCHANGED

        self.sensor.on_resource_drift_detected(
            self.cluster, self.key.name, self.key.namespace, "deployment", drift
        )
        await self.sync_bundle(image, update=True)
        self.logger.info(
            f"Updated config listener {self.name} ({', '.join(drift)} changed)"
        )
        return ReconcileResult.UPDATED

    async def sync_bundle(self, image: str, update: bool) -> None:
        """Write all listener objects in dependency order, stopping at the first failure.

        With `update` the objects are replaced, otherwise created; either call
        falls back to the other when the object is found missing or present.
        """
        operation = "replace" if update else "create"
        name, namespace = self.key.name, self.key.namespace
        steps = (
            (
                "service_account",
                self.prepare_service_account(),
                self.replace_service_account if update else self.create_service_account,
                self.core_v1_api,
            ),
            (
                "role",
                self.prepare_role(),
                self.replace_role if update else self.create_role,
                self.rbac_v1_api,
            ),
            (
                "role_binding",
                self.prepare_role_binding(),
                self.replace_role_binding if update else self.create_role_binding,
                self.rbac_v1_api,
            ),
            (
                "deployment",
                self.prepare_deployment(image),
                self.replace_deployment if update else self.create_deployment,
                self.apps_v1_api,
            ),
        )
        for resource_type, body, write, api in steps:
            if update:
                call = lambda: write(api, name, namespace, body)  # noqa: E731
            else:
                call = lambda: write(api, namespace, body)  # noqa: E731
            await self._instrumented(resource_type, operation, call)

    async def scale(self, replicas: int) -> None:
        """Set the replicas of an existing listener deployment."""
        if isinstance(replicas, bool) or not isinstance(replicas, int) or replicas < 0:
            raise ValueError(f"Invalid number of replicas: {replicas!r}")
        if not self.enabled:
            return
        name, namespace = self.key.name, self.key.namespace
        self.logger.info(f"Scaling config listener {name} to {replicas} replicas")

        def mutate(deployment: V1Deployment) -> None:
            if deployment.metadata.creation_timestamp is None:
                raise ListenerNotFoundError(name, namespace)
            deployment.spec.replicas = replicas

        success = False
        try:
            await self.create_or_patch_deployment(self.apps_v1_api, name, namespace, mutate)
            success = True
        except Exception as ex:
            self.logger.error(f"Unable to scale config listener deployment {name}: {ex}")
            raise
        finally:
            self.sensor.on_scale(self.cluster, namespace, replicas, success)

    async def remove(self) -> None:
        """Delete every listener object; missing objects are ignored."""
        name, namespace = self.key.name, self.key.namespace
        steps = (
            ("deployment", self.delete_deployment, self.apps_v1_api),
            ("role", self.delete_role, self.rbac_v1_api),
            ("role_binding", self.delete_role_binding, self.rbac_v1_api),
            ("service_account", self.delete_service_account, self.core_v1_api),
        )
        for resource_type, delete, api in steps:
            await self._instrumented(
                resource_type, "delete", lambda: delete(api, name, namespace)
            )
        self.logger.info(f"Removed config listener {name}")

    async def _instrumented(
        self, resource_type: str, operation: str, call: Callable
    ) -> None:
        sensor_state = self.sensor.on_resource_sync_start(
            self.cluster, self.key.name, self.key.namespace, resource_type
        )
        success = False
        try:
            await call()
            success = True
        except Exception as ex:
            self.logger.error(
                f"Failed to {operation} {resource_type} {self.key.name} in {self.key.namespace}: {ex}"
            )
            raise
        finally:
            self.sensor.on_resource_sync_complete(
                self.cluster,
                self.key.name,
                self.key.namespace,
                resource_type,
                sensor_state,
                operation,
                success,
            )
