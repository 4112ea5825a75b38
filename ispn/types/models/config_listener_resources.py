from typing import NamedTuple


class BundleKey(NamedTuple):
    """Identity shared by every object of a config listener bundle."""

    #: Name of the ServiceAccount, Role, RoleBinding and Deployment
    name: str
    #: Namespace of the Infinispan cluster, and therefore of the bundle
    namespace: str
    #: Name of the owning Infinispan cluster
    cluster: str


class ConfigListenerResources:
    """Encapsulates the naming scheme used for the resources which the operator manages
    for the config listener of an Infinispan cluster."""

    @classmethod
    def component_name(self, cluster_name: str):
        """Returns the name shared by all config listener resources of a cluster."""
        return f"{cluster_name}-config-listener"

    @classmethod
    def bundle_key(self, cluster_name: str, namespace: str) -> BundleKey:
        return BundleKey(
            name=self.component_name(cluster_name),
            namespace=namespace,
            cluster=cluster_name,
        )
