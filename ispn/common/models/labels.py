from typing import Dict, Mapping, Optional


class ResourceLabels:
    INFINISPAN_DOMAIN: str = "infinispan.org/"

    #: Annotation on the Infinispan CR listing the CR labels to propagate to pods
    POD_TARGET_LABELS_ANNOTATION = INFINISPAN_DOMAIN + "podTargetLabels"

    APP_LABEL = "app"

    CLUSTER_NAME_LABEL = "clusterName"

    INFINISPAN_CR_LABEL = "infinispan_cr"

    INFINISPAN_POD_APP = "infinispan-pod"


class Labels(ResourceLabels):
    KUBERNETES_DOMAIN = "app.kubernetes.io/"

    KUBERNETES_NAME_LABEL = KUBERNETES_DOMAIN + "name"

    KUBERNETES_INSTANCE_LABEL = KUBERNETES_DOMAIN + "instance"

    KUBERNETES_PART_OF_LABEL = KUBERNETES_DOMAIN + "part-of"

    KUBERNETES_COMPONENT_LABEL = KUBERNETES_DOMAIN + "component"

    APPLICATION_NAME = "infinispan"

    KUBERNETES_MANAGED_BY_LABEL = KUBERNETES_DOMAIN + "managed-by"

    _labels: Dict[str, str]

    def __init__(self, labels: Dict[str, str] = None) -> None:
        self._labels = labels if labels else dict()

    def update(self, labels: Dict[str, str]) -> "Labels":
        self._labels.update(labels.copy())
        return self

    def as_dict(self) -> Dict[str, str]:
        """Return labels are dictionary."""
        return self._labels.copy()

    def as_str(self):
        """Return labels as comma separated string."""
        return ",".join([f"{k}={v}" for k, v in self._labels.items()])

    def get(self, label: str, default: str = None) -> Optional[str]:
        return self._labels.get(label, default)

    def include(self, label: str, value: str) -> "Labels":
        self.update({label: value})
        return self

    def include_app(self, app: str) -> "Labels":
        return self.include(self.APP_LABEL, app)

    def include_cluster_name(self, cluster: str) -> "Labels":
        return self.include(self.CLUSTER_NAME_LABEL, cluster)

    def include_infinispan_cr(self, cluster: str) -> "Labels":
        return self.include(self.INFINISPAN_CR_LABEL, cluster)

    def include_kubernetes_name(self, name: str) -> "Labels":
        return self.include(self.KUBERNETES_NAME_LABEL, name)

    def include_kubernetes_instance(self, instance_name: str) -> "Labels":
        return self.include(self.KUBERNETES_INSTANCE_LABEL, instance_name)

    def include_kubernetes_component(self, component: str) -> "Labels":
        return self.include(self.KUBERNETES_COMPONENT_LABEL, component)

    def include_kubernetes_part_of(self, instance_name: str) -> "Labels":
        return self.include(
            self.KUBERNETES_PART_OF_LABEL,
            self.get_or_valid_instance_label_value(
                f"{self.APPLICATION_NAME}-{instance_name}"
            ),
        )

    def include_kubernetes_managed_by(self, operator_name: str) -> "Labels":
        return self.include(self.KUBERNETES_MANAGED_BY_LABEL, operator_name)

    def include_pod_target_labels(
        self, cr_labels: Mapping[str, str], annotations: Mapping[str, str]
    ) -> "Labels":
        """Copy the CR labels named in the pod target labels annotation."""
        targets = (annotations or {}).get(self.POD_TARGET_LABELS_ANNOTATION, "")
        for key in (t.strip() for t in targets.split(",")):
            if key and key in (cr_labels or {}):
                self.include(key, cr_labels[key])
        return self

    def get_or_valid_instance_label_value(self, instance: str):
        """Validates the instance name and if needed modifies it to make it a valid Label value:
        * (([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?
        * 63 characters max
        """

        if not instance:
            return ""

        value = instance[:63]
        while value and value[-1] in [".", "-", "_"]:
            value = value[:-1]
        return value

    def contains(self, other: "Labels"):
        """Returns True if all labels in `other` are contained."""
        return all(
            key in self._labels and self._labels[key] == value
            for key, value in other.as_dict().items()
        )

    def __str__(self):
        return f"Labels<{self._labels}>"

    @classmethod
    def generate_pod_labels(
        cls,
        cluster: str,
        cr_labels: Optional[Mapping[str, str]] = None,
        annotations: Optional[Mapping[str, str]] = None,
    ) -> "Labels":
        """Labels stamped on the pods of an Infinispan cluster."""
        labels = Labels()
        return (
            labels.include_app(cls.INFINISPAN_POD_APP)
            .include_cluster_name(cluster)
            .include_infinispan_cr(cluster)
            .include_pod_target_labels(cr_labels, annotations)
        )

    @classmethod
    def generate_default_labels(
        cls,
        cluster: str,
        component_name: str,
        component_type: str,
        managed_by: str,
    ) -> "Labels":
        """Labels stamped on the objects the operator manages for a cluster."""
        labels = Labels()
        return (
            labels.include_infinispan_cr(cluster)
            .include_kubernetes_name(component_type)
            .include_kubernetes_instance(component_name)
            .include_kubernetes_component(component_type)
            .include_kubernetes_part_of(cluster)
            .include_kubernetes_managed_by(managed_by)
        )
