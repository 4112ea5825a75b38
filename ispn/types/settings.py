import os
from typing import Any

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}

SERVICE_ACCOUNT_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


def _read_namespace_file(path: str = SERVICE_ACCOUNT_NAMESPACE_FILE) -> str:
    """Namespace of the operator when running in-cluster, empty string otherwise."""
    try:
        with open(path) as f:
            return f.read().strip()
    except OSError:
        return ""


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: Image used by the config listener deployment. Falls back to the operator's own image when empty.
CONFIG_LISTENER_IMAGE = str(_getenv("CONFIG_LISTENER_IMAGE", ""))

#: Name of the pod running the operator, injected through the downward API
OPERATOR_POD_NAME = str(_getenv("POD_NAME", ""))

#: Namespace of the pod running the operator
OPERATOR_NAMESPACE = str(_getenv("POD_NAMESPACE", "") or _read_namespace_file())

#: Number of attempts for API calls failing with a transient error
RESOURCE_RETRY_ATTEMPTS = int(_getenv("RESOURCE_RETRY_ATTEMPTS", 5))

#: Lower bound in seconds of the exponential backoff between attempts
RESOURCE_RETRY_MIN_WAIT_SECONDS = float(_getenv("RESOURCE_RETRY_MIN_WAIT_SECONDS", 0.5))

#: Upper bound in seconds of the exponential backoff between attempts
RESOURCE_RETRY_MAX_WAIT_SECONDS = float(_getenv("RESOURCE_RETRY_MAX_WAIT_SECONDS", 10.0))

#: Seconds between periodic full reconciliations of the config listener
RECONCILE_INTERVAL_SECONDS = float(_getenv("RECONCILE_INTERVAL_SECONDS", 60.0))


class Settings:
    """Operator settings"""

    config_listener_image: str = CONFIG_LISTENER_IMAGE
    operator_pod_name: str = OPERATOR_POD_NAME
    operator_namespace: str = OPERATOR_NAMESPACE
    resource_retry_attempts: int = RESOURCE_RETRY_ATTEMPTS
    resource_retry_min_wait_seconds: float = RESOURCE_RETRY_MIN_WAIT_SECONDS
    resource_retry_max_wait_seconds: float = RESOURCE_RETRY_MAX_WAIT_SECONDS
    reconcile_interval_seconds: float = RECONCILE_INTERVAL_SECONDS

    def __init__(
        self,
        *args,
        config_listener_image: str = None,
        operator_pod_name: str = None,
        operator_namespace: str = None,
        resource_retry_attempts: int = None,
        resource_retry_min_wait_seconds: float = None,
        resource_retry_max_wait_seconds: float = None,
        reconcile_interval_seconds: float = None,
        **kwargs,
    ):
        if config_listener_image is not None:
            self.config_listener_image = config_listener_image

        if operator_pod_name is not None:
            self.operator_pod_name = operator_pod_name

        if operator_namespace is not None:
            self.operator_namespace = operator_namespace

        if resource_retry_attempts is not None:
            self.resource_retry_attempts = resource_retry_attempts

        if resource_retry_min_wait_seconds is not None:
            self.resource_retry_min_wait_seconds = resource_retry_min_wait_seconds

        if resource_retry_max_wait_seconds is not None:
            self.resource_retry_max_wait_seconds = resource_retry_max_wait_seconds

        if reconcile_interval_seconds is not None:
            self.reconcile_interval_seconds = reconcile_interval_seconds
