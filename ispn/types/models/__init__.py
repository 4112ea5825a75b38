from .config_listener_resources import BundleKey, ConfigListenerResources
from .infinispan_spec import ConfigListenerSpec, InfinispanSpec

__all__ = [
    "BundleKey",
    "ConfigListenerResources",
    "ConfigListenerSpec",
    "InfinispanSpec",
]
