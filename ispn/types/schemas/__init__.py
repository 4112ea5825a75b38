from .infinispan_spec import ConfigListenerSpecSchema, InfinispanSpecSchema

__all__ = [
    "ConfigListenerSpecSchema",
    "InfinispanSpecSchema",
]
