from . import infinispan, probes

__all__ = ["infinispan", "probes"]
