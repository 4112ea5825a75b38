from .base import BaseResource
from .operator_image import OperatorImageLookup, resolve_listener_image
from .config_listener import ConfigListener, ReconcileResult

__all__ = [
    "BaseResource",
    "ConfigListener",
    "OperatorImageLookup",
    "ReconcileResult",
    "resolve_listener_image",
]
