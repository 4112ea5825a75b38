import logging
from typing import Awaitable, Callable, Optional
from ispn.types.settings import Settings
from ispn.utils.errors import ImageResolutionError, not_found_error
from kubernetes_asyncio.client import ApiException, CoreV1Api, V1Pod

logger = logging.getLogger(__name__)

ImageLookup = Callable[[], Awaitable[str]]


async def resolve_listener_image(override: Optional[str], lookup: ImageLookup) -> str:
    """Image of the config listener.

    A non-empty `override` wins and is returned as is. Otherwise the image is
    obtained from `lookup`; any failure there becomes an `ImageResolutionError`.
    """
    if override:
        return override
    try:
        image = await lookup()
    except ImageResolutionError:
        raise
    except Exception as ex:
        raise ImageResolutionError(f"Unable to determine config listener image: {ex}") from ex
    if not image:
        raise ImageResolutionError("Unable to determine config listener image: empty image")
    return image


class OperatorImageLookup:
    """Reads the image the operator itself runs with from its own pod."""

    def __init__(self, core_v1_api: CoreV1Api, conf: Settings):
        self.core_v1_api = core_v1_api
        self.conf = conf

    async def __call__(self) -> str:
        name, namespace = self.conf.operator_pod_name, self.conf.operator_namespace
        if not name or not namespace:
            raise ImageResolutionError(
                "Operator pod name and namespace must be known to resolve the listener image"
            )
        try:
            pod: V1Pod = await self.core_v1_api.read_namespaced_pod(
                name=name, namespace=namespace
            )
        except ApiException as ex:
            if not_found_error(ex):
                raise ImageResolutionError(
                    f"Operator pod `{name}` not found in `{namespace}` namespace"
                ) from ex
            raise
        containers = (pod.spec.containers if pod.spec else None) or []
        if not containers:
            raise ImageResolutionError(f"Operator pod `{name}` has no containers")
        logger.debug(f"Resolved operator image {containers[0].image} from pod {name}")
        return containers[0].image
