import json
import kopf
import kubernetes_asyncio

_ALREADY_EXISTS = "alreadyexists"
_NOT_FOUND = "notfound"
_CONFLICT = "conflict"

#: Statuses worth retrying: connection failures, conflicts, throttling and server errors
_TRANSIENT_STATUSES = {0, 408, 409, 429, 500, 502, 503, 504}


class ImageResolutionError(kopf.TemporaryError):
    """The image of the config listener could not be determined."""


class ListenerNotFoundError(kopf.TemporaryError):
    """The config listener deployment does not exist."""

    def __init__(self, name: str, namespace: str, delay: float = 30) -> None:
        super().__init__(
            f"deployments.apps `{name}` not found in `{namespace}` namespace",
            delay=delay,
        )
        self.name = name
        self.namespace = namespace


def _reason(ex: kubernetes_asyncio.client.ApiException) -> str:
    try:
        err = json.loads(ex.body) if ex.body else {}
    except (TypeError, ValueError):
        return ""
    return str(err.get("reason", "") if isinstance(err, dict) else "").lower()


def already_exists_error(ex: Exception) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    else:
        return ex.status == 409 and _reason(ex) == _ALREADY_EXISTS


def not_found_error(ex: Exception) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    else:
        return ex.status == 404 or _reason(ex) == _NOT_FOUND


def transient_error(ex: Exception) -> bool:
    """True for API errors that may succeed when the same call is repeated."""
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    if already_exists_error(ex):
        return False
    return (ex.status or 0) in _TRANSIENT_STATUSES or _reason(ex) == _CONFLICT


def convert_api_exception(ex: kubernetes_asyncio.client.ApiException, permanent: bool = None):
    """
    Convert kubernetes ApiException to a Kopf-friendly exception.

    Args:
        ex: The ApiException to convert
        permanent: If True, raises PermanentError (won't retry). If False, raises TemporaryError (will retry).
                   If None, automatically determines based on status code.

    Raises:
        kopf.TemporaryError or kopf.PermanentError with serializable error details
    """
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        raise ex

    error_msg = f"Kubernetes API error ({ex.status}): {ex.reason}"
    try:
        if ex.body:
            body = json.loads(ex.body)
            if "message" in body:
                error_msg = f"{error_msg} - {body['message']}"
    except (json.JSONDecodeError, TypeError, AttributeError):
        pass

    # 4xx errors (except 404, 408, 409, 429) will not go away on their own
    if permanent is None:
        status = ex.status or 0
        is_permanent = 400 <= status < 500 and status not in [404, 408, 409, 429]
    else:
        is_permanent = permanent

    if is_permanent:
        raise kopf.PermanentError(error_msg) from ex
    else:
        raise kopf.TemporaryError(error_msg, delay=30) from ex
