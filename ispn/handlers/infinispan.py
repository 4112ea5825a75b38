import kopf
from logging import Logger
from typing import Dict, Optional
from kubernetes_asyncio.client import ApiException
from ispn.types.settings import Settings
from ispn.types.models import InfinispanSpec
from ispn.types.schemas import InfinispanSpecSchema
from ispn.resources import ConfigListener, ReconcileResult
from ispn.utils.helpers import upsert_condition
from ispn.utils.errors import ListenerNotFoundError, convert_api_exception

INFINISPAN_KIND = ConfigListener.KIND

CONFIG_LISTENER_READY = "ConfigListenerReady"


def prepare_listener(
    name: str,
    namespace: str,
    spec: Dict,
    labels: Dict,
    annotations: Dict,
    body: Dict,
    logger: Logger,
) -> ConfigListener:
    spec_model: InfinispanSpec = InfinispanSpecSchema().load(dict(spec or {}))
    return ConfigListener.from_spec(
        name,
        namespace,
        spec_model,
        labels=labels,
        annotations=annotations,
        owner=body,
        logger=logger,
    )


def set_condition(
    status: Optional[Dict],
    patch: kopf.Patch,
    meta: Dict,
    ready: bool,
    reason: str,
    message: str,
):
    """Record the config listener condition on the Infinispan status."""
    conds = ((status or {}).get("configListener") or {}).get("conditions", [])
    conds = upsert_condition(
        conds,
        {
            "type": CONFIG_LISTENER_READY,
            "status": "True" if ready else "False",
            "reason": reason,
            "message": message,
            "observedGeneration": meta.get("generation", 0),
        },
    )
    patch.status["configListener"] = {"conditions": conds}


def on_error(error, meta, status, patch, **_):
    """Handle errors during reconciliation."""
    set_condition(
        status,
        patch,
        meta,
        False,
        "Error",
        str(error) or "Reconcile failed; see events/logs",
    )


async def reconcile(
    name,
    namespace,
    spec,
    meta,
    status,
    patch,
    labels,
    annotations,
    body,
    logger: Logger,
    trigger_source: str = "manual",
    **kwargs,
) -> Optional[str]:
    """Reconcile the config listener of an Infinispan cluster."""
    listener = prepare_listener(name, namespace, spec, labels, annotations, body, logger)
    if listener.enabled and listener.replicas == 0:
        # Zero-replica healing would undo the scale down of a stopped cluster
        logger.debug(f"{INFINISPAN_KIND}/{name} is scaled to zero, skipping config listener reconcile.")
        return None
    try:
        logger.debug(f"Reconciling config listener of {INFINISPAN_KIND}/{name} in {namespace} namespace.")
        result: ReconcileResult = await listener.reconcile(
            trigger_source=trigger_source, generation=meta.get("generation", 0)
        )
    except ApiException as e:
        logger.error(f"Failed to reconcile config listener: {e}")
        on_error(e, meta, status, patch)
        convert_api_exception(e)
    except Exception as e:
        logger.error(f"Failed to reconcile config listener: {e}")
        on_error(e, meta, status, patch)
        raise
    if result != ReconcileResult.UNCHANGED or not _is_ready(status):
        set_condition(
            status,
            patch,
            meta,
            True,
            result.value,
            "Config listener disabled" if result == ReconcileResult.REMOVED else "Config listener deployed",
        )
    return result.value


def _is_ready(status: Optional[Dict]) -> bool:
    conds = ((status or {}).get("configListener") or {}).get("conditions", [])
    return any(
        c.get("type") == CONFIG_LISTENER_READY and c.get("status") == "True"
        for c in conds
    )


@kopf.on.resume(kind=INFINISPAN_KIND)
@kopf.on.create(kind=INFINISPAN_KIND)
async def on_create(**kwargs):
    """Deploys the config listener of a new or resumed Infinispan cluster."""
    return await reconcile(trigger_source="create", **kwargs)


@kopf.on.update(kind=INFINISPAN_KIND, field="spec.configListener")
async def on_config_listener_update(**kwargs):
    return await reconcile(trigger_source="update", **kwargs)


@kopf.timer(INFINISPAN_KIND, interval=Settings.reconcile_interval_seconds)
async def reconcile_timer(**kwargs):
    """Periodic reconcile so partially written listeners converge."""
    await reconcile(trigger_source="timer", **kwargs)


@kopf.on.field(kind=INFINISPAN_KIND, field="spec.replicas")
async def on_replicas_update(
    old,
    new,
    name,
    namespace,
    spec,
    meta,
    status,
    patch,
    labels,
    annotations,
    body,
    logger: Logger,
    **kwargs,
):
    """Follows the Infinispan cluster when it is stopped or started again."""
    if old is None:
        # New cluster, handled by on_create
        return
    listener = prepare_listener(name, namespace, spec, labels, annotations, body, logger)
    if new == 0 and old != 0:
        replicas = 0
    elif old == 0 and listener.replicas != 0:
        replicas = 1
    else:
        return
    try:
        await listener.scale(replicas)
    except ListenerNotFoundError as e:
        # Created by the next reconcile
        logger.info(f"Config listener not scaled: {e}")
    except ApiException as e:
        on_error(e, meta, status, patch)
        convert_api_exception(e)
