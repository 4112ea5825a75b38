"""Sensor delegation for fan-out pattern.

SensorDelegate routes sensor events to several monitoring backends. Each
backend receives the same events and keeps its own state; a failing backend
is logged and never interrupts the operator.
"""

from typing import Set, Dict, List, Optional, Any
import logging

from ispn.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    Example:
        delegate = SensorDelegate()
        delegate.add(PrometheusMonitor())

        state = delegate.on_reconcile_start("example", "default", 5, "timer")
        delegate.on_reconcile_complete("example", "default", state, True)
    """

    def __init__(self) -> None:
        self._sensors: Set[OperatorSensor] = set()

    def add(self, sensor: OperatorSensor) -> None:
        logger.info(f"Adding sensor: {sensor.__class__.__name__}")
        self._sensors.add(sensor)

    def remove(self, sensor: OperatorSensor) -> None:
        logger.info(f"Removing sensor: {sensor.__class__.__name__}")
        self._sensors.discard(sensor)

    def clear(self) -> None:
        logger.info(f"Clearing {len(self._sensors)} sensors")
        self._sensors.clear()

    def _each(self, hook: str, *args) -> Dict[OperatorSensor, Any]:
        results = {}
        for sensor in self._sensors:
            try:
                results[sensor] = getattr(sensor, hook)(*args)
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.{hook}: {e}",
                    exc_info=True,
                )
        return results

    def _states(self, results: Dict[OperatorSensor, Any]) -> Optional[Dict[OperatorSensor, Any]]:
        states = {sensor: state for sensor, state in results.items() if state is not None}
        return states if states else None

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        cluster: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        """Delegate reconcile_start to all sensors.

        Returns:
            Dict mapping each sensor to its returned state, or None if no sensors
        """
        return self._states(
            self._each("on_reconcile_start", cluster, namespace, generation, trigger_source)
        )

    def on_reconcile_complete(
        self,
        cluster: str,
        namespace: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        result: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Delegate reconcile_complete to all sensors with their specific state."""
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                sensor.on_reconcile_complete(
                    cluster, namespace, sensor_state, success, result, error
                )
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.on_reconcile_complete: {e}",
                    exc_info=True,
                )

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        cluster: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        return self._states(
            self._each("on_resource_sync_start", cluster, resource_name, namespace, resource_type)
        )

    def on_resource_sync_complete(
        self,
        cluster: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[OperatorSensor, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                sensor.on_resource_sync_complete(
                    cluster,
                    resource_name,
                    namespace,
                    resource_type,
                    sensor_state,
                    operation,
                    success,
                    error,
                )
            except Exception as e:
                logger.error(
                    f"Error in {sensor.__class__.__name__}.on_resource_sync_complete: {e}",
                    exc_info=True,
                )

    def on_resource_drift_detected(
        self,
        cluster: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        self._each(
            "on_resource_drift_detected",
            cluster,
            resource_name,
            namespace,
            resource_type,
            drift_fields,
        )

    def on_scale(
        self,
        cluster: str,
        namespace: str,
        replicas: int,
        success: bool,
    ) -> None:
        self._each("on_scale", cluster, namespace, replicas, success)
