"""Prometheus monitoring backend for the operator.

PrometheusMonitor collects config listener lifecycle events and exposes them
as Prometheus metrics:

1. Reconciliation - duration, throughput, errors, action taken
2. Kubernetes resource operations - counts, latency, drift detection
3. Scaling of the listener deployment
"""

from typing import Dict, List, Optional, Any
import time
import logging

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY

from ispn.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor.

    Metrics are registered in `registry` (the default process registry unless
    another one is given) and served by the metrics server.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        super().__init__()

        # =============================================================================
        # Reconciliation Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            'ispnop_reconcile_duration_seconds',
            'Time spent reconciling the config listener',
            labelnames=['cluster', 'namespace', 'trigger_source', 'result'],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=registry,
        )

        self.reconcile_total = Counter(
            'ispnop_reconcile_total',
            'Total number of config listener reconciliations',
            labelnames=['cluster', 'namespace', 'trigger_source', 'result', 'action'],
            registry=registry,
        )

        self.reconcile_errors = Counter(
            'ispnop_reconcile_errors_total',
            'Total number of config listener reconciliation errors',
            labelnames=['cluster', 'namespace', 'error_type'],
            registry=registry,
        )

        # =============================================================================
        # Kubernetes Resource Metrics
        # =============================================================================

        self.resource_sync_duration = Histogram(
            'ispnop_resource_sync_duration_seconds',
            'Time spent on Kubernetes resource operations',
            labelnames=['cluster', 'namespace', 'resource_type', 'operation', 'result'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        self.resource_sync_total = Counter(
            'ispnop_resource_sync_total',
            'Total number of Kubernetes resource operations',
            labelnames=['cluster', 'namespace', 'resource_type', 'operation', 'result'],
            registry=registry,
        )

        self.resource_drift_detected = Counter(
            'ispnop_resource_drift_detected_total',
            'Total number of resource drift detections',
            labelnames=['cluster', 'namespace', 'resource_type', 'drift_field'],
            registry=registry,
        )

        self.listener_scale_total = Counter(
            'ispnop_listener_scale_total',
            'Total number of config listener scale operations',
            labelnames=['cluster', 'namespace', 'replicas', 'result'],
            registry=registry,
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    def on_reconcile_start(
        self,
        cluster: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Record reconciliation start time."""
        return {
            'start_time': time.time(),
            'trigger_source': trigger_source,
        }

    def on_reconcile_complete(
        self,
        cluster: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        result: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconciliation duration and result."""
        if state:
            duration = time.time() - state['start_time']
            trigger_source = state['trigger_source']
            outcome = 'success' if success else 'failure'

            self.reconcile_duration.labels(
                cluster=cluster,
                namespace=namespace,
                trigger_source=trigger_source,
                result=outcome,
            ).observe(duration)

            self.reconcile_total.labels(
                cluster=cluster,
                namespace=namespace,
                trigger_source=trigger_source,
                result=outcome,
                action=result or 'none',
            ).inc()

        if error:
            self.reconcile_errors.labels(
                cluster=cluster,
                namespace=namespace,
                error_type=error.__class__.__name__,
            ).inc()

    def on_resource_sync_start(
        self,
        cluster: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[str, Any]]:
        """Record resource operation start time."""
        return {'start_time': time.time()}

    def on_resource_sync_complete(
        self,
        cluster: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[str, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record resource operation duration and result."""
        result = 'success' if success else 'failure'
        if state:
            self.resource_sync_duration.labels(
                cluster=cluster,
                namespace=namespace,
                resource_type=resource_type,
                operation=operation,
                result=result,
            ).observe(time.time() - state['start_time'])

        self.resource_sync_total.labels(
            cluster=cluster,
            namespace=namespace,
            resource_type=resource_type,
            operation=operation,
            result=result,
        ).inc()

    def on_resource_drift_detected(
        self,
        cluster: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        """Record resource drift detection."""
        for field in drift_fields:
            self.resource_drift_detected.labels(
                cluster=cluster,
                namespace=namespace,
                resource_type=resource_type,
                drift_field=field,
            ).inc()

    def on_scale(
        self,
        cluster: str,
        namespace: str,
        replicas: int,
        success: bool,
    ) -> None:
        self.listener_scale_total.labels(
            cluster=cluster,
            namespace=namespace,
            replicas=str(replicas),
            result='success' if success else 'failure',
        ).inc()
