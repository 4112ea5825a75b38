"""Operator Sensor Framework.

Non-invasive instrumentation of config listener lifecycle events through a
hook-based pattern.

Key components:
- OperatorSensor: Base class defining lifecycle hooks
- SensorDelegate: Fan-out of events to multiple sensor backends
- PrometheusMonitor: Prometheus metrics exporter

Usage:
    from ispn.sensors import SensorDelegate, PrometheusMonitor

    delegate = SensorDelegate()
    delegate.add(PrometheusMonitor())
"""

from ispn.sensors.base import OperatorSensor
from ispn.sensors.delegate import SensorDelegate
from ispn.sensors.prometheus import PrometheusMonitor
from ispn.sensors.server import init_metrics_server

__all__ = [
    'OperatorSensor',
    'SensorDelegate',
    'PrometheusMonitor',
    'init_metrics_server',
]
