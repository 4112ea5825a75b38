"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring config listener events. All hooks are no-ops by default, allowing
subclasses to override only the events they care about.

- Hooks come in pairs: on_X_start() and on_X_complete()
- Start hooks return an optional state dict for tracking multi-phase operations
- Complete hooks receive the state dict from their corresponding start hook
"""

from typing import Dict, List, Optional, Any
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for operator monitoring.

    Hooks cover two categories:
    1. Reconciliation lifecycle (one pass over the config listener bundle)
    2. Resource operations (create/update/delete/patch of a bundle object)

    All methods are no-ops by default.
    """

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_start(
        self,
        cluster: str,
        namespace: str,
        generation: int,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a reconciliation pass begins.

        Args:
            cluster: Owning Infinispan resource name
            namespace: Kubernetes namespace
            generation: Resource generation number
            trigger_source: What triggered reconciliation (create, update, timer, resume)

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        cluster: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        result: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a reconciliation pass completes.

        Args:
            cluster: Owning Infinispan resource name
            namespace: Kubernetes namespace
            state: State dict returned from on_reconcile_start
            success: Whether reconciliation succeeded
            result: Action taken (created, updated, scaled, removed, unchanged)
            error: Exception if reconciliation failed
        """
        pass

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        cluster: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a K8s resource operation begins."""
        pass

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
        """Called when a K8s resource operation completes.

        Args:
            cluster: Owning Infinispan resource name
            resource_name: Actual K8s resource name
            namespace: Kubernetes namespace
            resource_type: Type of resource (service_account, role, role_binding, deployment)
            state: State dict returned from on_resource_sync_start
            operation: Operation performed (create, replace, delete, patch)
            success: Whether operation succeeded
            error: Exception if operation failed
        """
        pass

    def on_resource_drift_detected(
        self,
        cluster: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        """Called when an existing resource differs from the desired state."""
        pass

    def on_scale(
        self,
        cluster: str,
        namespace: str,
        replicas: int,
        success: bool,
    ) -> None:
        """Called after the config listener deployment was scaled."""
        pass
