"""Unit tests for the Infinispan event handlers."""

import kopf
import logging
import pytest
from unittest.mock import AsyncMock
from ispn.handlers import infinispan
from ispn.resources import ConfigListener, ReconcileResult
from ispn.utils.errors import ListenerNotFoundError


@pytest.fixture
def event():
    """Keyword arguments handed to the handlers for an Infinispan object."""
    return dict(
        name="example",
        namespace="default",
        spec={"replicas": 3},
        meta={"generation": 2},
        status={},
        patch=kopf.Patch(),
        labels={},
        annotations={},
        body={
            "apiVersion": "infinispan.org/v1",
            "kind": "Infinispan",
            "metadata": {"name": "example", "namespace": "default", "uid": "1234"},
        },
        logger=logging.getLogger(__name__),
    )


@pytest.fixture
def reconcile_mock(monkeypatch):
    mock = AsyncMock(return_value=ReconcileResult.CREATED)
    monkeypatch.setattr(ConfigListener, "reconcile", mock)
    return mock


@pytest.fixture
def scale_mock(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr(ConfigListener, "scale", mock)
    return mock


def condition(patch):
    (cond,) = patch["status"]["configListener"]["conditions"]
    return cond


class TestReconcile:
    async def test_success_marks_listener_ready(self, event, reconcile_mock):
        result = await infinispan.on_create(**event)

        assert result == "Created"
        reconcile_mock.assert_awaited_once_with(trigger_source="create", generation=2)
        cond = condition(event["patch"])
        assert cond["type"] == "ConfigListenerReady"
        assert cond["status"] == "True"
        assert cond["reason"] == "Created"
        assert cond["observedGeneration"] == 2

    async def test_stopped_cluster_is_skipped(self, event, reconcile_mock):
        event["spec"] = {"replicas": 0}

        assert await infinispan.on_create(**event) is None

        reconcile_mock.assert_not_called()

    async def test_stopped_cluster_with_disabled_listener_is_reconciled(
        self, event, reconcile_mock
    ):
        event["spec"] = {"replicas": 0, "configListener": {"enabled": False}}

        await infinispan.on_config_listener_update(**event)

        reconcile_mock.assert_awaited_once()

    async def test_unchanged_ready_listener_keeps_status(self, event, reconcile_mock):
        reconcile_mock.return_value = ReconcileResult.UNCHANGED
        event["status"] = {
            "configListener": {
                "conditions": [{"type": "ConfigListenerReady", "status": "True"}]
            }
        }

        await infinispan.reconcile_timer(**event)

        assert "status" not in event["patch"]

    async def test_forbidden_is_permanent(self, event, reconcile_mock, api_error):
        reconcile_mock.side_effect = api_error(403, "Forbidden")

        with pytest.raises(kopf.PermanentError):
            await infinispan.on_create(**event)

        cond = condition(event["patch"])
        assert cond["status"] == "False"
        assert cond["reason"] == "Error"

    async def test_server_error_is_temporary(self, event, reconcile_mock, api_error):
        reconcile_mock.side_effect = api_error(503, "ServiceUnavailable")

        with pytest.raises(kopf.TemporaryError):
            await infinispan.on_create(**event)

    async def test_other_errors_are_raised(self, event, reconcile_mock):
        reconcile_mock.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await infinispan.on_create(**event)

        assert condition(event["patch"])["message"] == "boom"


class TestReplicas:
    async def test_stopping_cluster_scales_listener_down(self, event, scale_mock):
        event["spec"] = {"replicas": 0}

        await infinispan.on_replicas_update(old=3, new=0, **event)

        scale_mock.assert_awaited_once_with(0)

    async def test_starting_cluster_scales_listener_up(self, event, scale_mock):
        event["spec"] = {"replicas": 2}

        await infinispan.on_replicas_update(old=0, new=2, **event)

        scale_mock.assert_awaited_once_with(1)

    async def test_resizing_running_cluster_is_ignored(self, event, scale_mock):
        await infinispan.on_replicas_update(old=2, new=3, **event)

        scale_mock.assert_not_called()

    async def test_new_cluster_is_ignored(self, event, scale_mock):
        await infinispan.on_replicas_update(old=None, new=3, **event)

        scale_mock.assert_not_called()

    async def test_missing_listener_is_ignored(self, event, scale_mock):
        scale_mock.side_effect = ListenerNotFoundError("example-config-listener", "default")
        event["spec"] = {"replicas": 0}

        await infinispan.on_replicas_update(old=3, new=0, **event)
