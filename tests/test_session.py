"""
Unit tests for the session coordinator.

The control-plane is an httpx.MockTransport and the log stream an in-memory
transport, so the whole deploy -> subscribe -> logs flow runs offline.
"""

import asyncio
import json

import httpx
import pytest

from adapters.control_plane import ControlPlaneClient
from core.config import AppSettings
from core.domain.errors import StreamConnectionError, TargetValidationError
from core.domain.models import ConnectionState, DeploymentResult, NotificationLevel
from core.services.session import (
    DEPLOY_FAILED_MESSAGE,
    DEPLOY_NO_RESULT_MESSAGE,
    DEPLOY_STARTED_MESSAGE,
    EXHAUSTED_BANNER,
    RECONNECTING_BANNER,
    DeploymentInProgressError,
    SessionCoordinator,
    SessionHooks,
    SessionState,
)
from tests.fixtures.channel_fixtures import (
    PREVIEW_URL,
    REPO_URL,
    FakeTransport,
    RecordingSleep,
    deployment_handler,
    settle,
)


class BlockingGateway:
    """Gateway whose request never completes until released."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def trigger(self, request):
        self.started.set()
        await self.release.wait()
        return DeploymentResult(project_slug="abc123", preview_url=PREVIEW_URL)


def _session(handler=None, *, transport=None, gateway=None, notifications=None, states=None):
    if gateway is None:
        gateway = ControlPlaneClient(
            AppSettings(_env_file=None),
            transport=httpx.MockTransport(handler or deployment_handler()),
        )
    hooks = SessionHooks(
        notify=notifications.append if notifications is not None else None,
        state_changed=states.append if states is not None else None,
    )
    return SessionCoordinator(
        gateway=gateway,
        transport=transport or FakeTransport(),
        hooks=hooks,
        sleep=RecordingSleep(),
    )


class TestDeploySuccess:
    @pytest.mark.asyncio
    async def test_result_and_single_subscription(self):
        transport = FakeTransport()
        notifications = []
        session = _session(transport=transport, notifications=notifications)

        async with session:
            assert await session.channel.wait_ready(timeout=1)
            result = await session.deploy(REPO_URL)
            state = session.state

        assert result is not None
        assert result.project_slug == "abc123"
        assert result.preview_url == PREVIEW_URL
        assert state.result == result
        assert state.in_progress is False
        assert transport.emitted == [("subscribe", "logs:abc123")]
        assert [n.message for n in notifications] == [DEPLOY_STARTED_MESSAGE]
        assert notifications[0].level is NotificationLevel.SUCCESS

    @pytest.mark.asyncio
    async def test_logs_flow_into_state_in_order(self):
        transport = FakeTransport(scripted_logs=["1", "2", "3"])
        session = _session(transport=transport)

        async with session:
            await session.channel.wait_ready(timeout=1)
            await session.deploy(REPO_URL)
            transport.send_raw("{malformed")
            transport.send_log("4")
            await settle()
            logs = session.state.logs

        assert logs == ("1", "2", "3", "4")

    @pytest.mark.asyncio
    async def test_redeploy_reuses_project_slug(self):
        requests: list[httpx.Request] = []
        session = _session(deployment_handler(requests=requests))

        async with session:
            await session.channel.wait_ready(timeout=1)
            await session.deploy(REPO_URL)
            await session.deploy(REPO_URL)
            await session.deploy(REPO_URL, slug="explicit")

        bodies = [json.loads(r.content) for r in requests]
        assert bodies == [
            {"gitURL": REPO_URL},
            {"gitURL": REPO_URL, "slug": "abc123"},
            {"gitURL": REPO_URL, "slug": "explicit"},
        ]
        assert len(session.history) == 3


class TestDeployFailures:
    @pytest.mark.asyncio
    async def test_server_error_notifies_and_produces_nothing(self):
        transport = FakeTransport()
        notifications = []
        session = _session(
            deployment_handler({"error": "boom"}, status_code=502),
            transport=transport,
            notifications=notifications,
        )

        async with session:
            await session.channel.wait_ready(timeout=1)
            result = await session.deploy(REPO_URL)
            state = session.state

        assert result is None
        assert state.result is None
        assert state.in_progress is False
        assert transport.emitted == []
        assert [(n.level, n.message) for n in notifications] == [
            (NotificationLevel.ERROR, DEPLOY_FAILED_MESSAGE)
        ]

    @pytest.mark.asyncio
    async def test_transport_error_notifies_and_produces_nothing(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport = FakeTransport()
        notifications = []
        session = _session(handler, transport=transport, notifications=notifications)

        async with session:
            await session.channel.wait_ready(timeout=1)
            assert await session.deploy(REPO_URL) is None
            assert session.state.in_progress is False

        assert transport.emitted == []
        assert notifications[-1].message == DEPLOY_FAILED_MESSAGE

    @pytest.mark.asyncio
    async def test_missing_envelope_is_not_silent(self):
        transport = FakeTransport()
        notifications = []
        session = _session(deployment_handler({}), transport=transport, notifications=notifications)

        async with session:
            await session.channel.wait_ready(timeout=1)
            assert await session.deploy(REPO_URL) is None

        assert transport.emitted == []
        assert [(n.level, n.message) for n in notifications] == [
            (NotificationLevel.WARNING, DEPLOY_NO_RESULT_MESSAGE)
        ]

    @pytest.mark.asyncio
    async def test_non_json_body_is_treated_as_missing_envelope(self):
        transport = FakeTransport()
        notifications = []
        session = _session(
            lambda request: httpx.Response(200, text="<html>ok</html>"),
            transport=transport,
            notifications=notifications,
        )

        async with session:
            await session.channel.wait_ready(timeout=1)
            assert await session.deploy(REPO_URL) is None
            assert session.state.in_progress is False

        assert transport.emitted == []
        assert [(n.level, n.message) for n in notifications] == [
            (NotificationLevel.WARNING, DEPLOY_NO_RESULT_MESSAGE)
        ]


class TestDeployPreconditions:
    @pytest.mark.asyncio
    async def test_invalid_url_is_rejected_before_network(self):
        requests: list[httpx.Request] = []
        session = _session(deployment_handler(requests=requests))

        async with session:
            await session.channel.wait_ready(timeout=1)
            with pytest.raises(TargetValidationError):
                await session.deploy("https://example.com/acme/widgets")
            assert session.state.can_deploy is False

        assert requests == []

    @pytest.mark.asyncio
    async def test_deploy_rejected_while_disconnected(self):
        requests: list[httpx.Request] = []
        transport = FakeTransport(always_fail=True)
        session = _session(deployment_handler(requests=requests), transport=transport)

        async with session:
            assert await session.channel.wait_ready(timeout=1) is False
            session.set_target(REPO_URL)
            assert session.state.can_deploy is False
            assert session.state.connection_banner == EXHAUSTED_BANNER
            with pytest.raises(StreamConnectionError):
                await session.deploy()

        assert requests == []
        assert transport.emitted == []

    @pytest.mark.asyncio
    async def test_concurrent_deploy_is_rejected(self):
        gateway = BlockingGateway()
        session = _session(gateway=gateway)

        async with session:
            await session.channel.wait_ready(timeout=1)
            first = asyncio.create_task(session.deploy(REPO_URL))
            await gateway.started.wait()
            with pytest.raises(DeploymentInProgressError):
                await session.deploy(REPO_URL)
            gateway.release.set()
            assert (await first) is not None


class TestInProgressFlag:
    @pytest.mark.asyncio
    async def test_flag_released_on_cancellation(self):
        gateway = BlockingGateway()
        states = []
        session = _session(gateway=gateway, states=states)

        async with session:
            await session.channel.wait_ready(timeout=1)
            task = asyncio.create_task(session.deploy(REPO_URL))
            await gateway.started.wait()
            assert session.state.in_progress is True
            assert session.state.can_deploy is False

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            assert session.state.in_progress is False

        assert any(s.in_progress for s in states)
        assert states[-1].in_progress is False


class TestSessionState:
    def test_default_state(self):
        state = SessionState()
        assert state.can_deploy is False
        assert state.connection_banner == RECONNECTING_BANNER

    def test_connected_valid_state_can_deploy(self):
        state = SessionState(
            target_url=REPO_URL,
            is_valid=True,
            connection_state=ConnectionState.CONNECTED,
        )
        assert state.can_deploy is True
        assert state.connection_banner is None

    def test_set_target_updates_validity(self):
        session = _session()
        validation = session.set_target("https://github.com/acme")
        assert validation.is_valid is False
        assert session.state.validation_message == "Enter valid Github Repository URL"
        session.set_target("   ")
        assert session.state.validation_message is None
