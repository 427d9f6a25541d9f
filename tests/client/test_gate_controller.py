"""Unit tests for GateController with a stubbed API client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from devhance.client.api_client import DevhanceClient
from devhance.client.gate import GateController
from devhance.core.exceptions import Conflict, NotFound, UpstreamError
from devhance.domain.profile_gate import GateState, ProfileGate, RouteAction

pytestmark = pytest.mark.unit

_CLAIMS = {"sub": "u1", "email": "alice@example.com"}
_COMPLETE = {"id": "u1", "username": "alice", "display_name": "Alice A", "is_profile_complete": True}


def _controller(timeout: float = 0.05, **client_methods) -> GateController:
    client = MagicMock()
    for name, mock in client_methods.items():
        setattr(client, name, mock)
    return GateController(ProfileGate(), client, session_timeout=timeout)


async def test_complete_profile_reaches_complete():
    controller = _controller(get_profile=AsyncMock(return_value=_COMPLETE))

    snapshot = await controller.on_signed_in(_CLAIMS)

    assert snapshot.state == GateState.PROFILE_COMPLETE
    assert snapshot.user == _COMPLETE


async def test_missing_profile_is_incomplete_with_local_claims():
    controller = _controller(get_profile=AsyncMock(side_effect=NotFound("User profile not found")))

    snapshot = await controller.on_signed_in(_CLAIMS)

    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert snapshot.user == {"id": "u1", "email": "alice@example.com"}
    assert snapshot.error is None


async def test_fetch_error_is_incomplete_with_error():
    controller = _controller(get_profile=AsyncMock(side_effect=UpstreamError("Storage operation failed")))

    snapshot = await controller.on_signed_in(_CLAIMS)

    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert snapshot.error == "Storage operation failed"


async def test_session_timeout_falls_back_to_incomplete():
    get_profile = AsyncMock()
    controller = _controller(timeout=0.05, get_profile=get_profile)
    never_ready = asyncio.get_running_loop().create_future()

    snapshot = await controller.on_signed_in(_CLAIMS, session_ready=never_ready)

    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert snapshot.timed_out is True
    assert snapshot.user["id"] == "u1"
    get_profile.assert_not_called()
    controller.on_signed_out()


async def test_session_ready_then_profile_fetched():
    controller = _controller(timeout=1.0, get_profile=AsyncMock(return_value=_COMPLETE))

    snapshot = await controller.on_signed_in(_CLAIMS, session_ready=asyncio.sleep(0))

    assert snapshot.state == GateState.PROFILE_COMPLETE
    assert snapshot.timed_out is False


async def test_sign_out_during_fetch_drops_result():
    release = asyncio.Event()

    async def slow_profile():
        await release.wait()
        return _COMPLETE

    controller = _controller(get_profile=AsyncMock(side_effect=slow_profile))
    task = asyncio.create_task(controller.on_signed_in(_CLAIMS))
    await asyncio.sleep(0)

    controller.on_signed_out()
    release.set()
    await task

    assert controller.gate.state == GateState.UNAUTHENTICATED


async def test_submit_profile_completes_gate():
    controller = _controller(
        get_profile=AsyncMock(side_effect=NotFound("missing")),
        save_profile=AsyncMock(return_value=_COMPLETE),
    )
    await controller.on_signed_in(_CLAIMS)

    await controller.submit_profile({"displayName": "Alice A", "username": "alice"})

    assert controller.gate.state == GateState.PROFILE_COMPLETE
    assert controller.navigate("/profile-setup").redirect_to == "/dashboard"


async def test_submit_conflict_keeps_incomplete_and_records_error():
    controller = _controller(
        get_profile=AsyncMock(side_effect=NotFound("missing")),
        save_profile=AsyncMock(side_effect=Conflict("Username is already taken", field="username")),
    )
    await controller.on_signed_in(_CLAIMS)

    with pytest.raises(Conflict):
        await controller.submit_profile({"displayName": "Alice", "username": "taken"})

    assert controller.gate.state == GateState.PROFILE_INCOMPLETE
    assert controller.gate.error == "Username is already taken"
    assert controller.navigate("/dashboard").redirect_to == "/profile-setup"


async def test_navigation_while_authenticating_is_pending():
    controller = _controller()
    controller.gate.transition(GateState.AUTHENTICATING)

    assert controller.navigate("/dashboard").action == RouteAction.PENDING


async def test_unreachable_server_is_incomplete_with_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = DevhanceClient(base_url="http://api.test", transport=httpx.MockTransport(handler))
    controller = GateController(ProfileGate(), client, session_timeout=0.05)

    snapshot = await controller.on_signed_in(_CLAIMS)

    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert snapshot.user == {"id": "u1", "email": "alice@example.com"}
    assert snapshot.error == "Could not reach the server"
    assert controller.navigate("/dashboard").redirect_to == "/profile-setup"


async def test_failed_session_is_incomplete_with_error():
    get_profile = AsyncMock()
    controller = _controller(timeout=1.0, get_profile=get_profile)

    async def broken_session():
        raise RuntimeError("identity provider unavailable")

    snapshot = await controller.on_signed_in(_CLAIMS, session_ready=broken_session())

    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert snapshot.error == "Could not establish a session"
    get_profile.assert_not_called()


async def test_late_session_completes_gate():
    get_profile = AsyncMock(return_value=_COMPLETE)
    controller = _controller(timeout=0.05, get_profile=get_profile)
    session_ready = asyncio.get_running_loop().create_future()

    snapshot = await controller.on_signed_in(_CLAIMS, session_ready=session_ready)
    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert snapshot.timed_out is True

    session_ready.set_result("tok_late")
    await controller.pending_fetch

    assert controller.gate.state == GateState.PROFILE_COMPLETE
    assert controller.gate.user == _COMPLETE
    assert controller.gate.snapshot().timed_out is False
    get_profile.assert_awaited_once()


async def test_late_session_with_missing_profile_clears_timeout():
    controller = _controller(timeout=0.05, get_profile=AsyncMock(side_effect=NotFound("missing")))
    session_ready = asyncio.get_running_loop().create_future()

    await controller.on_signed_in(_CLAIMS, session_ready=session_ready)
    session_ready.set_result("tok_late")
    await controller.pending_fetch

    snapshot = controller.gate.snapshot()
    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert snapshot.timed_out is False


async def test_sign_out_cancels_late_session_fetch():
    get_profile = AsyncMock(return_value=_COMPLETE)
    controller = _controller(timeout=0.05, get_profile=get_profile)
    session_ready = asyncio.get_running_loop().create_future()

    await controller.on_signed_in(_CLAIMS, session_ready=session_ready)
    pending = controller.pending_fetch
    controller.on_signed_out()

    with pytest.raises(asyncio.CancelledError):
        await pending
    assert controller.gate.state == GateState.UNAUTHENTICATED
    get_profile.assert_not_called()
