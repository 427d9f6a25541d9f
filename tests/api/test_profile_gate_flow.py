"""End-to-end profile gate: GateController driving the real API in-process."""

import pytest
from httpx import ASGITransport

from devhance.client.api_client import DevhanceClient
from devhance.client.gate import GateController
from devhance.db.models import User
from devhance.domain.profile_gate import GateState, ProfileGate, RouteAction

pytestmark = pytest.mark.integration


@pytest.fixture
def controller(app) -> GateController:
    async def token_provider():
        return "session-token"

    client = DevhanceClient(
        base_url="http://test",
        token_provider=token_provider,
        transport=ASGITransport(app=app, raise_app_exceptions=False),
    )
    return GateController(ProfileGate(), client, session_timeout=1.0)


async def test_alice_completes_profile(controller, login, create_user, db_session):
    await create_user("u1", "alice", complete=False)
    login("u1", email="alice@example.com")

    snapshot = await controller.on_signed_in({"sub": "u1", "email": "alice@example.com"})
    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert controller.navigate("/dashboard").redirect_to == "/profile-setup"

    user = await controller.submit_profile({"displayName": "Alice A", "username": "alice"})

    assert user["is_profile_complete"] is True
    assert controller.gate.state == GateState.PROFILE_COMPLETE
    assert controller.navigate("/dashboard").action == RouteAction.ALLOW

    db_session.expire_all()
    row = await db_session.get(User, "u1")
    assert row.display_name == "Alice A"
    assert row.is_profile_complete is True


async def test_new_user_without_row_is_incomplete(controller, login):
    login("newcomer")

    snapshot = await controller.on_signed_in({"sub": "newcomer"})

    assert snapshot.state == GateState.PROFILE_INCOMPLETE
    assert snapshot.error is None


async def test_returning_complete_user(controller, login, create_user):
    await create_user("u1", "alice")
    login("u1")

    snapshot = await controller.on_signed_in({"sub": "u1"})

    assert snapshot.state == GateState.PROFILE_COMPLETE
    assert snapshot.user["username"] == "alice"
