"""GateController — drives the ProfileGate from identity-provider and API signals.

Flow after sign-in:
    UNAUTHENTICATED -> AUTHENTICATING
    wait (bounded) for a session token
      timeout       -> PROFILE_INCOMPLETE from local claims (timed_out=True),
                       then keep waiting and fetch once the session arrives
      failure       -> PROFILE_INCOMPLETE from local claims, error recorded
    GET /users/profile
      complete row  -> PROFILE_COMPLETE
      404 / partial -> PROFILE_INCOMPLETE
      other error   -> PROFILE_INCOMPLETE, error recorded (API or transport)

A profile result that arrives after sign-out is dropped: the transition table
refuses it, and a sign-in generation counter guards against a newer sign-in.
"""

import asyncio
from collections.abc import Awaitable

import httpx
import structlog

from devhance.client.api_client import DevhanceClient, UploadFile
from devhance.core.config import get_settings
from devhance.core.exceptions import Conflict, DevhanceError, NotFound, ValidationError
from devhance.domain.profile_gate import (
    GateSnapshot,
    GateState,
    ProfileGate,
    RouteDecision,
    resolve_destination,
    state_for_profile,
)

logger = structlog.get_logger(__name__)


def local_user_from_claims(claims: dict) -> dict:
    """The identity we know without asking the API (id and email only)."""
    return {"id": claims.get("sub") or claims.get("id"), "email": claims.get("email")}


class GateController:
    def __init__(
        self,
        gate: ProfileGate,
        client: DevhanceClient,
        session_timeout: float | None = None,
    ):
        self.gate = gate
        self.client = client
        self.session_timeout = (
            session_timeout
            if session_timeout is not None
            else get_settings().profile_gate_timeout_seconds
        )
        self._generation = 0
        self.pending_fetch: asyncio.Task | None = None

    async def on_signed_in(self, claims: dict, session_ready: Awaitable | None = None) -> GateSnapshot:
        """Resolve the gate for a freshly signed-in user.

        When the session does not materialize within ``session_timeout`` the
        gate falls back to PROFILE_INCOMPLETE, and ``pending_fetch`` keeps
        waiting for it so a late session can still complete the gate.

        Args:
            claims: locally known identity claims (``sub``, ``email``)
            session_ready: awaitable that completes once a session token is obtainable
        """
        self._cancel_pending()
        self._generation += 1
        generation = self._generation
        local_user = local_user_from_claims(claims)

        # A sign-in while already resolved (account switch) starts over
        if self.gate.state in (GateState.PROFILE_INCOMPLETE, GateState.PROFILE_COMPLETE):
            self.gate.transition(GateState.UNAUTHENTICATED)
        if self.gate.state == GateState.UNAUTHENTICATED:
            self.gate.transition(GateState.AUTHENTICATING, user=local_user)

        if session_ready is not None:
            session = asyncio.ensure_future(session_ready)
            try:
                await asyncio.wait_for(asyncio.shield(session), timeout=self.session_timeout)
            except TimeoutError:
                logger.warning(
                    "profile_gate_session_timeout",
                    user_id=local_user["id"],
                    timeout_seconds=self.session_timeout,
                )
                if generation == self._generation:
                    self.gate.transition(GateState.PROFILE_INCOMPLETE, user=local_user, timed_out=True)
                    self.pending_fetch = asyncio.create_task(
                        self._fetch_after_late_session(session, generation, local_user)
                    )
                return self.gate.snapshot()
            except Exception as exc:
                logger.warning(
                    "profile_gate_session_failed",
                    user_id=local_user["id"],
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                if generation == self._generation:
                    self.gate.transition(
                        GateState.PROFILE_INCOMPLETE,
                        user=local_user,
                        error="Could not establish a session",
                    )
                return self.gate.snapshot()

        return await self._fetch_profile(generation, local_user)

    async def _fetch_profile(self, generation: int, local_user: dict) -> GateSnapshot:
        profile = None
        error = None
        try:
            profile = await self.client.get_profile()
        except NotFound:
            logger.info("profile_gate_no_profile", user_id=local_user["id"])
        except DevhanceError as exc:
            error = exc.message
            logger.warning(
                "profile_gate_profile_fetch_failed",
                user_id=local_user["id"],
                error=exc.message,
                error_type=type(exc).__name__,
            )
        except httpx.HTTPError as exc:
            error = "Could not reach the server"
            logger.warning(
                "profile_gate_profile_fetch_failed",
                user_id=local_user["id"],
                error=str(exc),
                error_type=type(exc).__name__,
            )

        if generation != self._generation:
            return self.gate.snapshot()

        new_state = state_for_profile(profile)
        if new_state == self.gate.state == GateState.PROFILE_INCOMPLETE:
            # Late fetch after a timeout fallback
            self.gate.settle(profile or local_user, error=error)
            return self.gate.snapshot()

        applied = self.gate.transition(new_state, user=profile or local_user, error=error)
        if not applied:
            logger.info("profile_gate_stale_result_dropped", state=self.gate.state)
        return self.gate.snapshot()

    async def _fetch_after_late_session(
        self,
        session: asyncio.Future,
        generation: int,
        local_user: dict,
    ) -> GateSnapshot:
        try:
            await session
        except Exception as exc:
            logger.warning(
                "profile_gate_late_session_failed",
                user_id=local_user["id"],
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return self.gate.snapshot()

        if generation != self._generation:
            return self.gate.snapshot()
        logger.info("profile_gate_late_session", user_id=local_user["id"])
        return await self._fetch_profile(generation, local_user)

    def _cancel_pending(self) -> None:
        if self.pending_fetch is not None and not self.pending_fetch.done():
            self.pending_fetch.cancel()
        self.pending_fetch = None

    def on_signed_out(self) -> GateSnapshot:
        self._cancel_pending()
        self._generation += 1
        self.gate.transition(GateState.UNAUTHENTICATED)
        return self.gate.snapshot()

    async def submit_profile(self, fields: dict, image: UploadFile | None = None) -> dict:
        """Save the profile form; a success from PROFILE_INCOMPLETE completes the gate.

        Raises:
            ValidationError, Conflict: re-raised for inline form errors (gate keeps its state)
        """
        try:
            user = await self.client.save_profile(fields, image=image)
        except (ValidationError, Conflict) as exc:
            self.gate.record_error(exc.message)
            raise

        if self.gate.state == GateState.PROFILE_INCOMPLETE:
            self.gate.transition(GateState.PROFILE_COMPLETE, user=user)
        else:
            self.gate.update_user(user)
        return user

    def navigate(self, path: str) -> RouteDecision:
        return resolve_destination(
            self.gate.state,
            path,
            default_path=get_settings().default_authenticated_path,
        )
