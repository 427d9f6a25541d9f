"""Profile-completeness gate: client-side state machine and routing contract.

Pure domain logic, no I/O. ``ProfileGate`` is the single store the UI reads
the gate state and current user from; ``GateController`` (devhance.client.gate)
drives it from identity-provider and API signals.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum


class GateState(StrEnum):
    """Where the current visitor stands with respect to the profile gate."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    PROFILE_INCOMPLETE = "profile_incomplete"
    PROFILE_COMPLETE = "profile_complete"


# Sign-out (-> UNAUTHENTICATED) is accepted from every state and is not listed here.
TRANSITIONS: dict[GateState, list[GateState]] = {
    GateState.UNAUTHENTICATED: [GateState.AUTHENTICATING],
    GateState.AUTHENTICATING: [GateState.PROFILE_INCOMPLETE, GateState.PROFILE_COMPLETE],
    GateState.PROFILE_INCOMPLETE: [GateState.PROFILE_COMPLETE],
    GateState.PROFILE_COMPLETE: [],
}


def is_profile_complete(profile: dict | None) -> bool:
    """A server-side user row counts as complete only with the flag and both mandatory fields."""
    if not profile:
        return False
    return bool(
        profile.get("is_profile_complete")
        and profile.get("username")
        and profile.get("display_name")
    )


def state_for_profile(profile: dict | None) -> GateState:
    if is_profile_complete(profile):
        return GateState.PROFILE_COMPLETE
    return GateState.PROFILE_INCOMPLETE


@dataclass(frozen=True)
class GateSnapshot:
    """Immutable view of the gate handed to listeners."""

    state: GateState
    user: dict | None
    timed_out: bool = False
    error: str | None = None


Listener = Callable[[GateSnapshot], None]


class ProfileGate:
    """Centrally owned gate state with validated transitions."""

    def __init__(self) -> None:
        self._state = GateState.UNAUTHENTICATED
        self._user: dict | None = None
        self._timed_out = False
        self._error: str | None = None
        self._listeners: list[Listener] = []

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def user(self) -> dict | None:
        return self._user

    @property
    def error(self) -> str | None:
        return self._error

    def snapshot(self) -> GateSnapshot:
        return GateSnapshot(
            state=self._state,
            user=self._user,
            timed_out=self._timed_out,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def can_transition(self, new_state: GateState) -> bool:
        if new_state == GateState.UNAUTHENTICATED:
            return True
        return new_state in TRANSITIONS.get(self._state, [])

    def transition(
        self,
        new_state: GateState,
        user: dict | None = None,
        timed_out: bool = False,
        error: str | None = None,
    ) -> bool:
        """Move to ``new_state`` if the transition is valid.

        Returns:
            True if the transition was applied, False if it was refused
        """
        if not self.can_transition(new_state):
            return False

        self._state = new_state
        self._user = None if new_state == GateState.UNAUTHENTICATED else user
        self._timed_out = timed_out
        self._error = error
        self._notify()
        return True

    def update_user(self, user: dict) -> None:
        """Replace the user payload without changing state (profile edits)."""
        self._user = user
        self._notify()

    def settle(self, user: dict, error: str | None = None) -> None:
        """Replace a timed-out fallback with a fetched result in the same state."""
        self._user = user
        self._timed_out = False
        self._error = error
        self._notify()

    def record_error(self, message: str | None) -> None:
        """Surface a failure (e.g. rejected form submission) without changing state."""
        self._error = message
        self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)


# ── Routing contract ────────────────────────────────────────────────


PROFILE_SETUP_PATH = "/profile-setup"
LANDING_PATH = "/"


class RouteAction(StrEnum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    PENDING = "pending"


@dataclass(frozen=True)
class RouteDecision:
    action: RouteAction
    redirect_to: str | None = None


_PUBLIC_PATTERNS = [
    re.compile(r"^/$"),
    re.compile(r"^/project/[^/]+$"),
    re.compile(r"^/user/[^/]+$"),
]

_PROTECTED_PATTERNS = [
    re.compile(r"^/dashboard$"),
    re.compile(r"^/add-project$"),
    re.compile(r"^/my-projects$"),
    re.compile(r"^/edit-project/[^/]+$"),
    re.compile(rf"^{PROFILE_SETUP_PATH}$"),
]


def _normalize(path: str) -> str:
    path = path.split("?", 1)[0].split("#", 1)[0] or LANDING_PATH
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def resolve_destination(
    state: GateState,
    path: str,
    default_path: str = "/dashboard",
) -> RouteDecision:
    """Decide whether a visitor in ``state`` may render ``path``.

    Rules:
        - Public destinations are always allowed
        - Unknown destinations redirect to the landing page
        - UNAUTHENTICATED: protected -> landing page
        - AUTHENTICATING: protected -> pending (loading state, no redirect)
        - PROFILE_INCOMPLETE: protected other than the profile form -> profile form
        - PROFILE_COMPLETE: the profile form -> ``default_path``
    """
    path = _normalize(path)

    if any(p.match(path) for p in _PUBLIC_PATTERNS):
        return RouteDecision(RouteAction.ALLOW)

    if not any(p.match(path) for p in _PROTECTED_PATTERNS):
        return RouteDecision(RouteAction.REDIRECT, LANDING_PATH)

    if state == GateState.UNAUTHENTICATED:
        return RouteDecision(RouteAction.REDIRECT, LANDING_PATH)

    if state == GateState.AUTHENTICATING:
        return RouteDecision(RouteAction.PENDING)

    if state == GateState.PROFILE_INCOMPLETE:
        if path == PROFILE_SETUP_PATH:
            return RouteDecision(RouteAction.ALLOW)
        return RouteDecision(RouteAction.REDIRECT, PROFILE_SETUP_PATH)

    if path == PROFILE_SETUP_PATH:
        return RouteDecision(RouteAction.REDIRECT, default_path)
    return RouteDecision(RouteAction.ALLOW)
