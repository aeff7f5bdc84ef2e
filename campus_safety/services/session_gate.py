"""
session_gate.py — Session state and the protected-view gate.

A session moves through:

    unresolved ──► absent
               └─► present(user)

Resolution is asynchronous (stored token check or a login call). Logout
puts the session back to unresolved/absent and starts a new cycle.

`decide()` is the pure decision function shared by the HTTP layer and
the client context. It never treats "unresolved" as a denial: a page
that is still waiting for its session must show a spinner, not bounce
the user back to the landing page.

`RouteGuard` wraps `decide()` for one protected view and makes sure the
redirect side effect fires once per resolution cycle, with an audit log
line distinguishing "no session" from "wrong role".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from campus_safety.models.user import Role, UserOut

logger = logging.getLogger(__name__)

PUBLIC_ENTRY_POINT = "/"


class SessionPhase(str, Enum):
    UNRESOLVED = "unresolved"
    ABSENT = "absent"
    PRESENT = "present"


@dataclass(frozen=True)
class SessionState:
    phase: SessionPhase
    user: Optional[UserOut] = None

    @classmethod
    def unresolved(cls) -> "SessionState":
        return cls(SessionPhase.UNRESOLVED)

    @classmethod
    def absent(cls) -> "SessionState":
        return cls(SessionPhase.ABSENT)

    @classmethod
    def present(cls, user: UserOut) -> "SessionState":
        return cls(SessionPhase.PRESENT, user)

    @property
    def is_resolved(self) -> bool:
        return self.phase is not SessionPhase.UNRESOLVED


class GateDecision(str, Enum):
    WAIT = "wait"
    REDIRECT = "redirect"
    PERMIT = "permit"


class DenyReason(str, Enum):
    NO_SESSION = "no_session"
    WRONG_ROLE = "wrong_role"


@dataclass(frozen=True)
class GateResult:
    decision: GateDecision
    reason: Optional[DenyReason] = None
    redirect_to: Optional[str] = None


def decide(
    state: SessionState,
    allowed_roles: Iterable[Role],
    redirect_to: str = PUBLIC_ENTRY_POINT,
) -> GateResult:
    """Decide whether a protected view may render for `state`."""
    if state.phase is SessionPhase.UNRESOLVED:
        return GateResult(GateDecision.WAIT)

    if state.phase is SessionPhase.ABSENT or state.user is None:
        return GateResult(GateDecision.REDIRECT, DenyReason.NO_SESSION, redirect_to)

    if state.user.role not in frozenset(allowed_roles):
        return GateResult(GateDecision.REDIRECT, DenyReason.WRONG_ROLE, redirect_to)

    return GateResult(GateDecision.PERMIT)


def log_denial(view: str, state: SessionState, reason: DenyReason) -> None:
    """Audit record for a refused view or route."""
    if reason is DenyReason.NO_SESSION:
        logger.info("Access denied to %s: no session", view)
    else:
        user = state.user
        logger.warning(
            "Access denied to %s: role %s not permitted (user %s)",
            view,
            user.role.value if user else "?",
            user.id if user else "?",
        )


class RouteGuard:
    """
    Gate for one protected view.

    `evaluate()` can be called on every render; the `on_redirect`
    callback fires only on the first redirect of a resolution cycle.
    """

    def __init__(
        self,
        view: str,
        allowed_roles: Iterable[Role],
        on_redirect: Callable[[str], None],
        redirect_to: str = PUBLIC_ENTRY_POINT,
    ) -> None:
        self.view = view
        self.allowed_roles = frozenset(allowed_roles)
        self.redirect_to = redirect_to
        self._on_redirect = on_redirect
        self._redirected = False

    @property
    def has_redirected(self) -> bool:
        return self._redirected

    def evaluate(self, state: SessionState) -> GateResult:
        result = decide(state, self.allowed_roles, self.redirect_to)

        if result.decision is GateDecision.WAIT:
            # A new resolution cycle (e.g. after logout) re-arms the guard
            self._redirected = False
        elif result.decision is GateDecision.REDIRECT and not self._redirected:
            self._redirected = True
            log_denial(self.view, state, result.reason)
            self._on_redirect(self.redirect_to)

        return result
