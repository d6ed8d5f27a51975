"""Access decision gate for export requests.

``AccessGate.decide`` is a pure function of the session record and the
request signals. It never touches the session store: the side effects an
allowed export implies (persisting an on-the-fly temporary session,
clearing the legacy token, burning the trial) are returned as deferred
effects for the caller to run once the export actually happened.

Rules, first match wins:

1. unknown session, regular id                -> deny NOT_FOUND
2. unknown session, temporary id              -> allow with a placeholder session
3. no paid / temporary / token / trial signal -> deny PAYMENT_REQUIRED
4. no token, not temporary, caller not owner  -> deny NOT_OWNER
5. job not finished (temporary ids exempt)    -> deny TOO_EARLY
6. otherwise                                  -> allow
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from ..models import Session, SessionStatus


class DenyReason(str, Enum):
    """Stable reason codes for a denied export."""

    NOT_FOUND = "NOT_FOUND"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    NOT_OWNER = "NOT_OWNER"
    TOO_EARLY = "TOO_EARLY"


class GrantBasis(str, Enum):
    """Which signal made the session exportable."""

    TEMPORARY = "temporary"
    PAID = "paid"
    SIGNED_TOKEN = "signed_token"
    LEGACY_TOKEN = "legacy_token"
    TRIAL = "trial"


class DeferredEffect(str, Enum):
    """Session mutations the caller runs after an allowed export."""

    PERSIST_TEMPORARY_SESSION = "persist_temporary_session"
    CLEAR_LEGACY_TOKEN = "clear_legacy_token"
    CONSUME_TRIAL = "consume_trial"


@dataclass(frozen=True)
class AccessRequest:
    """Request-side signals, already verified by the caller."""

    session_id: str
    has_valid_signed_token: bool = False
    has_valid_legacy_token: bool = False
    requesting_user_id: Optional[str] = None

    @property
    def has_valid_token(self) -> bool:
        return self.has_valid_signed_token or self.has_valid_legacy_token


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of the gate."""

    allowed: bool
    session: Optional[Session] = None
    reason: Optional[DenyReason] = None
    basis: Optional[GrantBasis] = None
    effects: Tuple[DeferredEffect, ...] = field(default_factory=tuple)

    @classmethod
    def deny(cls, reason: DenyReason, session: Optional[Session] = None) -> "AccessDecision":
        return cls(allowed=False, session=session, reason=reason)

    @classmethod
    def allow(
        cls,
        session: Session,
        basis: GrantBasis,
        effects: Tuple[DeferredEffect, ...] = (),
    ) -> "AccessDecision":
        return cls(allowed=True, session=session, basis=basis, effects=effects)


class AccessGate:
    """Decides whether a session's dataset may be downloaded."""

    def __init__(self, temporary_prefix: str = "temp_", default_pack_id: Optional[str] = None):
        """Initialize the gate.

        Args:
            temporary_prefix: Id prefix marking always-permitted temporary sessions
            default_pack_id: Pack assigned to on-the-fly temporary sessions
        """
        if not temporary_prefix:
            raise ValueError("temporary_prefix must not be empty")
        self.temporary_prefix = temporary_prefix
        self.default_pack_id = default_pack_id

    def is_temporary(self, session_id: str) -> bool:
        return session_id.startswith(self.temporary_prefix)

    def placeholder_session(self, session_id: str) -> Session:
        """Permissive session used for temporary ids with no stored record."""
        now = datetime.now()
        return Session(
            id=session_id,
            status=SessionStatus.FINISHED,
            is_paid=True,
            pack_id=self.default_pack_id,
            created_at=now,
            updated_at=now,
        )

    def decide(self, session: Optional[Session], request: AccessRequest) -> AccessDecision:
        """Evaluate one export request.

        Args:
            session: Stored session, or None if the id is unknown
            request: Verified request signals

        Returns:
            Allow with its grant basis and deferred effects, or Deny with a reason
        """
        temporary = self.is_temporary(request.session_id)

        if session is None:
            if not temporary:
                return AccessDecision.deny(DenyReason.NOT_FOUND)
            return AccessDecision.allow(
                self.placeholder_session(request.session_id),
                GrantBasis.TEMPORARY,
                (DeferredEffect.PERSIST_TEMPORARY_SESSION,),
            )

        basis = self._grant_basis(session, request, temporary)
        if basis is None:
            return AccessDecision.deny(DenyReason.PAYMENT_REQUIRED, session)

        if temporary:
            return AccessDecision.allow(session, basis)

        if not request.has_valid_token and not self._is_owner(session, request):
            return AccessDecision.deny(DenyReason.NOT_OWNER, session)

        if not session.is_finished:
            return AccessDecision.deny(DenyReason.TOO_EARLY, session)

        effects = []
        if request.has_valid_token and session.download_token:
            effects.append(DeferredEffect.CLEAR_LEGACY_TOKEN)
        if basis is GrantBasis.TRIAL:
            effects.append(DeferredEffect.CONSUME_TRIAL)
        return AccessDecision.allow(session, basis, tuple(effects))

    @staticmethod
    def _grant_basis(session: Session, request: AccessRequest, temporary: bool) -> Optional[GrantBasis]:
        # The trial is the last resort so that it is only burnt when nothing else pays.
        if temporary:
            return GrantBasis.TEMPORARY
        if session.is_paid:
            return GrantBasis.PAID
        if request.has_valid_signed_token:
            return GrantBasis.SIGNED_TOKEN
        if request.has_valid_legacy_token:
            return GrantBasis.LEGACY_TOKEN
        if session.is_trial:
            return GrantBasis.TRIAL
        return None

    @staticmethod
    def _is_owner(session: Session, request: AccessRequest) -> bool:
        return (
            request.requesting_user_id is not None
            and session.owner_user_id is not None
            and request.requesting_user_id == session.owner_user_id
        )
