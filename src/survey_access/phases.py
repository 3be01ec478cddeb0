"""
Phase resolvers.

Each resolver is a priority-ordered decision table over a snapshot of live
signals: conditions are checked top to bottom and the first match decides
the phase. The ordering is the contract. Resolvers are pure and total; side
effects implied by a phase (logout, redirect, auto sign-in) belong to the
caller, see ``admin_auth_effect``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional, Union

from survey_access._compat import UTC, StrEnum
from survey_access.contracts import (
    AdminAuthInput,
    EligibilityState,
    ParticipationInput,
    StrategyId,
    SubmissionPhaseConfig,
    normalize_address,
)

# ------------------------------------------------------------------------------
# Administrative authorization
# ------------------------------------------------------------------------------


class AdminAuthPhase(StrEnum):
    INITIALIZING = "initializing"
    CONNECT_WALLET = "connect_wallet"
    AUTHENTICATE = "authenticate"
    AUTHENTICATING = "authenticating"
    AUTH_FAILED = "auth_failed"
    WALLET_MISMATCH = "wallet_mismatch"
    ACCESS_DENIED = "access_denied"
    AUTHORIZED = "authorized"


class AdminAuthEffect(StrEnum):
    NONE = "none"
    FORCE_LOGOUT = "force_logout"
    REDIRECT = "redirect"
    AUTO_AUTHENTICATE = "auto_authenticate"


def _coerce(model: Any, value: Any) -> Any:
    if isinstance(value, model):
        return value
    return model.model_validate(value)


def resolve_admin_auth_phase(input: Union[AdminAuthInput, Mapping[str, Any]]) -> AdminAuthPhase:
    snapshot: AdminAuthInput = _coerce(AdminAuthInput, input)

    # Connecting pre-empts store initialization: the store cannot initialize without a wallet.
    if not snapshot.is_connected:
        return AdminAuthPhase.CONNECT_WALLET

    if not snapshot.initialized or snapshot.loading:
        return AdminAuthPhase.INITIALIZING

    if not snapshot.is_authenticated:
        if snapshot.is_creating_session:
            return AdminAuthPhase.AUTHENTICATING
        if snapshot.auth_attempt_failed:
            return AdminAuthPhase.AUTH_FAILED
        return AdminAuthPhase.AUTHENTICATE

    if snapshot.user is None:
        return AdminAuthPhase.INITIALIZING

    if normalize_address(snapshot.user.wallet_address) != normalize_address(snapshot.connected_address):
        return AdminAuthPhase.WALLET_MISMATCH

    if snapshot.user.role != snapshot.admin_role:
        return AdminAuthPhase.ACCESS_DENIED

    return AdminAuthPhase.AUTHORIZED


_ADMIN_AUTH_EFFECTS: dict[AdminAuthPhase, AdminAuthEffect] = {
    AdminAuthPhase.WALLET_MISMATCH: AdminAuthEffect.FORCE_LOGOUT,
    AdminAuthPhase.ACCESS_DENIED: AdminAuthEffect.REDIRECT,
    AdminAuthPhase.AUTHENTICATE: AdminAuthEffect.AUTO_AUTHENTICATE,
}


def admin_auth_effect(phase: AdminAuthPhase) -> AdminAuthEffect:
    """Side effect the caller should trigger on entering ``phase``."""
    return _ADMIN_AUTH_EFFECTS.get(AdminAuthPhase(phase), AdminAuthEffect.NONE)


# ------------------------------------------------------------------------------
# Resource-action button
# ------------------------------------------------------------------------------


class ParticipationPhase(StrEnum):
    RESOLVING = "resolving"
    COMPLETED = "completed"
    CHECK_RESULTS = "check_results"
    CONNECT_WALLET = "connect_wallet"
    CHECKING_ELIGIBILITY = "checking_eligibility"
    ELIGIBILITY_ERROR = "eligibility_error"
    NOT_ELIGIBLE = "not_eligible"
    VERIFY_BRINGID = "verify_bringid"
    VERIFYING_BRINGID = "verifying_bringid"
    NOT_STARTED_YET = "not_started_yet"
    ENDED = "ended"
    AUTHENTICATE = "authenticate"
    AUTHENTICATING = "authenticating"
    START = "start"
    CONTINUE = "continue"


# Strategies whose denial the user can remediate in place: (verify, verifying).
REMEDIATION_PHASES: dict[str, tuple[ParticipationPhase, ParticipationPhase]] = {
    StrategyId.REPUTATION.value: (ParticipationPhase.VERIFY_BRINGID, ParticipationPhase.VERIFYING_BRINGID),
}


def _parse_iso8601(value: Optional[str]) -> Optional[datetime]:
    txt = (value or "").strip()
    if not txt:
        return None
    if txt.endswith("Z"):
        txt = txt[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(txt)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _is_past(moment: Optional[datetime], now: Optional[datetime]) -> bool:
    if moment is None or now is None:
        return False
    return now >= moment


def _remediation_phase(
    eligibility: EligibilityState,
    verifying_strategy_ids: frozenset[str],
) -> Optional[ParticipationPhase]:
    for strategy_id, (verify, verifying) in REMEDIATION_PHASES.items():
        result = eligibility.per_strategy_results.get(strategy_id)
        if result is not None and not result.passed and result.requires_humanity_verification:
            return verifying if strategy_id in verifying_strategy_ids else verify
    return None


def resolve_participation_phase(input: Union[ParticipationInput, Mapping[str, Any]]) -> ParticipationPhase:
    snapshot: ParticipationInput = _coerce(ParticipationInput, input)
    eligibility = snapshot.eligibility
    now = _parse_iso8601(snapshot.now_iso)
    start_at = _parse_iso8601(snapshot.start_at_iso)
    end_at = _parse_iso8601(snapshot.end_at_iso)

    if not snapshot.resource_loaded:
        return ParticipationPhase.RESOLVING

    # Completion is terminal and outranks connection and eligibility, except that a
    # finished time-boxed resource lets a connected user sign in to see results.
    if eligibility is not None and eligibility.has_completed:
        if (
            snapshot.resource_type.is_time_boxed
            and _is_past(end_at, now)
            and snapshot.is_connected
            and not snapshot.is_authenticated
        ):
            return ParticipationPhase.AUTHENTICATING if snapshot.is_auth_loading else ParticipationPhase.CHECK_RESULTS
        return ParticipationPhase.COMPLETED

    if not snapshot.is_connected:
        return ParticipationPhase.CONNECT_WALLET

    if snapshot.is_eligibility_fetching and snapshot.has_address:
        return ParticipationPhase.CHECKING_ELIGIBILITY

    if eligibility is not None and not eligibility.is_eligible:
        remediation = _remediation_phase(eligibility, snapshot.verifying_strategy_ids)
        return remediation or ParticipationPhase.NOT_ELIGIBLE

    if start_at is not None and now is not None and now < start_at:
        return ParticipationPhase.NOT_STARTED_YET
    if _is_past(end_at, now):
        return ParticipationPhase.ENDED

    if not snapshot.is_authenticated:
        return ParticipationPhase.AUTHENTICATING if snapshot.is_auth_loading else ParticipationPhase.AUTHENTICATE

    if eligibility is None:
        return ParticipationPhase.ELIGIBILITY_ERROR if snapshot.is_eligibility_error else ParticipationPhase.RESOLVING

    return ParticipationPhase.CONTINUE if eligibility.has_started else ParticipationPhase.START


# ------------------------------------------------------------------------------
# Submission lifecycle
# ------------------------------------------------------------------------------


class SubmissionPhase(StrEnum):
    IDLE = "idle"
    SUBMITTING_ANSWER = "submitting_answer"
    SUBMITTING_FINAL = "submitting_final"
    REDIRECTING = "redirecting"
    ERROR = "error"


class SubmissionEvent(StrEnum):
    ANSWER_SAVING = "answer_saving"
    ANSWER_SAVED = "answer_saved"
    SURVEY_SUBMITTED = "survey_submitted"
    FAILED = "failed"
    RESET = "reset"


_NO_OVERLAY = SubmissionPhaseConfig(show_overlay=False, overlay_message=None, is_blocking=False)

SUBMISSION_PHASE_CONFIG: dict[SubmissionPhase, SubmissionPhaseConfig] = {
    SubmissionPhase.IDLE: _NO_OVERLAY,
    SubmissionPhase.SUBMITTING_ANSWER: _NO_OVERLAY,
    SubmissionPhase.SUBMITTING_FINAL: SubmissionPhaseConfig(
        show_overlay=True, overlay_message="Submitting survey...", is_blocking=True
    ),
    SubmissionPhase.REDIRECTING: SubmissionPhaseConfig(
        show_overlay=True, overlay_message="Redirecting to results...", is_blocking=True
    ),
    SubmissionPhase.ERROR: _NO_OVERLAY,
}


def get_submission_phase_config(phase: SubmissionPhase) -> SubmissionPhaseConfig:
    return SUBMISSION_PHASE_CONFIG[SubmissionPhase(phase)]


def advance_submission_phase(
    phase: SubmissionPhase,
    event: SubmissionEvent,
    *,
    is_last_question: bool = False,
) -> SubmissionPhase:
    """
    Next submission phase for ``event``.

    Saving the last answer enters ``submitting_final`` before the network call
    starts so the overlay blocks immediately. Events that make no sense in the
    current phase leave it unchanged.
    """
    phase = SubmissionPhase(phase)
    event = SubmissionEvent(event)

    if event is SubmissionEvent.RESET:
        return SubmissionPhase.IDLE
    if event is SubmissionEvent.FAILED:
        return SubmissionPhase.ERROR if phase is not SubmissionPhase.IDLE else phase

    if event is SubmissionEvent.ANSWER_SAVING:
        if phase in (SubmissionPhase.IDLE, SubmissionPhase.ERROR):
            return SubmissionPhase.SUBMITTING_FINAL if is_last_question else SubmissionPhase.SUBMITTING_ANSWER
        return phase

    if event is SubmissionEvent.ANSWER_SAVED:
        return SubmissionPhase.IDLE if phase is SubmissionPhase.SUBMITTING_ANSWER else phase

    # SURVEY_SUBMITTED
    return SubmissionPhase.REDIRECTING if phase is SubmissionPhase.SUBMITTING_FINAL else phase
