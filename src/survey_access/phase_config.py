# survey_access/phase_config.py
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, Optional

from survey_access.contracts import ButtonDirective
from survey_access.phases import ParticipationPhase

Handler = Callable[[], Any]
HandlerKey = Literal["on_start", "on_connect", "on_authenticate", "on_verify"]


@dataclass(frozen=True)
class ButtonHandlers:
    on_start: Optional[Handler] = None
    on_connect: Optional[Handler] = None
    on_authenticate: Optional[Handler] = None
    on_verify: Optional[Handler] = None


@dataclass(frozen=True)
class ButtonState:
    text: str
    disabled: bool
    loading: bool
    handler: Handler


def _noop() -> None:
    return None


BUTTON_PHASE_CONFIG: dict[ParticipationPhase, ButtonDirective] = {
    ParticipationPhase.RESOLVING: ButtonDirective(text="Loading...", disabled=True, loading=True),
    ParticipationPhase.COMPLETED: ButtonDirective(text="Survey Completed", disabled=True, loading=False),
    ParticipationPhase.CHECK_RESULTS: ButtonDirective(text="Sign to check your results", disabled=False, loading=False),
    ParticipationPhase.CONNECT_WALLET: ButtonDirective(text="Connect Wallet", disabled=False, loading=False),
    ParticipationPhase.CHECKING_ELIGIBILITY: ButtonDirective(text="Checking eligibility...", disabled=True, loading=True),
    ParticipationPhase.ELIGIBILITY_ERROR: ButtonDirective(text="Eligibility Check Failed", disabled=True, loading=False),
    ParticipationPhase.NOT_ELIGIBLE: ButtonDirective(text="Not Eligible", disabled=True, loading=False),
    ParticipationPhase.VERIFY_BRINGID: ButtonDirective(text="Verify with BringId", disabled=False, loading=False),
    ParticipationPhase.VERIFYING_BRINGID: ButtonDirective(text="Verifying...", disabled=True, loading=True),
    ParticipationPhase.NOT_STARTED_YET: ButtonDirective(text="Survey Not Started Yet", disabled=True, loading=False),
    ParticipationPhase.ENDED: ButtonDirective(text="Survey Ended", disabled=True, loading=False),
    ParticipationPhase.AUTHENTICATE: ButtonDirective(text="Authorize & Start Survey", disabled=False, loading=False),
    ParticipationPhase.AUTHENTICATING: ButtonDirective(text="Authenticating...", disabled=True, loading=True),
    ParticipationPhase.START: ButtonDirective(text="Start Survey", disabled=False, loading=False),
    ParticipationPhase.CONTINUE: ButtonDirective(text="Continue", disabled=False, loading=False),
}

PHASE_HANDLER_KEY: dict[ParticipationPhase, Optional[HandlerKey]] = {
    ParticipationPhase.RESOLVING: None,
    ParticipationPhase.COMPLETED: None,
    ParticipationPhase.CHECK_RESULTS: "on_authenticate",
    ParticipationPhase.CONNECT_WALLET: "on_connect",
    ParticipationPhase.CHECKING_ELIGIBILITY: None,
    ParticipationPhase.ELIGIBILITY_ERROR: None,
    ParticipationPhase.NOT_ELIGIBLE: None,
    ParticipationPhase.VERIFY_BRINGID: "on_verify",
    ParticipationPhase.VERIFYING_BRINGID: None,
    ParticipationPhase.NOT_STARTED_YET: None,
    ParticipationPhase.ENDED: None,
    ParticipationPhase.AUTHENTICATE: "on_authenticate",
    ParticipationPhase.AUTHENTICATING: "on_authenticate",
    ParticipationPhase.START: "on_start",
    ParticipationPhase.CONTINUE: "on_start",
}


def get_button_config(phase: ParticipationPhase, handlers: Optional[ButtonHandlers] = None) -> ButtonState:
    """Map a resolved phase and the caller's handlers into a renderable button state."""
    phase = ParticipationPhase(phase)
    directive = BUTTON_PHASE_CONFIG[phase]
    handler_key = PHASE_HANDLER_KEY[phase]

    handler: Optional[Handler] = None
    if handler_key is not None and handlers is not None:
        handler = getattr(handlers, handler_key)

    return ButtonState(
        text=directive.text,
        disabled=directive.disabled,
        loading=directive.loading,
        handler=handler or _noop,
    )
