# survey_access/evaluator.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from survey_access._compat import StrEnum
from survey_access.contracts import (
    AccessCheckResult,
    AccessOutcome,
    ActionType,
    CombineMode,
    EligibilityState,
    ParticipationProgress,
    Resource,
    StrategyResult,
    User,
)
from survey_access.stable_ids import derive_check_key

if TYPE_CHECKING:
    from survey_access.registry import StrategyRegistry
    from survey_access.strategies import VerificationStrategy

logger = logging.getLogger(__name__)


def _strategy_result(result: AccessCheckResult) -> StrategyResult:
    action = result.requires_action
    return StrategyResult(
        passed=result.allowed,
        reason=result.reason,
        score=result.score,
        requires_humanity_verification=action is not None and action.type is ActionType.VERIFY_HUMANITY,
    )


def combine_results(
    results: Sequence[tuple[VerificationStrategy, AccessCheckResult]],
    combine_mode: CombineMode,
) -> tuple[bool, Optional[str]]:
    """
    Fold per-strategy verdicts into one eligibility verdict.

    No results means open access. The denial reason comes from the highest
    priority strategy that disallowed; ties keep configuration order.
    """
    if not results:
        return True, None

    if combine_mode is CombineMode.OR:
        eligible = any(result.allowed for _, result in results)
    else:
        eligible = all(result.allowed for _, result in results)
    if eligible:
        return True, None

    by_priority = sorted(results, key=lambda pair: pair[0].priority, reverse=True)
    reason = next((result.reason for _, result in by_priority if not result.allowed), None)
    return False, reason


def reported_progress(verdicts: Sequence[AccessCheckResult]) -> ParticipationProgress:
    """Progress flags any strategy relayed from the eligibility service."""
    reported = [verdict.progress for verdict in verdicts if verdict.progress is not None]
    return ParticipationProgress(
        has_started=any(progress.has_started for progress in reported),
        has_completed=any(progress.has_completed for progress in reported),
    )


class CombinedAccessEvaluator:
    """Runs every configured strategy for a resource and folds them by its combine mode."""

    def __init__(self, registry: StrategyRegistry) -> None:
        self._registry = registry

    async def evaluate(
        self,
        user: User,
        resource: Resource,
        *,
        strategy_ids: Optional[Sequence[str]] = None,
        progress: Optional[ParticipationProgress] = None,
    ) -> EligibilityState:
        ids = list(resource.access.strategy_ids if strategy_ids is None else strategy_ids)
        strategies = self._registry.resolve(ids)
        active = [strategy for strategy in strategies if strategy.enabled]
        for strategy in strategies:
            if not strategy.enabled:
                logger.warning("[CombinedAccessEvaluator] Skipping disabled strategy %s", strategy.id)

        # All strategies run so that per-strategy results are complete.
        verdicts = await asyncio.gather(*(strategy.check_access(user, resource) for strategy in active))
        results = list(zip(active, verdicts))

        eligible, reason = combine_results(results, resource.access.combine_mode)
        logger.debug(
            "[CombinedAccessEvaluator] %s for %s (%s over %s)",
            "eligible" if eligible else "not eligible",
            resource.id,
            resource.access.combine_mode.value,
            [strategy.id for strategy in active],
        )
        if progress is None:
            progress = reported_progress(verdicts)
        return EligibilityState(
            is_eligible=eligible,
            has_started=progress.has_started,
            has_completed=progress.has_completed,
            reason=reason,
            per_strategy_results={strategy.id: _strategy_result(result) for strategy, result in results},
        )


# ------------------------------------------------------------------------------
# Request-generation gating for one (user, resource) pair at a time
# ------------------------------------------------------------------------------


class EligibilityOutcomeStatus(StrEnum):
    READY = "ready"
    SKIPPED = "skipped"
    STALE = "stale"


@dataclass(frozen=True)
class EligibilityOutcome:
    status: EligibilityOutcomeStatus
    generation: int
    state: Optional[EligibilityState] = None


@dataclass(frozen=True)
class CheckTicket:
    key: str
    generation: int


class EligibilityCheckSession:
    """
    Owns the "already checked / in flight" state for the pair a caller is showing.

    Every ``begin`` is stamped with the current generation. ``retry`` and a change
    of pair bump the generation, so a response that arrives for an older ticket
    is discarded instead of overwriting newer state.
    """

    def __init__(self, evaluator: CombinedAccessEvaluator) -> None:
        self._evaluator = evaluator
        self._generation = 0
        self._key: Optional[str] = None
        self._in_flight: Optional[CheckTicket] = None
        self._checked = False
        self._state: Optional[EligibilityState] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_checking(self) -> bool:
        return self._in_flight is not None

    @property
    def has_checked(self) -> bool:
        return self._checked

    @property
    def state(self) -> Optional[EligibilityState]:
        return self._state

    @property
    def outcome(self) -> AccessOutcome:
        """``pending`` until a current check has completed."""
        if self._state is None:
            return AccessOutcome.PENDING
        return AccessOutcome.ALLOWED if self._state.is_eligible else AccessOutcome.DENIED

    def _switch_to(self, key: str) -> None:
        if key == self._key:
            return
        self._key = key
        self._generation += 1
        self._in_flight = None
        self._checked = False
        self._state = None

    def begin(self, user: User, resource: Resource) -> Optional[CheckTicket]:
        key = derive_check_key(user, resource)
        self._switch_to(key)
        if self._checked or self._in_flight is not None:
            return None
        self._in_flight = CheckTicket(key=key, generation=self._generation)
        return self._in_flight

    def is_current(self, ticket: CheckTicket) -> bool:
        return ticket.key == self._key and ticket.generation == self._generation

    def complete(self, ticket: CheckTicket, state: EligibilityState) -> bool:
        if not self.is_current(ticket):
            logger.debug("[EligibilityCheckSession] Discarding stale result (generation %s)", ticket.generation)
            return False
        self._in_flight = None
        self._checked = True
        self._state = state
        return True

    def abandon(self, ticket: CheckTicket) -> None:
        if self.is_current(ticket):
            self._in_flight = None

    def retry(self) -> None:
        self._generation += 1
        self._in_flight = None
        self._checked = False
        self._state = None

    async def run(
        self,
        user: User,
        resource: Resource,
        *,
        progress: Optional[ParticipationProgress] = None,
    ) -> EligibilityOutcome:
        ticket = self.begin(user, resource)
        if ticket is None:
            return EligibilityOutcome(EligibilityOutcomeStatus.SKIPPED, self._generation, self._state)

        try:
            state = await self._evaluator.evaluate(user, resource, progress=progress)
        except BaseException:
            self.abandon(ticket)
            raise

        if not self.complete(ticket, state):
            return EligibilityOutcome(EligibilityOutcomeStatus.STALE, ticket.generation, state)
        return EligibilityOutcome(EligibilityOutcomeStatus.READY, ticket.generation, state)
