# survey_access/strategies.py
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Optional, Protocol

from pydantic import ValidationError

from survey_access.adapters.eligibility_service import EligibilityService
from survey_access.contracts import (
    AccessCheckResult,
    ActionType,
    EligibilityResponse,
    ParticipationProgress,
    ReputationConfig,
    RequiredAction,
    Resource,
    StrategyConfig,
    StrategyId,
    StrategyResult,
    User,
    normalize_address,
    parse_strategy_config,
)
from survey_access.errors import (
    ErrorKind,
    StrategyConfigError,
    classify_error,
    is_transient,
    user_safe_reason,
)
from survey_access.retry import RetryTimeoutPolicy

logger = logging.getLogger(__name__)


class VerificationStrategy(Protocol):
    """Contract every access strategy fulfils; ``check_access`` never raises for runtime failures."""

    id: str
    name: str
    description: str
    priority: int
    enabled: bool

    def configure(self, config: object) -> None:
        ...

    async def check_access(self, user: User, resource: Resource) -> AccessCheckResult:
        ...


class EligibilityBackedStrategy(ABC):
    """
    Shared skeleton for strategies that consult the eligibility service.

    Subclasses decide what a successful payload means; this class owns the
    identifier precondition, the retry/timeout wrapping and the translation of
    failures into user-safe denials.
    """

    id: ClassVar[str]
    name: ClassVar[str]
    description: ClassVar[str]
    priority: ClassVar[int]
    label: ClassVar[str]

    def __init__(
        self,
        service: EligibilityService,
        policy: Optional[RetryTimeoutPolicy] = None,
        *,
        enabled: bool = True,
    ) -> None:
        self._service = service
        self._policy = policy or RetryTimeoutPolicy()
        self.enabled = enabled
        self._config: StrategyConfig = parse_strategy_config(self.id, None)

    @property
    def policy(self) -> RetryTimeoutPolicy:
        return self._policy

    @property
    def config(self) -> StrategyConfig:
        return self._config

    def configure(self, config: object) -> None:
        try:
            self._config = parse_strategy_config(self.id, config)
        except (ValidationError, ValueError) as exc:
            raise StrategyConfigError(f"invalid configuration for strategy {self.id!r}: {exc}") from exc
        logger.debug("[%s] Configured with: %s", type(self).__name__, self._config)

    def effective_config(self, resource: Resource) -> StrategyConfig:
        configured = resource.access.config_for(self.id)
        return self._config if configured is None else configured

    async def check_access(self, user: User, resource: Resource) -> AccessCheckResult:
        if not user.wallet_address:
            return AccessCheckResult.deny(user_safe_reason(ErrorKind.VALIDATION, label=self.label))

        wallet_address = user.wallet_address

        def _on_retry(attempt: int, error: BaseException) -> None:
            logger.debug("[%s] Retry attempt %s: %s", type(self).__name__, attempt, error)

        try:
            payload = await self._policy.run(
                lambda: self._service.check_eligibility(resource.id, wallet_address=wallet_address),
                on_retry=_on_retry,
                should_retry=is_transient,
            )
            response = EligibilityResponse.coerce(payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[%s] Eligibility check failed for %s: %r", type(self).__name__, resource.id, exc)
            return self.on_failure(exc, user, resource)

        result = self.evaluate(response, self.effective_config(resource)).model_copy(
            update={
                "progress": ParticipationProgress(
                    has_started=response.has_started,
                    has_completed=response.has_completed,
                )
            }
        )
        logger.debug(
            "[%s] %s for %s: %s",
            type(self).__name__,
            "allowed" if result.allowed else "denied",
            resource.id,
            result.reason or "",
        )
        return result

    @abstractmethod
    def evaluate(self, response: EligibilityResponse, config: StrategyConfig) -> AccessCheckResult:
        ...

    def on_failure(self, error: BaseException, user: User, resource: Resource) -> AccessCheckResult:
        return AccessCheckResult.deny(user_safe_reason(classify_error(error), label=self.label))


class AllowlistStrategy(EligibilityBackedStrategy):
    id = StrategyId.ALLOWLIST.value
    name = "Whitelist"
    description = "Require wallet address to be whitelisted"
    priority = 100
    label = "whitelist"

    DEFAULT_DENIAL: ClassVar[str] = "Not on the access list."

    def evaluate(self, response: EligibilityResponse, config: StrategyConfig) -> AccessCheckResult:
        entry = response.access_strategies.get(self.id)
        if entry is not None:
            if entry.passed:
                return AccessCheckResult.allow()
            return AccessCheckResult.deny(entry.reason or self.DEFAULT_DENIAL)

        if response.is_eligible:
            return AccessCheckResult.allow()
        return AccessCheckResult.deny(response.reason or self.DEFAULT_DENIAL)

    def on_failure(self, error: BaseException, user: User, resource: Resource) -> AccessCheckResult:
        if resource.allowlist is None:
            return super().on_failure(error, user, resource)

        logger.warning("[AllowlistStrategy] Service unreachable, using embedded allowlist for %s", resource.id)
        members = {normalize_address(address) for address in resource.allowlist}
        if normalize_address(user.wallet_address) in members:
            return AccessCheckResult.allow()
        return AccessCheckResult.deny(self.DEFAULT_DENIAL)


class ReputationStrategy(EligibilityBackedStrategy):
    id = StrategyId.REPUTATION.value
    name = "BringId Reputation"
    description = "Verify identity and reputation via BringId"
    priority = 90
    label = "BringId"

    REMEDIATION: ClassVar[RequiredAction] = RequiredAction(
        type=ActionType.VERIFY_HUMANITY,
        instructions="Complete BringId verification to increase your score",
    )

    DEFAULT_DENIAL: ClassVar[str] = "BringId verification required"

    def evaluate(self, response: EligibilityResponse, config: StrategyConfig) -> AccessCheckResult:
        """The service verdict decides; the local config only shapes the denial reason and remediation."""
        if not isinstance(config, ReputationConfig):
            raise TypeError(f"{type(self).__name__} expects ReputationConfig, got {type(config).__name__}")

        entry = response.access_strategies.get(self.id)
        if entry is None:
            if response.is_eligible:
                return AccessCheckResult.allow()
            return AccessCheckResult.deny(response.reason or self.DEFAULT_DENIAL)

        if entry.passed:
            return AccessCheckResult.allow(score=entry.score)

        humanity_ok = self._humanity_satisfied(entry, config)
        if entry.reason:
            reason = entry.reason
        elif entry.score is not None and entry.score < config.min_score:
            reason = f"BringId score below {config.min_score:g}"
        elif not humanity_ok:
            reason = "Humanity verification required"
        else:
            reason = response.reason or self.DEFAULT_DENIAL

        actionable = entry.is_actionable or (config.require_humanity_proof and not humanity_ok)
        return AccessCheckResult.deny(
            reason,
            action=self.REMEDIATION if actionable else None,
            score=entry.score,
        )

    @staticmethod
    def _humanity_satisfied(entry: StrategyResult, config: ReputationConfig) -> bool:
        if entry.points is not None:
            return entry.points >= config.min_points
        return not entry.requires_humanity_verification


BUILTIN_STRATEGIES: tuple[type[EligibilityBackedStrategy], ...] = (AllowlistStrategy, ReputationStrategy)
