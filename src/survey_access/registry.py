"""
Strategy registry.

Catalog of the access strategies known to the process, keyed by id. It is
populated once at startup and then only read; the evaluator receives it as an
explicit dependency.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import Optional

from survey_access.adapters.eligibility_service import EligibilityService
from survey_access.contracts import EligibilityState, Resource, User
from survey_access.errors import DuplicateStrategyError, UnknownStrategyError
from survey_access.evaluator import CombinedAccessEvaluator
from survey_access.settings import AccessSettings
from survey_access.strategies import (
    BUILTIN_STRATEGIES,
    VerificationStrategy,
)

logger = logging.getLogger(__name__)


class StrategyRegistry:
    def __init__(self, strategies: Iterable[VerificationStrategy] = ()) -> None:
        self._strategies: dict[str, VerificationStrategy] = {}
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: VerificationStrategy) -> None:
        if strategy.id in self._strategies:
            raise DuplicateStrategyError(f"Strategy {strategy.id!r} already registered")
        self._strategies[strategy.id] = strategy
        logger.info("[StrategyRegistry] Registered: %s (%s)", strategy.name, strategy.id)

    def unregister(self, strategy_id: str) -> None:
        self._strategies.pop(strategy_id, None)
        logger.info("[StrategyRegistry] Unregistered: %s", strategy_id)

    def get(self, strategy_id: str) -> VerificationStrategy:
        try:
            return self._strategies[strategy_id]
        except KeyError:
            raise UnknownStrategyError(strategy_id) from None

    def find(self, strategy_id: str) -> Optional[VerificationStrategy]:
        return self._strategies.get(strategy_id)

    def has(self, strategy_id: str) -> bool:
        return strategy_id in self._strategies

    def all(self) -> list[VerificationStrategy]:
        """Registered strategies, highest priority first."""
        return sorted(self._strategies.values(), key=lambda s: s.priority, reverse=True)

    def resolve(self, strategy_ids: Sequence[str]) -> list[VerificationStrategy]:
        return [self.get(strategy_id) for strategy_id in strategy_ids]

    def reset(self) -> None:
        self._strategies.clear()
        logger.info("[StrategyRegistry] Registry reset")

    def __contains__(self, strategy_id: object) -> bool:
        return strategy_id in self._strategies

    def __iter__(self) -> Iterator[str]:
        return iter(self._strategies)

    def __len__(self) -> int:
        return len(self._strategies)

    async def check_access(
        self,
        user: User,
        resource: Resource,
        strategy_ids: Optional[Sequence[str]] = None,
    ) -> EligibilityState:
        return await CombinedAccessEvaluator(self).evaluate(user, resource, strategy_ids=strategy_ids)


def build_default_registry(
    service: EligibilityService,
    settings: Optional[AccessSettings] = None,
) -> StrategyRegistry:
    """Build the closed set of built-in strategies against one eligibility service."""
    settings = settings or AccessSettings()
    return StrategyRegistry(
        strategy_cls(service, settings.policy_for(strategy_cls.id)) for strategy_cls in BUILTIN_STRATEGIES
    )
