# survey_access/adapters/static_eligibility.py
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Optional

from survey_access.contracts import (
    CombineMode,
    EligibilityResponse,
    ReputationConfig,
    Resource,
    StrategyId,
    StrategyResult,
    normalize_address,
)


@dataclass
class WalletProfile:
    score: Optional[float] = None
    humanity_points: Optional[float] = None


@dataclass
class StaticEligibilityService:
    """
    Deterministic in-memory stand-in for the remote eligibility service.

    Mirrors the server contract closely enough for demos and tests: one
    per-strategy entry for every strategy the resource configures, folded by
    the resource's combine mode. ``fail_with`` makes every call raise.
    """

    resources: Mapping[str, Resource] = field(default_factory=dict)
    allowlists: Mapping[str, Iterable[str]] = field(default_factory=dict)
    profiles: Mapping[str, WalletProfile] = field(default_factory=dict)
    started: set[tuple[str, str]] = field(default_factory=set)
    completed: set[tuple[str, str]] = field(default_factory=set)
    fail_with: Optional[BaseException] = None
    calls: list[tuple[str, str]] = field(default_factory=list)

    async def check_eligibility(self, resource_id: str, *, wallet_address: str) -> EligibilityResponse:
        self.calls.append((resource_id, wallet_address))
        if self.fail_with is not None:
            raise self.fail_with

        resource = self.resources.get(resource_id)
        if resource is None:
            return EligibilityResponse(is_eligible=False, reason="Survey not found")

        address = normalize_address(wallet_address) or ""
        key = (resource_id, address)
        entries = {
            strategy_id: self._strategy_entry(strategy_id, resource, address)
            for strategy_id in resource.access.strategy_ids
        }

        if not entries:
            is_eligible = True
        elif resource.access.combine_mode is CombineMode.OR:
            is_eligible = any(entry.passed for entry in entries.values())
        else:
            is_eligible = all(entry.passed for entry in entries.values())

        reason = None
        if not is_eligible:
            reason = next((entry.reason for entry in entries.values() if not entry.passed and entry.reason), None)

        return EligibilityResponse(
            is_eligible=is_eligible,
            has_started=key in self.started,
            has_completed=key in self.completed,
            reason=reason,
            access_strategies=entries,
        )

    def _strategy_entry(self, strategy_id: str, resource: Resource, address: str) -> StrategyResult:
        if strategy_id == StrategyId.ALLOWLIST.value:
            members = {normalize_address(item) for item in self.allowlists.get(resource.id, ())}
            if address in members:
                return StrategyResult(passed=True)
            return StrategyResult(passed=False, reason="Wallet address not whitelisted")

        if strategy_id == StrategyId.REPUTATION.value:
            config = resource.access.config_for(strategy_id)
            if not isinstance(config, ReputationConfig):
                config = ReputationConfig()
            return self._reputation_entry(config, self.profiles.get(address, WalletProfile()))

        return StrategyResult(passed=False, reason=f"Unsupported access strategy: {strategy_id}")

    @staticmethod
    def _reputation_entry(config: ReputationConfig, profile: WalletProfile) -> StrategyResult:
        score_ok = profile.score is not None and profile.score >= config.min_score
        if not config.require_humanity_proof:
            if score_ok:
                return StrategyResult(passed=True, score=profile.score)
            return StrategyResult(
                passed=False,
                score=profile.score,
                reason=f"BringId score below {config.min_score:g}",
            )

        humanity_ok = profile.humanity_points is not None and profile.humanity_points >= config.min_points
        if config.combine_mode is CombineMode.OR:
            passed = score_ok or humanity_ok
        else:
            passed = score_ok and humanity_ok

        if passed:
            return StrategyResult(passed=True, score=profile.score, points=profile.humanity_points)
        return StrategyResult(
            passed=False,
            score=profile.score,
            points=profile.humanity_points,
            reason="Humanity verification required" if not humanity_ok else f"BringId score below {config.min_score:g}",
            requires_humanity_verification=not humanity_ok,
        )
