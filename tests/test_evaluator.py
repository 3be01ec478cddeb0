from __future__ import annotations

import asyncio
import logging

import pytest

from survey_access.adapters.static_eligibility import WalletProfile
from survey_access.contracts import AccessCheckResult, AccessOutcome, CombineMode
from survey_access.errors import UnknownStrategyError
from survey_access.evaluator import (
    CombinedAccessEvaluator,
    EligibilityCheckSession,
    EligibilityOutcomeStatus,
    ParticipationProgress,
    combine_results,
)
from survey_access.phases import ParticipationPhase, resolve_participation_phase
from survey_access.registry import StrategyRegistry, build_default_registry
from survey_access.retry import RetryTimeoutPolicy
from survey_access.strategies import AllowlistStrategy, ReputationStrategy

WALLET = "0xA11CE00000000000000000000000000000000001"
FAST_POLICY = RetryTimeoutPolicy(max_attempts=1)


class _Stub:
    def __init__(self, strategy_id: str, priority: int) -> None:
        self.id = strategy_id
        self.priority = priority


def test_combine_results_without_strategies_is_open_access() -> None:
    assert combine_results([], CombineMode.AND) == (True, None)
    assert combine_results([], CombineMode.OR) == (True, None)


def test_combine_results_and_or_semantics() -> None:
    results = [
        (_Stub("a", 10), AccessCheckResult.allow()),
        (_Stub("b", 5), AccessCheckResult.deny("b says no")),
    ]

    assert combine_results(results, CombineMode.AND) == (False, "b says no")
    assert combine_results(results, CombineMode.OR) == (True, None)


def test_combine_results_reports_highest_priority_denial() -> None:
    results = [
        (_Stub("low", 90), AccessCheckResult.deny("low reason")),
        (_Stub("high", 100), AccessCheckResult.deny("high reason")),
        (_Stub("also-high", 100), AccessCheckResult.deny("second high reason")),
    ]

    assert combine_results(results, CombineMode.OR) == (False, "high reason")


def _registry(make_service, resource, **service_kwargs) -> StrategyRegistry:
    service = make_service(resource, **service_kwargs)
    return StrategyRegistry([AllowlistStrategy(service, FAST_POLICY), ReputationStrategy(service, FAST_POLICY)])


@pytest.mark.asyncio
async def test_and_mode_requires_every_strategy(make_user, make_resource, make_service) -> None:
    resource = make_resource(strategy_ids=("whitelist", "bringid"), combine_mode=CombineMode.AND)
    registry = _registry(
        make_service,
        resource,
        allowlists={resource.id: [WALLET]},
        profiles={WALLET: WalletProfile(score=10)},
    )

    state = await CombinedAccessEvaluator(registry).evaluate(make_user(), resource)

    assert state.is_eligible is False
    assert state.reason == "BringId score below 50"
    assert state.per_strategy_results["whitelist"].passed is True
    assert state.per_strategy_results["bringid"].requires_humanity_verification is True
    assert state.failed_strategies() == ["bringid"]


@pytest.mark.asyncio
async def test_or_mode_needs_one_strategy(make_user, make_resource, make_service) -> None:
    resource = make_resource(strategy_ids=("whitelist", "bringid"), combine_mode=CombineMode.OR)
    registry = _registry(make_service, resource, profiles={WALLET: WalletProfile(score=99)})

    state = await CombinedAccessEvaluator(registry).evaluate(make_user(), resource)

    assert state.is_eligible is True
    assert state.reason is None
    assert state.per_strategy_results["whitelist"].passed is False


@pytest.mark.asyncio
async def test_denial_reason_comes_from_highest_priority_strategy(make_user, make_resource, make_service) -> None:
    # Configured order puts the lower priority strategy first.
    resource = make_resource(strategy_ids=("bringid", "whitelist"))
    registry = _registry(make_service, resource)

    state = await CombinedAccessEvaluator(registry).evaluate(make_user(), resource)

    assert state.is_eligible is False
    assert state.reason == "Wallet address not whitelisted"


@pytest.mark.asyncio
async def test_strategies_run_concurrently(make_user, make_resource) -> None:
    started: list[str] = []
    gate = asyncio.Event()

    class GatedService:
        async def check_eligibility(self, resource_id: str, *, wallet_address: str):
            started.append(resource_id)
            if len(started) == 2:
                gate.set()
            await gate.wait()
            return {"isEligible": True}

    service = GatedService()
    registry = StrategyRegistry([AllowlistStrategy(service, FAST_POLICY), ReputationStrategy(service, FAST_POLICY)])
    resource = make_resource(strategy_ids=("whitelist", "bringid"))

    state = await asyncio.wait_for(CombinedAccessEvaluator(registry).evaluate(make_user(), resource), timeout=1)

    assert state.is_eligible is True
    assert len(started) == 2


@pytest.mark.asyncio
async def test_disabled_strategies_are_skipped(
    make_user, make_resource, make_service, caplog: pytest.LogCaptureFixture
) -> None:
    resource = make_resource(strategy_ids=("whitelist", "bringid"))
    service = make_service(resource, profiles={WALLET: WalletProfile(score=80)})
    registry = StrategyRegistry(
        [AllowlistStrategy(service, FAST_POLICY, enabled=False), ReputationStrategy(service, FAST_POLICY)]
    )

    with caplog.at_level(logging.WARNING, logger="survey_access.evaluator"):
        state = await CombinedAccessEvaluator(registry).evaluate(make_user(), resource)

    assert state.is_eligible is True
    assert list(state.per_strategy_results) == ["bringid"]
    assert "Skipping disabled strategy whitelist" in caplog.text


@pytest.mark.asyncio
async def test_unknown_strategy_id_is_a_programmer_error(make_user, make_resource, make_service) -> None:
    resource = make_resource(strategy_ids=("gitcoin",))
    registry = build_default_registry(make_service(resource))

    with pytest.raises(UnknownStrategyError):
        await CombinedAccessEvaluator(registry).evaluate(make_user(), resource)


@pytest.mark.asyncio
async def test_explicit_progress_overrides_service_flags(make_user, make_resource, make_service) -> None:
    resource = make_resource(strategy_ids=("whitelist",))
    service = make_service(resource, allowlists={resource.id: [WALLET]}, completed=[(resource.id, WALLET)])
    registry = build_default_registry(service)

    state = await CombinedAccessEvaluator(registry).evaluate(
        make_user(), resource, progress=ParticipationProgress(has_started=True)
    )

    assert state.has_started is True
    assert state.has_completed is False


@pytest.mark.asyncio
async def test_completed_survey_resolves_to_completed_phase(
    make_user, make_resource, make_service, make_participation_input
) -> None:
    resource = make_resource(strategy_ids=("whitelist",))
    service = make_service(
        resource,
        allowlists={resource.id: [WALLET]},
        started=[(resource.id, WALLET)],
        completed=[(resource.id, WALLET)],
    )

    state = await build_default_registry(service).check_access(make_user(), resource)

    assert (state.has_started, state.has_completed) == (True, True)
    assert resolve_participation_phase(make_participation_input(eligibility=state)) is ParticipationPhase.COMPLETED


@pytest.mark.asyncio
async def test_started_survey_resolves_to_continue_phase(
    make_user, make_resource, make_service, make_participation_input
) -> None:
    resource = make_resource(strategy_ids=("whitelist", "bringid"), combine_mode=CombineMode.OR)
    service = make_service(resource, allowlists={resource.id: [WALLET]}, started=[(resource.id, WALLET)])

    state = await build_default_registry(service).check_access(make_user(), resource)

    assert (state.has_started, state.has_completed) == (True, False)
    assert resolve_participation_phase(make_participation_input(eligibility=state)) is ParticipationPhase.CONTINUE


@pytest.mark.asyncio
async def test_progress_is_unset_when_every_check_failed(make_user, make_resource, make_service) -> None:
    resource = make_resource(strategy_ids=("bringid",))
    service = make_service(resource, fail_with=RuntimeError("boom"), completed=[(resource.id, WALLET)])

    state = await build_default_registry(service).check_access(make_user(), resource)

    assert state.is_eligible is False
    assert (state.has_started, state.has_completed) == (False, False)


# ------------------------------------------------------------------------------
# EligibilityCheckSession
# ------------------------------------------------------------------------------


@pytest.fixture
def session(make_resource, make_service) -> EligibilityCheckSession:
    resource = make_resource(strategy_ids=("whitelist",))
    service = make_service(resource, allowlists={resource.id: [WALLET]})
    return EligibilityCheckSession(CombinedAccessEvaluator(StrategyRegistry([AllowlistStrategy(service, FAST_POLICY)])))


@pytest.mark.asyncio
async def test_session_checks_once_per_pair(session, make_user, make_resource) -> None:
    user, resource = make_user(), make_resource(strategy_ids=("whitelist",))
    assert session.outcome is AccessOutcome.PENDING

    first = await session.run(user, resource)
    second = await session.run(user, resource)

    assert first.status is EligibilityOutcomeStatus.READY
    assert first.state is not None and first.state.is_eligible
    assert second.status is EligibilityOutcomeStatus.SKIPPED
    assert second.state == first.state
    assert session.outcome is AccessOutcome.ALLOWED


def test_session_discards_response_for_superseded_request(session, make_user, make_resource, make_eligibility) -> None:
    user, resource = make_user(), make_resource(strategy_ids=("whitelist",))
    stale_ticket = session.begin(user, resource)
    assert stale_ticket is not None
    assert session.begin(user, resource) is None

    session.retry()
    fresh_ticket = session.begin(user, resource)
    assert fresh_ticket is not None
    assert fresh_ticket.generation > stale_ticket.generation

    assert session.complete(stale_ticket, make_eligibility(is_eligible=False)) is False
    assert session.state is None
    assert session.is_checking

    assert session.complete(fresh_ticket, make_eligibility(is_eligible=True)) is True
    assert session.state is not None and session.state.is_eligible
    assert session.has_checked


def test_session_resets_when_pair_changes(session, make_user, make_resource, make_eligibility) -> None:
    resource = make_resource(strategy_ids=("whitelist",))
    alice_ticket = session.begin(make_user(), resource)
    assert alice_ticket is not None

    bob_ticket = session.begin(make_user(user_id="user:bob", wallet_address="0xb0b"), resource)

    assert bob_ticket is not None
    assert not session.is_current(alice_ticket)
    assert session.complete(alice_ticket, make_eligibility()) is False


@pytest.mark.asyncio
async def test_session_reports_stale_when_retried_mid_flight(make_user, make_resource) -> None:
    release = asyncio.Event()

    class SlowService:
        async def check_eligibility(self, resource_id: str, *, wallet_address: str):
            await release.wait()
            return {"isEligible": True}

    registry = StrategyRegistry([AllowlistStrategy(SlowService(), FAST_POLICY)])
    session = EligibilityCheckSession(CombinedAccessEvaluator(registry))
    user, resource = make_user(), make_resource(strategy_ids=("whitelist",))

    pending = asyncio.ensure_future(session.run(user, resource))
    await asyncio.sleep(0)
    session.retry()
    release.set()
    outcome = await pending

    assert outcome.status is EligibilityOutcomeStatus.STALE
    assert session.state is None
    assert session.has_checked is False


@pytest.mark.asyncio
async def test_session_releases_ticket_when_evaluation_raises(make_user, make_resource, make_service) -> None:
    resource = make_resource(strategy_ids=("gitcoin",))
    session = EligibilityCheckSession(CombinedAccessEvaluator(build_default_registry(make_service(resource))))

    with pytest.raises(UnknownStrategyError):
        await session.run(make_user(), resource)

    assert session.is_checking is False
    assert session.has_checked is False


@pytest.mark.asyncio
async def test_session_state_keeps_service_progress(make_user, make_resource, make_service) -> None:
    resource = make_resource(strategy_ids=("whitelist",))
    service = make_service(resource, allowlists={resource.id: [WALLET]}, completed=[(resource.id, WALLET)])
    session = EligibilityCheckSession(CombinedAccessEvaluator(build_default_registry(service)))

    outcome = await session.run(make_user(), resource)

    assert outcome.status is EligibilityOutcomeStatus.READY
    assert outcome.state is not None and outcome.state.has_completed is True
