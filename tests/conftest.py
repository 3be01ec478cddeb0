from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, Optional

import pytest

from survey_access.adapters.static_eligibility import StaticEligibilityService, WalletProfile
from survey_access.contracts import (
    AdminAuthInput,
    CombineMode,
    EligibilityState,
    ParticipationInput,
    Resource,
    ResourceAccessConfig,
    ResourceType,
    User,
)

FIXED_NOW_ISO = "2026-02-11T00:00:00+00:00"
ALICE_WALLET = "0xA11CE00000000000000000000000000000000001"
BOB_WALLET = "0xB0B0000000000000000000000000000000000002"


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FlakyOperation:
    """Callable returning a coroutine that fails ``failures`` times before succeeding."""

    def __init__(self, failures: Iterable[BaseException], result: Any = "ok") -> None:
        self._failures = list(failures)
        self._result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self._attempt()

    async def _attempt(self) -> Any:
        if self._failures:
            raise self._failures.pop(0)
        return self._result


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_flaky_operation() -> Callable[..., FlakyOperation]:
    def _make_flaky_operation(*failures: BaseException, result: Any = "ok") -> FlakyOperation:
        return FlakyOperation(failures, result=result)

    return _make_flaky_operation


@pytest.fixture
def make_user() -> Callable[..., User]:
    def _make_user(
        *,
        user_id: str = "user:alice",
        wallet_address: Optional[str] = ALICE_WALLET,
        role: str = "respondent",
    ) -> User:
        return User(id=user_id, wallet_address=wallet_address, role=role)

    return _make_user


@pytest.fixture
def make_resource() -> Callable[..., Resource]:
    def _make_resource(
        *,
        resource_id: str = "survey:1",
        strategy_ids: Iterable[str] = ("whitelist",),
        combine_mode: CombineMode = CombineMode.AND,
        per_strategy_config: Optional[Mapping[str, Any]] = None,
        resource_type: ResourceType = ResourceType.STANDARD,
        allowlist: Optional[Iterable[str]] = None,
        start_at_iso: Optional[str] = None,
        end_at_iso: Optional[str] = None,
    ) -> Resource:
        return Resource(
            id=resource_id,
            name=f"Survey {resource_id}",
            resource_type=resource_type,
            start_at_iso=start_at_iso,
            end_at_iso=end_at_iso,
            access=ResourceAccessConfig(
                strategy_ids=tuple(strategy_ids),
                combine_mode=combine_mode,
                per_strategy_config=dict(per_strategy_config or {}),
            ),
            allowlist=tuple(allowlist) if allowlist is not None else None,
        )

    return _make_resource


@pytest.fixture
def make_service() -> Callable[..., StaticEligibilityService]:
    def _make_service(
        *resources: Resource,
        allowlists: Optional[Mapping[str, Iterable[str]]] = None,
        profiles: Optional[Mapping[str, WalletProfile]] = None,
        fail_with: Optional[BaseException] = None,
        started: Iterable[tuple[str, str]] = (),
        completed: Iterable[tuple[str, str]] = (),
    ) -> StaticEligibilityService:
        return StaticEligibilityService(
            resources={resource.id: resource for resource in resources},
            allowlists=dict(allowlists or {}),
            profiles={address.lower(): profile for address, profile in (profiles or {}).items()},
            started={(resource_id, address.lower()) for resource_id, address in started},
            completed={(resource_id, address.lower()) for resource_id, address in completed},
            fail_with=fail_with,
        )

    return _make_service


@pytest.fixture
def make_admin_input() -> Callable[..., AdminAuthInput]:
    def _make_admin_input(**overrides: Any) -> AdminAuthInput:
        fields: dict[str, Any] = {
            "initialized": True,
            "loading": False,
            "is_connected": True,
            "is_authenticated": True,
            "is_creating_session": False,
            "user": {"role": "admin", "wallet_address": ALICE_WALLET},
            "connected_address": ALICE_WALLET,
        }
        fields.update(overrides)
        return AdminAuthInput.model_validate(fields)

    return _make_admin_input


@pytest.fixture
def make_eligibility() -> Callable[..., EligibilityState]:
    def _make_eligibility(
        *,
        is_eligible: bool = True,
        has_started: bool = False,
        has_completed: bool = False,
        reason: Optional[str] = None,
        per_strategy_results: Optional[Mapping[str, Any]] = None,
    ) -> EligibilityState:
        return EligibilityState.model_validate(
            {
                "is_eligible": is_eligible,
                "has_started": has_started,
                "has_completed": has_completed,
                "reason": reason,
                "per_strategy_results": dict(per_strategy_results or {}),
            }
        )

    return _make_eligibility


@pytest.fixture
def make_participation_input(
    make_eligibility: Callable[..., EligibilityState],
) -> Callable[..., ParticipationInput]:
    def _make_participation_input(**overrides: Any) -> ParticipationInput:
        fields: dict[str, Any] = {
            "resource_loaded": True,
            "resource_type": ResourceType.STANDARD,
            "now_iso": FIXED_NOW_ISO,
            "eligibility": make_eligibility(),
            "is_connected": True,
            "has_address": True,
            "is_authenticated": True,
        }
        fields.update(overrides)
        return ParticipationInput.model_validate(fields)

    return _make_participation_input
