# survey_access/contracts.py
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from survey_access._compat import UTC, Self, StrEnum

# ------------------------------------------------------------------------------
# Shared BaseModel config helpers
# ------------------------------------------------------------------------------

_IMMUTABLE_CONTRACT_CONFIG = ConfigDict(
    extra="forbid",
    use_enum_values=False,  # keep enums as enums in Python
    frozen=True,
)

# Wire payloads arrive camelCased from the eligibility service.
_WIRE_CONTRACT_CONFIG = ConfigDict(
    extra="ignore",
    use_enum_values=False,
    frozen=True,
    populate_by_name=True,
)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def normalize_address(address: str | None) -> str | None:
    """Canonical form for wallet comparison: addresses compare case-insensitively."""
    if address is None:
        return None
    normalized = address.strip().lower()
    return normalized or None


# ------------------------------------------------------------------------------
# Strategy identity and per-strategy configuration
# ------------------------------------------------------------------------------


class CombineMode(StrEnum):
    AND = "AND"
    OR = "OR"


class StrategyId(StrEnum):
    ALLOWLIST = "whitelist"
    REPUTATION = "bringid"


class ActionType(StrEnum):
    OAUTH = "oauth"
    INSTALL_EXTENSION = "install-extension"
    MINT_NFT = "mint-nft"
    HOLD_TOKEN = "hold-token"
    FOLLOW = "follow"
    VERIFY_HUMANITY = "verify-humanity"


class AllowlistConfig(BaseModel):
    """The allow-list strategy has no tunables; the list itself lives server-side."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG


class ReputationConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    min_score: float = Field(default=50, ge=0, le=100, validation_alias=AliasChoices("min_score", "minScore"))
    require_humanity_proof: bool = Field(
        default=False, validation_alias=AliasChoices("require_humanity_proof", "requireHumanityProof")
    )
    min_points: float = Field(default=0, ge=0, validation_alias=AliasChoices("min_points", "minPoints"))
    combine_mode: CombineMode = Field(
        default=CombineMode.AND, validation_alias=AliasChoices("combine_mode", "combineMode")
    )

    @model_validator(mode="after")
    def _points_need_humanity_proof(self) -> Self:
        if self.min_points and not self.require_humanity_proof:
            raise ValueError("min_points is only meaningful when require_humanity_proof is enabled")
        return self


StrategyConfig = Union[AllowlistConfig, ReputationConfig]

STRATEGY_CONFIG_MODELS: dict[StrategyId, type[BaseModel]] = {
    StrategyId.ALLOWLIST: AllowlistConfig,
    StrategyId.REPUTATION: ReputationConfig,
}


def parse_strategy_config(strategy_id: str, raw: object) -> StrategyConfig:
    """Validate a raw per-strategy blob against the schema registered for that id."""
    try:
        model = STRATEGY_CONFIG_MODELS[StrategyId(strategy_id)]
    except ValueError:
        raise ValueError(f"no configuration schema for strategy {strategy_id!r}") from None

    if isinstance(raw, model):
        return raw  # type: ignore[return-value]
    if raw is None:
        return model()  # type: ignore[return-value]
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    return model.model_validate(raw)  # type: ignore[return-value]


# ------------------------------------------------------------------------------
# Strategy results
# ------------------------------------------------------------------------------


class AccessOutcome(StrEnum):
    ALLOWED = "allowed"
    DENIED = "denied"
    PENDING = "pending"


class RequiredAction(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    type: ActionType
    instructions: str
    action_url: str | None = None


class ParticipationProgress(BaseModel):
    """Where the user stands on a resource, as reported by the eligibility service."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG
    has_started: bool = False
    has_completed: bool = False


class AccessCheckResult(BaseModel):
    """Verdict of one strategy for one user/resource pair."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG
    allowed: bool
    reason: str | None = None
    requires_action: RequiredAction | None = None
    score: float | None = None
    # None when the verdict was reached without a service response.
    progress: ParticipationProgress | None = None

    @model_validator(mode="after")
    def _allowed_results_carry_no_remediation(self) -> Self:
        if self.allowed and self.requires_action is not None:
            raise ValueError("an allowed result cannot require a remediation action")
        return self

    @property
    def outcome(self) -> AccessOutcome:
        return AccessOutcome.ALLOWED if self.allowed else AccessOutcome.DENIED

    @classmethod
    def allow(cls, *, score: float | None = None) -> AccessCheckResult:
        return cls(allowed=True, score=score)

    @classmethod
    def deny(
        cls,
        reason: str,
        *,
        action: RequiredAction | None = None,
        score: float | None = None,
    ) -> AccessCheckResult:
        return cls(allowed=False, reason=reason, requires_action=action, score=score)


class StrategyResult(BaseModel):
    model_config = _WIRE_CONTRACT_CONFIG

    passed: bool
    reason: str | None = None
    score: float | None = None
    points: float | None = None
    requires_humanity_verification: bool = Field(
        default=False,
        validation_alias=AliasChoices("requires_humanity_verification", "requiresHumanityVerification"),
    )

    @property
    def is_actionable(self) -> bool:
        return not self.passed and (self.requires_humanity_verification or self.score is not None)


class EligibilityResponse(BaseModel):
    """Payload returned by the eligibility service for one wallet/resource pair."""

    model_config = _WIRE_CONTRACT_CONFIG

    is_eligible: bool = Field(validation_alias=AliasChoices("is_eligible", "isEligible"))
    has_started: bool = Field(default=False, validation_alias=AliasChoices("has_started", "hasStarted"))
    has_completed: bool = Field(default=False, validation_alias=AliasChoices("has_completed", "hasCompleted"))
    reason: str | None = None
    access_strategies: dict[str, StrategyResult] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("access_strategies", "accessStrategies"),
    )

    @field_validator("access_strategies", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @classmethod
    def coerce(cls, payload: EligibilityResponse | Mapping[str, Any]) -> EligibilityResponse:
        if isinstance(payload, cls):
            return payload
        return cls.model_validate(payload)


# ------------------------------------------------------------------------------
# Users and resources
# ------------------------------------------------------------------------------


class UserRole(StrEnum):
    RESPONDENT = "respondent"
    ADMIN = "admin"


class User(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    id: str
    wallet_address: str | None = None
    role: str = UserRole.RESPONDENT.value

    @field_validator("wallet_address", mode="before")
    @classmethod
    def _blank_address_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value


class ResourceType(StrEnum):
    STANDARD = "standard"
    PREDICTION = "prediction"

    @property
    def is_time_boxed(self) -> bool:
        return self is ResourceType.PREDICTION


class ResourceAccessConfig(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG

    strategy_ids: tuple[str, ...] = ()
    combine_mode: CombineMode = CombineMode.AND
    per_strategy_config: dict[str, StrategyConfig] = Field(default_factory=dict)

    @field_validator("strategy_ids")
    @classmethod
    def _unique_strategy_ids(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(value)) != len(value):
            raise ValueError("strategy_ids must be unique")
        return value

    @field_validator("per_strategy_config", mode="before")
    @classmethod
    def _typed_strategy_configs(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValueError("per_strategy_config must be a mapping of strategy id to config")
        return {str(key): parse_strategy_config(str(key), raw) for key, raw in value.items()}

    def config_for(self, strategy_id: str) -> StrategyConfig | None:
        return self.per_strategy_config.get(strategy_id)


class Resource(BaseModel):
    """A protected survey as seen by the access layer."""

    model_config = _IMMUTABLE_CONTRACT_CONFIG

    id: str
    name: str = ""
    resource_type: ResourceType = ResourceType.STANDARD
    start_at_iso: str | None = None
    end_at_iso: str | None = None
    access: ResourceAccessConfig = Field(default_factory=ResourceAccessConfig)
    allowlist: tuple[str, ...] | None = None


# ------------------------------------------------------------------------------
# Aggregate eligibility
# ------------------------------------------------------------------------------


class EligibilityState(BaseModel):
    model_config = _WIRE_CONTRACT_CONFIG

    is_eligible: bool = Field(validation_alias=AliasChoices("is_eligible", "isEligible"))
    has_started: bool = Field(default=False, validation_alias=AliasChoices("has_started", "hasStarted"))
    has_completed: bool = Field(default=False, validation_alias=AliasChoices("has_completed", "hasCompleted"))
    reason: str | None = None
    per_strategy_results: dict[str, StrategyResult] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("per_strategy_results", "perStrategyResults", "accessStrategies"),
    )

    @classmethod
    def from_response(cls, response: EligibilityResponse | Mapping[str, Any]) -> EligibilityState:
        payload = EligibilityResponse.coerce(response)
        return cls(
            is_eligible=payload.is_eligible,
            has_started=payload.has_started,
            has_completed=payload.has_completed,
            reason=None if payload.is_eligible else payload.reason,
            per_strategy_results=dict(payload.access_strategies),
        )

    def failed_strategies(self) -> list[str]:
        return [key for key, result in self.per_strategy_results.items() if not result.passed]


# ------------------------------------------------------------------------------
# Phase inputs / UI directives
# ------------------------------------------------------------------------------


class AdminUser(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)
    role: str
    wallet_address: str | None = Field(
        default=None, validation_alias=AliasChoices("wallet_address", "walletAddress")
    )


class AdminAuthInput(BaseModel):
    """Snapshot of every signal the admin gate depends on."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    initialized: bool = False
    loading: bool = False
    is_connected: bool = Field(default=False, validation_alias=AliasChoices("is_connected", "isConnected"))
    is_authenticated: bool = Field(
        default=False, validation_alias=AliasChoices("is_authenticated", "isAuthenticated")
    )
    is_creating_session: bool = Field(
        default=False, validation_alias=AliasChoices("is_creating_session", "isCreatingSession")
    )
    auth_attempt_failed: bool = Field(
        default=False, validation_alias=AliasChoices("auth_attempt_failed", "authAttemptFailed")
    )
    user: AdminUser | None = None
    connected_address: str | None = Field(
        default=None, validation_alias=AliasChoices("connected_address", "connectedAddress")
    )
    admin_role: str = Field(default=UserRole.ADMIN.value, validation_alias=AliasChoices("admin_role", "adminRole"))


class ParticipationInput(BaseModel):
    """Snapshot of every signal the resource-action button depends on.

    ``now_iso`` is part of the snapshot so that resolution stays a pure function
    of its input; callers that do not pin it get the construction time.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    resource_loaded: bool = Field(default=False, validation_alias=AliasChoices("resource_loaded", "surveyLoaded"))
    resource_type: ResourceType = Field(
        default=ResourceType.STANDARD, validation_alias=AliasChoices("resource_type", "surveyType")
    )
    start_at_iso: str | None = Field(default=None, validation_alias=AliasChoices("start_at_iso", "startDate"))
    end_at_iso: str | None = Field(default=None, validation_alias=AliasChoices("end_at_iso", "endDate"))
    now_iso: str = Field(default_factory=_now_iso, validation_alias=AliasChoices("now_iso", "now"))

    eligibility: EligibilityState | None = None
    is_eligibility_fetching: bool = Field(
        default=False, validation_alias=AliasChoices("is_eligibility_fetching", "isEligibilityFetching")
    )
    is_eligibility_error: bool = Field(
        default=False, validation_alias=AliasChoices("is_eligibility_error", "isEligibilityError")
    )

    is_connected: bool = Field(default=False, validation_alias=AliasChoices("is_connected", "isConnected"))
    has_address: bool = Field(default=False, validation_alias=AliasChoices("has_address", "hasAddress"))
    is_authenticated: bool = Field(
        default=False, validation_alias=AliasChoices("is_authenticated", "isAuthenticated")
    )
    is_auth_loading: bool = Field(default=False, validation_alias=AliasChoices("is_auth_loading", "isAuthLoading"))
    verifying_strategy_ids: frozenset[str] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("verifying_strategy_ids", "verifyingStrategyIds"),
    )


class SubmissionPhaseConfig(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    show_overlay: bool
    overlay_message: str | None
    is_blocking: bool


class ButtonDirective(BaseModel):
    model_config = _IMMUTABLE_CONTRACT_CONFIG
    text: str
    disabled: bool
    loading: bool
