"""
surveygate distribution import namespace.

Re-exports the public surface of the core ``survey_access`` package for
convenience.
"""

from importlib.metadata import PackageNotFoundError, version

# src/surveygate/__init__.py
from survey_access.contracts import (  # noqa: F401
    AccessCheckResult,
    AccessOutcome,
    AdminAuthInput,
    CombineMode,
    EligibilityState,
    ParticipationInput,
    ParticipationProgress,
    Resource,
    ResourceAccessConfig,
    ResourceType,
    User,
)
from survey_access.evaluator import CombinedAccessEvaluator, EligibilityCheckSession  # noqa: F401
from survey_access.phase_config import ButtonHandlers, get_button_config  # noqa: F401
from survey_access.phases import (  # noqa: F401
    AdminAuthPhase,
    ParticipationPhase,
    SubmissionPhase,
    advance_submission_phase,
    get_submission_phase_config,
    resolve_admin_auth_phase,
    resolve_participation_phase,
)
from survey_access.registry import StrategyRegistry, build_default_registry  # noqa: F401
from survey_access.retry import RetryTimeoutPolicy  # noqa: F401
from survey_access.settings import AccessSettings, settings_from_env  # noqa: F401

try:
    from ._version import __version__  # canonical
except ImportError:  # pragma: no cover - fallback for editable/local non-built environments
    try:
        __version__ = version("surveygate")
    except PackageNotFoundError:
        __version__ = "0+unknown"

__all__ = [
    "AccessCheckResult",
    "AccessOutcome",
    "AccessSettings",
    "AdminAuthInput",
    "AdminAuthPhase",
    "ButtonHandlers",
    "CombineMode",
    "CombinedAccessEvaluator",
    "EligibilityCheckSession",
    "EligibilityState",
    "ParticipationInput",
    "ParticipationPhase",
    "ParticipationProgress",
    "Resource",
    "ResourceAccessConfig",
    "ResourceType",
    "RetryTimeoutPolicy",
    "StrategyRegistry",
    "SubmissionPhase",
    "User",
    "__version__",
    "advance_submission_phase",
    "build_default_registry",
    "get_button_config",
    "get_submission_phase_config",
    "resolve_admin_auth_phase",
    "resolve_participation_phase",
    "settings_from_env",
]
