# survey_access/settings.py
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from survey_access.contracts import AdminAuthInput, StrategyId
from survey_access.retry import RetryTimeoutPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "SURVEYGATE_"


class AccessSettings(BaseModel):
    """Tunables for strategy calls. Times are in milliseconds."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    allowlist_timeout_ms: float = Field(default=5000, gt=0)
    reputation_timeout_ms: float = Field(default=10000, gt=0)
    retry_max_attempts: int = Field(default=3, ge=1)
    allowlist_base_delay_ms: float = Field(default=500, ge=0)
    reputation_base_delay_ms: float = Field(default=1000, ge=0)
    retry_max_delay_ms: float = Field(default=10000, ge=0)
    retry_jitter_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    admin_role: str = Field(default="admin", min_length=1)

    def policy_for(self, strategy_id: str) -> RetryTimeoutPolicy:
        if strategy_id == StrategyId.REPUTATION.value:
            timeout_ms, base_delay_ms = self.reputation_timeout_ms, self.reputation_base_delay_ms
        else:
            timeout_ms, base_delay_ms = self.allowlist_timeout_ms, self.allowlist_base_delay_ms
        return RetryTimeoutPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay_ms=base_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            timeout_ms=timeout_ms,
            jitter_ratio=self.retry_jitter_ratio,
        )

    def admin_auth_input(self, signals: Mapping[str, Any]) -> AdminAuthInput:
        """Admin-gate snapshot whose role requirement defaults to the configured ``admin_role``."""
        if "admin_role" in signals or "adminRole" in signals:
            return AdminAuthInput.model_validate(signals)
        return AdminAuthInput.model_validate({**signals, "admin_role": self.admin_role})


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> AccessSettings:
    """
    Build settings from ``SURVEYGATE_*`` variables.

    Blank values are ignored; a value that fails validation falls back to the
    field default rather than aborting startup.
    """
    env = os.environ if environ is None else environ
    defaults = AccessSettings()
    overrides: dict[str, Any] = {}

    for name in AccessSettings.model_fields:
        raw = str(env.get(ENV_PREFIX + name.upper(), "")).strip()
        if not raw:
            continue
        try:
            AccessSettings.model_validate({name: raw})
        except ValidationError:
            logger.warning(
                "[Settings] Ignoring invalid %s%s=%r, using %r",
                ENV_PREFIX,
                name.upper(),
                raw,
                getattr(defaults, name),
            )
            continue
        overrides[name] = raw

    return AccessSettings.model_validate(overrides)
