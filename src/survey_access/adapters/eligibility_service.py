from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from survey_access.contracts import EligibilityResponse


class EligibilityService(Protocol):
    """Adapter interface for the remote eligibility check of one wallet against one resource."""

    async def check_eligibility(
        self,
        resource_id: str,
        *,
        wallet_address: str,
    ) -> EligibilityResponse | Mapping[str, Any]:
        """Return the eligibility payload; raise on transport or service failure."""
        ...
