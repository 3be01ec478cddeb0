# survey_access/stable_ids.py
from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any, Union

from pydantic import BaseModel

from survey_access.contracts import Resource, User, normalize_address


def _sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def _canon(obj: Any) -> str:
    """
    Canonical JSON string (stable across runs) for hashing.
    """
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=_json_default)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def derive_snapshot_id(snapshot: Union[BaseModel, Mapping[str, Any]], *, prefix: str = "snap") -> str:
    """
    Deterministic id for a phase-input snapshot.

    Two snapshots that resolve identically by construction (same field values)
    share an id regardless of key order.
    """
    payload = snapshot.model_dump(mode="json") if isinstance(snapshot, BaseModel) else dict(snapshot)
    return f"{prefix}_" + _sha256_hex(_canon(payload))


def derive_check_key(user: User, resource: Resource) -> str:
    """Key for "one eligibility evaluation per (user, resource) pair"."""
    key_obj = {
        "user_id": user.id,
        "wallet": normalize_address(user.wallet_address),
        "resource_id": resource.id,
    }
    return "chk_" + _sha256_hex(_canon(key_obj))
