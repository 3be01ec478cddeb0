from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from survey_access.phases import (
    advance_submission_phase,
    resolve_admin_auth_phase,
    resolve_participation_phase,
)
from survey_access.stable_ids import derive_snapshot_id

logger = logging.getLogger(__name__)


def _submission_transition(payload: dict[str, Any]) -> str:
    return advance_submission_phase(
        payload["phase"],
        payload["event"],
        is_last_question=bool(payload.get("is_last_question", False)),
    )


RESOLVERS: dict[str, Callable[[dict[str, Any]], Any]] = {
    "admin_auth": resolve_admin_auth_phase,
    "participation": resolve_participation_phase,
    "submission_transition": _submission_transition,
}


@dataclass(frozen=True)
class CaseExecution:
    case_index: int
    case_id: str
    expected: str
    actual: str

    @property
    def passed(self) -> bool:
        return self.expected == self.actual


@dataclass(frozen=True)
class ScenarioExecution:
    scenario_id: str
    resolver: str
    source: str
    cases: list[CaseExecution]


def load_scenario_packs(packs_dir: Path) -> list[dict[str, Any]]:
    packs: list[dict[str, Any]] = []
    for path in sorted(packs_dir.glob("*.json")):
        payload = json.loads(path.read_text(encoding="utf-8"))
        payload["_source"] = str(path)
        packs.append(payload)
    return packs


def run_scenario(pack: dict[str, Any]) -> ScenarioExecution:
    resolver_name = str(pack["resolver"])
    try:
        resolver = RESOLVERS[resolver_name]
    except KeyError:
        raise ValueError(f"Unknown resolver {resolver_name!r} in scenario {pack.get('scenario_id')!r}") from None

    cases: list[CaseExecution] = []
    for case_index, case in enumerate(pack.get("cases", []), start=1):
        payload = dict(case.get("input", {}))
        actual = str(resolver(payload))
        execution = CaseExecution(
            case_index=case_index,
            case_id=derive_snapshot_id(payload, prefix="case"),
            expected=str(case["expected"]),
            actual=actual,
        )
        if not execution.passed:
            logger.warning(
                "[ScenarioRunner] %s case %d: expected %s, got %s",
                pack["scenario_id"],
                case_index,
                execution.expected,
                execution.actual,
            )
        cases.append(execution)

    return ScenarioExecution(
        scenario_id=str(pack["scenario_id"]),
        resolver=resolver_name,
        source=str(pack.get("_source", "")),
        cases=cases,
    )


def summarize(executions: list[ScenarioExecution]) -> dict[str, float]:
    total = sum(len(execution.cases) for execution in executions)
    passing = sum(1 for execution in executions for case in execution.cases if case.passed)
    clean = sum(1 for execution in executions if all(case.passed for case in execution.cases))

    return {
        "case_count": float(total),
        "case_pass_rate": round(passing / total, 4) if total else 0.0,
        "scenario_pass_rate": round(clean / len(executions), 4) if executions else 0.0,
    }


def run_packs(packs_dir: Path) -> dict[str, Any]:
    executions = [run_scenario(pack) for pack in load_scenario_packs(packs_dir)]
    return {
        "scenarios": [
            {
                "scenario_id": execution.scenario_id,
                "resolver": execution.resolver,
                "source": execution.source,
                "cases": [
                    {
                        "case_index": case.case_index,
                        "case_id": case.case_id,
                        "expected": case.expected,
                        "actual": case.actual,
                        "passed": case.passed,
                    }
                    for case in execution.cases
                ],
            }
            for execution in executions
        ],
        "summary_metrics": summarize(executions),
    }
