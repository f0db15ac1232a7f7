"""Event log and summary artifacts for reporting collaborators."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from .api import Scenario
from .models import ScenarioResult, UnitOutcome


class EventLogWriter:
    """Run listener writing one JSON line per finished unit.

    When ``summary_file`` is given, the serialized scenario is written there
    once the run completes.
    """

    def __init__(self, events_file: Path, *, summary_file: Optional[Path] = None) -> None:
        self.events_file = events_file
        self.summary_file = summary_file
        events_file.parent.mkdir(parents=True, exist_ok=True)
        events_file.write_text("", encoding="utf-8")

    def unit_finished(self, outcome: UnitOutcome) -> None:
        with self.events_file.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(outcome.model_dump(mode="json")) + "\n")

    def scenario_finished(self, scenario: Scenario) -> None:
        if self.summary_file is not None:
            write_summary(self.summary_file, scenario)


def serialize_scenario(scenario: Scenario) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "keyword": scenario.keyword,
        "name": scenario.name,
        "description": scenario.description,
        "uri": scenario.uri,
        "line": scenario.line,
        "tags": list(scenario.tags),
    }
    result = scenario.result
    if isinstance(result, ScenarioResult):
        payload["result"] = result.as_serializable()
    else:
        payload["result"] = {"status": scenario.status.value}
    return payload


def write_summary(path: Path, scenario: Scenario) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(serialize_scenario(scenario), indent=2), encoding="utf-8")
    return path
