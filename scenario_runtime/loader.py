"""Loading of pre-parsed scenario documents."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from .models import ScenarioNode


def load_scenarios(path: Path) -> list[ScenarioNode]:
    """Load every scenario of a parsed feature document.

    The YAML mapping holds ``uri``, a ``feature`` block (``name``, ``tags``)
    and a ``scenarios`` list. Feature tags are inherited by each scenario.
    """

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Scenario document {path} must contain a mapping")
    feature = data.get("feature") or {}
    if not isinstance(feature, dict):
        raise ValueError(f"Scenario document {path} has a malformed 'feature' block")
    uri = data.get("uri") or str(path)
    inherited = feature.get("tags") or []

    scenarios = []
    for raw in data.get("scenarios") or []:
        if not isinstance(raw, dict):
            raise ValueError(f"Scenario document {path} contains a non-mapping scenario entry")
        payload: dict[str, Any] = {"uri": uri, **raw}
        payload["tags"] = _merge_tags(inherited, raw.get("tags") or [])
        scenarios.append(ScenarioNode.model_validate(payload))
    return scenarios


def load_scenario(path: Path, name: Optional[str] = None) -> ScenarioNode:
    """Load one scenario: the named one, or the only one in the document."""

    scenarios = load_scenarios(path)
    if name is not None:
        for scenario in scenarios:
            if scenario.name == name:
                return scenario
        raise ValueError(f"Scenario {name!r} not found in {path}")
    if len(scenarios) != 1:
        raise ValueError(f"Scenario document {path} holds {len(scenarios)} scenarios; pass a name")
    return scenarios[0]


def _merge_tags(inherited: Iterable[str], own: Iterable[str]) -> list[str]:
    merged: list[str] = []
    for tag in [*inherited, *own]:
        if tag not in merged:
            merged.append(tag)
    return merged
