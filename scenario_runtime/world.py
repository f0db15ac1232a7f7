"""Scenario-scoped execution context shared by hooks and steps."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from .completion import PENDING

if TYPE_CHECKING:
    from .api import Scenario


class World:
    """Mutable state bag for one scenario run.

    Step and hook bodies receive it as their first argument and may set any
    attribute on it. ``attach`` stores attachments on the running scenario and
    ``pending`` is the marker a body returns or signals to declare itself
    unimplemented.
    """

    pending = PENDING

    def __init__(self, scenario: "Scenario", parameters: Optional[Mapping[str, Any]] = None) -> None:
        self.scenario = scenario
        self.parameters = dict(parameters or {})

    def attach(self, data: Any, mime_type: Optional[str] = None, callback: Optional[Callable[..., Any]] = None):
        return self.scenario.attach(data, mime_type, callback)


WorldFactory = Callable[["Scenario", Mapping[str, Any]], Any]
