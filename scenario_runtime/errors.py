"""Error taxonomy for scenario execution."""

from __future__ import annotations

from typing import Sequence


class ScenarioRuntimeError(Exception):
    """Base class for every error raised by the runtime."""


class StepFailure(ScenarioRuntimeError):
    """A body reported failure with a value that is not an exception."""

    def __init__(self, message: str, *, reason: object = None) -> None:
        super().__init__(message)
        self.reason = reason


class StepTimeout(StepFailure):
    """A body did not complete before its deadline."""

    def __init__(self, name: str, timeout: float) -> None:
        super().__init__(f"'{name}' timed out after {timeout:g} seconds")
        self.timeout = timeout


class StepUndefined(ScenarioRuntimeError):
    """No step definition matches the step text."""

    def __init__(self, text: str) -> None:
        super().__init__(f"Undefined step: {text!r}")
        self.text = text


class StepAmbiguous(ScenarioRuntimeError):
    """More than one step definition matches the step text."""

    def __init__(self, text: str, candidates: Sequence[str]) -> None:
        listing = "\n".join(f"  - {candidate}" for candidate in candidates)
        super().__init__(f"Multiple step definitions match {text!r}:\n{listing}")
        self.text = text
        self.candidates = tuple(candidates)


class StepPending(ScenarioRuntimeError):
    """Raised by a body to declare itself not implemented yet."""


class AttachmentContractViolation(ScenarioRuntimeError, ValueError):
    """``attach`` was called with missing or unsupported arguments."""
