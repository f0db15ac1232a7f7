"""Scenario AST, step matches and runtime result models."""

from __future__ import annotations

import traceback
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import StepAmbiguous, StepTimeout, StepUndefined
from .status import Status


class Location(BaseModel):
    """Source position of a scenario in its feature document."""

    model_config = ConfigDict(frozen=True)

    uri: str = ""
    line: int = 0

    def __str__(self) -> str:
        return f"{self.uri}:{self.line}"


class StepNode(BaseModel):
    """Single declarative step as produced by the document parser."""

    model_config = ConfigDict(frozen=True)

    keyword: str = ""
    text: str
    line: int = 0
    argument: Any = None


class ScenarioNode(BaseModel):
    """Parsed scenario; ``tags`` already include tags inherited from the feature."""

    model_config = ConfigDict(frozen=True)

    keyword: str = "Scenario"
    name: str
    description: str = ""
    uri: str = ""
    line: int = 0
    tags: tuple[str, ...] = ()
    steps: tuple[StepNode, ...] = ()

    @property
    def location(self) -> Location:
        return Location(uri=self.uri, line=self.line)


class StepDefinitionMatch(BaseModel):
    """A step definition resolved for one step, with its extracted arguments."""

    model_config = ConfigDict(frozen=True)

    body: Callable[..., Any]
    arguments: tuple[Any, ...] = ()
    pattern: Optional[str] = None
    location: Optional[str] = None
    timeout: Optional[float] = None

    def describe(self) -> str:
        label = self.pattern or getattr(self.body, "__qualname__", repr(self.body))
        return f"{label} ({self.location})" if self.location else label


class UnitKind(str, Enum):
    STEP = "step"
    BEFORE = "before"
    AFTER = "after"
    BEFORE_STEP = "before_step"
    AFTER_STEP = "after_step"


class FailureKind(str, Enum):
    FAILURE = "failure"
    TIMEOUT = "timeout"
    UNDEFINED = "undefined"
    AMBIGUOUS = "ambiguous"


class FailureDetail(BaseModel):
    """What went wrong in one unit; ``error`` keeps the original exception."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: FailureKind = FailureKind.FAILURE
    message: str
    error: Optional[BaseException] = Field(default=None, exclude=True, repr=False)
    traceback: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "FailureDetail":
        if isinstance(exc, StepTimeout):
            kind = FailureKind.TIMEOUT
        elif isinstance(exc, StepUndefined):
            kind = FailureKind.UNDEFINED
        elif isinstance(exc, StepAmbiguous):
            kind = FailureKind.AMBIGUOUS
        else:
            kind = FailureKind.FAILURE
        tb_text = None
        if exc.__traceback__ is not None:
            tb_text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(kind=kind, message=str(exc) or type(exc).__name__, error=exc, traceback=tb_text)


class UnitOutcome(BaseModel):
    """Result of one step or hook execution attempt."""

    model_config = ConfigDict(frozen=True)

    kind: UnitKind
    name: str
    status: Status
    failure: Optional[FailureDetail] = None
    started_at: datetime
    duration_ms: float = 0.0
    step_index: Optional[int] = None


class Attachment(BaseModel):
    """Mime-typed payload captured while a scenario runs."""

    model_config = ConfigDict(frozen=True, ser_json_bytes="base64")

    mime_type: str
    data: str | bytes


class ScenarioResult(BaseModel):
    """Aggregated, read-only outcome of one scenario run."""

    model_config = ConfigDict(frozen=True)

    status: Status
    failure: Optional[FailureDetail] = None
    outcomes: tuple[UnitOutcome, ...] = ()
    attachments: tuple[Attachment, ...] = ()
    started_at: datetime
    finished_at: datetime
    duration_ms: float

    @property
    def step_outcomes(self) -> tuple[UnitOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.kind is UnitKind.STEP)

    def as_serializable(self) -> dict[str, Any]:
        """Return a JSON friendly payload."""

        return self.model_dump(mode="json")
