"""Read-only view of a scenario and its result, handed to hooks and reporters."""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from .attachments import AttachmentStore
from .models import Attachment, FailureDetail, Location, ScenarioNode, ScenarioResult
from .status import Status


class ResultView(Protocol):
    @property
    def status(self) -> Status: ...

    @property
    def failure(self) -> Optional[FailureDetail]: ...


class Scenario:
    """Facade over a parsed scenario and its (live or final) result."""

    def __init__(
        self,
        node: ScenarioNode,
        result: ResultView,
        attachments: Optional[AttachmentStore] = None,
    ) -> None:
        self._node = node
        self._result = result
        self._attachments = attachments if attachments is not None else AttachmentStore()

    @property
    def keyword(self) -> str:
        return self._node.keyword

    @property
    def name(self) -> str:
        return self._node.name

    @property
    def description(self) -> str:
        return self._node.description

    @property
    def uri(self) -> str:
        return self._node.uri

    @property
    def line(self) -> int:
        return self._node.line

    @property
    def location(self) -> Location:
        return self._node.location

    @property
    def tags(self) -> tuple[str, ...]:
        """Tags on the scenario, including inherited ones."""

        return self._node.tags

    @property
    def node(self) -> ScenarioNode:
        return self._node

    @property
    def result(self) -> ResultView:
        return self._result

    @property
    def status(self) -> Status:
        return self._result.status

    @property
    def failure(self) -> Optional[FailureDetail]:
        return self._result.failure

    @property
    def exception(self) -> Optional[BaseException]:
        """The exception captured for the failing unit, if any."""

        failure = self._result.failure
        return failure.error if failure is not None else None

    @property
    def attachments(self) -> tuple[Attachment, ...]:
        if isinstance(self._result, ScenarioResult):
            return self._result.attachments
        return self._attachments.attachments

    def is_successful(self) -> bool:
        return self.status is Status.PASSED

    def is_failed(self) -> bool:
        return self.status is Status.FAILED

    def is_pending(self) -> bool:
        return self.status is Status.PENDING

    def is_undefined(self) -> bool:
        return self.status is Status.UNDEFINED

    def is_skipped(self) -> bool:
        return self.status is Status.SKIPPED

    def is_ambiguous(self) -> bool:
        return self.status is Status.AMBIGUOUS

    def attach(
        self,
        data: Any,
        mime_type: Optional[str] = None,
        callback: Optional[Callable[..., Any]] = None,
    ):
        """Attach text, bytes or a stream to this scenario.

        Streams need a ``mime_type`` and a ``callback``, binary data needs a
        ``mime_type`` and text defaults to ``text/plain``. Missing arguments,
        or attaching once the scenario has completed,
        raise :class:`~scenario_runtime.errors.AttachmentContractViolation`.
        """

        return self._attachments.attach(data, mime_type, callback)

    def __repr__(self) -> str:
        return f"Scenario(name={self.name!r}, status={self.status.value})"
