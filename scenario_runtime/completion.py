"""Resolve-once completion primitive shared by every calling convention."""

from __future__ import annotations

import asyncio
import inspect
import threading
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from .errors import StepFailure, StepPending
from .status import Status

LOGGER = structlog.get_logger("scenario_runtime")


class _PendingMarker:
    """Singleton returned or signalled by a body that is not implemented yet."""

    _instance: Optional["_PendingMarker"] = None

    def __new__(cls) -> "_PendingMarker":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PENDING"

    def __reduce__(self) -> str:
        return "PENDING"


PENDING = _PendingMarker()


@dataclass(frozen=True)
class Signal:
    """Completion reported by a body: a status and, for failures, the error."""

    status: Status
    error: Optional[BaseException] = None

    @classmethod
    def passed(cls) -> "Signal":
        return cls(Status.PASSED)

    @classmethod
    def failed(cls, error: object) -> "Signal":
        if not isinstance(error, BaseException):
            error = StepFailure(str(error), reason=error)
        return cls(Status.FAILED, error)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "Signal":
        if isinstance(exc, StepPending):
            return cls(Status.PENDING, exc)
        return cls.failed(exc)

    @classmethod
    def from_value(cls, value: Any) -> "Signal":
        """Interpret what a body returned or resolved to."""

        if value is PENDING:
            return cls(Status.PENDING)
        if isinstance(value, BaseException):
            return cls.from_exception(value)
        return cls.passed()


class OneShot:
    """Accepts the first :class:`Signal` and ignores every later one.

    ``resolve`` may be called from any thread; the signal is delivered to the
    owning event loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._future: asyncio.Future[Signal] = loop.create_future()
        self._lock = threading.Lock()
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    def resolve(self, signal: Signal) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
        if _running_loop() is self._loop:
            self._deliver(signal)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._deliver, signal)
        return True

    def _deliver(self, signal: Signal) -> None:
        if not self._future.done():
            self._future.set_result(signal)

    async def wait(self, timeout: Optional[float] = None, *, on_timeout: Signal | None = None) -> Signal:
        """Wait for the first signal; past ``timeout`` settle with ``on_timeout``."""

        await asyncio.wait({self._future}, timeout=timeout)
        if not self._future.done() and on_timeout is not None:
            self.resolve(on_timeout)
        return await self._future


class Completion:
    """Callback handed to callback-style bodies.

    ``callback()`` passes, ``callback(PENDING)`` or ``callback(None, PENDING)``
    marks the unit pending, anything else in the first position fails it.
    Only the first call counts.
    """

    def __init__(self, shot: OneShot, *, name: str) -> None:
        self._shot = shot
        self._name = name

    def __call__(self, error: Any = None, signal: Any = None) -> None:
        if error is PENDING or (error is None and signal is PENDING):
            outcome = Signal(Status.PENDING)
        elif error is None:
            outcome = Signal.passed()
        else:
            outcome = Signal.failed(error)
        if not self._shot.resolve(outcome):
            LOGGER.debug("late_completion_discarded", unit=self._name, status=outcome.status.value)

    def pending(self) -> None:
        self(PENDING)


def settle_from_future(shot: OneShot, name: str, future: asyncio.Future[Any]) -> None:
    """Done-callback feeding an awaitable body's result into ``shot``."""

    if future.cancelled():
        outcome = Signal.failed(StepFailure(f"'{name}' was cancelled"))
    elif future.exception() is not None:
        outcome = Signal.from_exception(future.exception())
    else:
        outcome = Signal.from_value(future.result())
    if not shot.resolve(outcome):
        LOGGER.debug("late_completion_discarded", unit=name, status=outcome.status.value)


def close_awaitable(value: Any) -> None:
    """Close an awaitable that will never be awaited."""

    if inspect.iscoroutine(value):
        value.close()
    elif isinstance(value, asyncio.Future):
        value.cancel()


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
