"""Executes one step or hook body and resolves it to a single unit outcome."""

from __future__ import annotations

import asyncio
import inspect
import time
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional, Sequence

import structlog

from .completion import Completion, OneShot, Signal, close_awaitable, settle_from_future
from .config import effective_timeout
from .errors import StepFailure, StepTimeout
from .models import FailureDetail, UnitKind, UnitOutcome
from .status import Status

LOGGER = structlog.get_logger("scenario_runtime")

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


class Interface(str, Enum):
    """How a body reports completion."""

    SYNC = "sync"
    CALLBACK = "callback"


def detect_interface(body: Callable[..., Any], supplied: int) -> Interface:
    """A body requiring one positional parameter more than supplied takes a callback."""

    try:
        signature = inspect.signature(body)
    except (TypeError, ValueError):
        return Interface.SYNC
    params = list(signature.parameters.values())
    if any(param.kind is inspect.Parameter.VAR_POSITIONAL for param in params):
        return Interface.SYNC
    required = sum(
        1 for param in params if param.kind in _POSITIONAL and param.default is inspect.Parameter.empty
    )
    if required == supplied + 1:
        return Interface.CALLBACK
    return Interface.SYNC


class StepRunner:
    """Runs bodies against the world, bounded by a timeout.

    Synchronous returns, completion callbacks and awaitables all feed one
    :class:`OneShot`, so whichever signal arrives first is the only one that
    counts. A timed-out body is abandoned rather than cancelled.
    """

    def __init__(self, *, default_timeout: Optional[float] = None) -> None:
        self.default_timeout = default_timeout

    async def run(
        self,
        body: Callable[..., Any],
        world: Any,
        arguments: Sequence[Any] = (),
        *,
        kind: UnitKind,
        name: str,
        timeout: Optional[float] = None,
        step_index: Optional[int] = None,
    ) -> UnitOutcome:
        deadline = effective_timeout(timeout if timeout is not None else self.default_timeout)
        loop = asyncio.get_running_loop()
        shot = OneShot(loop)
        args = (world, *arguments)

        started_at = datetime.now(timezone.utc)
        timer = time.perf_counter()
        self._invoke(body, args, shot, name)
        on_timeout = Signal.failed(StepTimeout(name, deadline)) if deadline is not None else None
        signal = await shot.wait(deadline, on_timeout=on_timeout)
        duration_ms = (time.perf_counter() - timer) * 1000

        failure = FailureDetail.from_exception(signal.error) if signal.error is not None else None
        if signal.status is Status.PENDING:
            failure = None
        outcome = UnitOutcome(
            kind=kind,
            name=name,
            status=signal.status,
            failure=failure,
            started_at=started_at,
            duration_ms=round(duration_ms, 3),
            step_index=step_index,
        )
        LOGGER.debug(
            "unit_resolved",
            kind=kind.value,
            unit=name,
            status=outcome.status.value,
            duration_ms=outcome.duration_ms,
        )
        return outcome

    @staticmethod
    def _invoke(body: Callable[..., Any], args: tuple[Any, ...], shot: OneShot, name: str) -> None:
        interface = detect_interface(body, len(args))
        try:
            if interface is Interface.CALLBACK:
                returned = body(*args, Completion(shot, name=name))
                if inspect.isawaitable(returned):
                    close_awaitable(returned)
                    shot.resolve(
                        Signal.failed(
                            StepFailure(
                                f"'{name}' uses multiple asynchronous interfaces: "
                                "callback and awaitable"
                            )
                        )
                    )
                return
            returned = body(*args)
            if inspect.isawaitable(returned):
                future = asyncio.ensure_future(returned)
                future.add_done_callback(partial(settle_from_future, shot, name))
            else:
                shot.resolve(Signal.from_value(returned))
        except Exception as exc:
            shot.resolve(Signal.from_exception(exc))
