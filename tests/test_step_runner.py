from __future__ import annotations

import asyncio
import threading

import pytest
from pydantic import ValidationError

from scenario_runtime.completion import PENDING
from scenario_runtime.errors import StepFailure, StepPending, StepTimeout
from scenario_runtime.models import FailureKind, UnitKind
from scenario_runtime.status import Status
from scenario_runtime.step_runner import Interface, StepRunner, detect_interface


class Bag:
    pass


async def _run(body, *arguments, timeout=1.0):
    return await StepRunner().run(body, Bag(), arguments, kind=UnitKind.STEP, name="Given a step", timeout=timeout)


@pytest.mark.asyncio
async def test_sync_body_passes() -> None:
    outcome = await _run(lambda world: None)

    assert outcome.status is Status.PASSED
    assert outcome.failure is None
    assert outcome.kind is UnitKind.STEP
    assert outcome.duration_ms >= 0


@pytest.mark.asyncio
@pytest.mark.parametrize("timeout", [0.05, 0])
async def test_defaulted_parameters_keep_a_body_synchronous(timeout) -> None:
    seen = []

    def body(world, retries=3):
        seen.append(retries)

    outcome = await _run(body, timeout=timeout)

    assert outcome.status is Status.PASSED
    assert seen == [3]


@pytest.mark.asyncio
async def test_arguments_follow_the_world() -> None:
    seen = []

    def body(world, quantity, item):
        seen.append((type(world).__name__, quantity, item))

    await _run(body, 3, "apples")

    assert seen == [("Bag", 3, "apples")]


@pytest.mark.asyncio
async def test_sync_raise_fails_with_the_error() -> None:
    error = AssertionError("expected 3 items")

    def body(world):
        raise error

    outcome = await _run(body)

    assert outcome.status is Status.FAILED
    assert outcome.failure.kind is FailureKind.FAILURE
    assert outcome.failure.error is error
    assert outcome.failure.message == "expected 3 items"
    assert "AssertionError" in outcome.failure.traceback


@pytest.mark.asyncio
async def test_returned_error_fails() -> None:
    outcome = await _run(lambda world: ValueError("bad total"))

    assert outcome.status is Status.FAILED
    assert outcome.failure.message == "bad total"


@pytest.mark.asyncio
async def test_returning_pending_marks_pending() -> None:
    outcome = await _run(lambda world: PENDING)

    assert outcome.status is Status.PENDING
    assert outcome.failure is None


@pytest.mark.asyncio
async def test_raising_step_pending_marks_pending() -> None:
    def body(world):
        raise StepPending("checkout flow not written yet")

    outcome = await _run(body)

    assert outcome.status is Status.PENDING


@pytest.mark.asyncio
async def test_callback_without_error_passes() -> None:
    outcome = await _run(lambda world, callback: callback())

    assert outcome.status is Status.PASSED


@pytest.mark.asyncio
async def test_callback_with_error_fails() -> None:
    error = RuntimeError("boom")

    outcome = await _run(lambda world, callback: callback(error))

    assert outcome.status is Status.FAILED
    assert outcome.failure.error is error


@pytest.mark.asyncio
async def test_callback_with_plain_value_fails_with_step_failure() -> None:
    outcome = await _run(lambda world, callback: callback("went wrong"))

    assert outcome.status is Status.FAILED
    assert isinstance(outcome.failure.error, StepFailure)
    assert outcome.failure.error.reason == "went wrong"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "signal",
    [
        lambda callback: callback(PENDING),
        lambda callback: callback(None, PENDING),
        lambda callback: callback.pending(),
    ],
)
async def test_callback_pending_signals(signal) -> None:
    outcome = await _run(lambda world, callback: signal(callback))

    assert outcome.status is Status.PENDING


@pytest.mark.asyncio
async def test_callback_only_first_call_counts() -> None:
    def body(world, callback):
        callback()
        callback(RuntimeError("second call"))

    outcome = await _run(body)

    assert outcome.status is Status.PASSED
    assert outcome.failure is None


@pytest.mark.asyncio
async def test_callback_from_another_thread() -> None:
    def body(world, callback):
        threading.Timer(0.01, callback).start()

    outcome = await _run(body)

    assert outcome.status is Status.PASSED


@pytest.mark.asyncio
async def test_callback_body_returning_awaitable_fails() -> None:
    async def body(world, callback):
        callback()

    outcome = await _run(body)

    assert outcome.status is Status.FAILED
    assert "multiple asynchronous interfaces" in outcome.failure.message


@pytest.mark.asyncio
async def test_awaitable_resolution_passes() -> None:
    async def body(world):
        await asyncio.sleep(0)
        world.total = 42

    outcome = await _run(body)

    assert outcome.status is Status.PASSED


@pytest.mark.asyncio
async def test_awaitable_rejection_fails() -> None:
    async def body(world):
        raise KeyError("sku")

    outcome = await _run(body)

    assert outcome.status is Status.FAILED
    assert isinstance(outcome.failure.error, KeyError)


@pytest.mark.asyncio
async def test_awaitable_resolving_to_pending() -> None:
    async def body(world):
        return PENDING

    outcome = await _run(body)

    assert outcome.status is Status.PENDING


@pytest.mark.asyncio
async def test_stuck_awaitable_times_out_and_is_abandoned() -> None:
    release = asyncio.Event()
    finished = []

    async def body(world):
        await release.wait()
        finished.append(True)

    outcome = await _run(body, timeout=0.02)

    assert outcome.status is Status.FAILED
    assert outcome.failure.kind is FailureKind.TIMEOUT
    assert isinstance(outcome.failure.error, StepTimeout)
    assert "timed out after 0.02 seconds" in outcome.failure.message

    release.set()
    await asyncio.sleep(0.01)
    assert finished == [True]
    assert outcome.status is Status.FAILED


@pytest.mark.asyncio
async def test_late_callback_after_timeout_is_ignored() -> None:
    callbacks = []

    outcome = await _run(lambda world, callback: callbacks.append(callback), timeout=0.02)
    callbacks[0]()
    await asyncio.sleep(0)

    assert outcome.status is Status.FAILED
    assert outcome.failure.kind is FailureKind.TIMEOUT
    with pytest.raises(ValidationError):
        outcome.status = Status.PASSED


@pytest.mark.asyncio
async def test_non_positive_timeout_means_no_deadline() -> None:
    async def body(world):
        await asyncio.sleep(0.02)

    outcome = await _run(body, timeout=0)

    assert outcome.status is Status.PASSED


@pytest.mark.asyncio
async def test_runner_default_timeout_applies() -> None:
    runner = StepRunner(default_timeout=0.01)

    outcome = await runner.run(
        lambda world, callback: None, Bag(), (), kind=UnitKind.BEFORE, name="open browser"
    )

    assert outcome.status is Status.FAILED
    assert outcome.kind is UnitKind.BEFORE
    assert "'open browser' timed out" in outcome.failure.message


def _two(world, callback):
    pass


def _defaulted(world, retries=3):
    return retries


def _callback_with_default(world, callback, retries=3):
    pass


def _varargs(world, *args):
    pass


def _keyword_callback(world, *, callback=None):
    pass


@pytest.mark.parametrize(
    ("body", "supplied", "expected"),
    [
        (lambda world: None, 1, Interface.SYNC),
        (_two, 1, Interface.CALLBACK),
        (_two, 2, Interface.SYNC),
        (_varargs, 1, Interface.SYNC),
        (_keyword_callback, 1, Interface.SYNC),
        (_defaulted, 1, Interface.SYNC),
        (_callback_with_default, 1, Interface.CALLBACK),
        (print, 1, Interface.SYNC),
    ],
)
def test_detect_interface(body, supplied: int, expected: Interface) -> None:
    assert detect_interface(body, supplied) is expected
