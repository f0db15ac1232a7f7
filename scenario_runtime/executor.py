"""Scenario execution engine."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

import structlog

from .api import Scenario
from .attachments import AttachmentStore
from .config import RuntimeSettings, effective_timeout
from .errors import StepAmbiguous, StepUndefined
from .hooks import Hook, HookPhase, HookRegistry
from .models import (
    FailureDetail,
    ScenarioNode,
    ScenarioResult,
    StepDefinitionMatch,
    StepNode,
    UnitKind,
    UnitOutcome,
)
from .status import SeverityOrder, Status
from .step_runner import StepRunner
from .world import World, WorldFactory

LOGGER = structlog.get_logger("scenario_runtime")


class StepMatcher(Protocol):
    """Resolves a step to the step definitions whose pattern matches its text."""

    def match(self, step: StepNode) -> Sequence[StepDefinitionMatch]: ...


class RunListener(Protocol):
    """Reporting collaborator notified as units and scenarios finish."""

    def unit_finished(self, outcome: UnitOutcome) -> None: ...

    def scenario_finished(self, scenario: Scenario) -> None: ...


class ExecutorState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING_BEFORE_HOOKS = "running_before_hooks"
    RUNNING_STEPS = "running_steps"
    RUNNING_AFTER_HOOKS = "running_after_hooks"
    COMPLETED = "completed"


_STATE_SEQUENCE = list(ExecutorState)


@dataclass(frozen=True)
class Continuing:
    pass


@dataclass(frozen=True)
class Halted:
    """Later steps are skipped because ``reason`` did not pass."""

    reason: UnitOutcome


Flow = Union[Continuing, Halted]
CONTINUING = Continuing()


class ScenarioRecorder:
    """Outcomes collected while a scenario runs; frozen into a result at the end."""

    def __init__(self, severity: Optional[SeverityOrder] = None) -> None:
        self._severity = severity or SeverityOrder()
        self._outcomes: list[UnitOutcome] = []

    def record(self, outcome: UnitOutcome) -> None:
        self._outcomes.append(outcome)

    @property
    def outcomes(self) -> tuple[UnitOutcome, ...]:
        return tuple(self._outcomes)

    @property
    def status(self) -> Status:
        return self._severity.worst(outcome.status for outcome in self._outcomes)

    @property
    def failure(self) -> Optional[FailureDetail]:
        verdict = self.status
        for outcome in self._outcomes:
            if outcome.status is verdict and outcome.failure is not None:
                return outcome.failure
        return None

    def freeze(
        self,
        *,
        attachments: AttachmentStore,
        started_at: datetime,
        finished_at: datetime,
        duration_ms: float,
    ) -> ScenarioResult:
        return ScenarioResult(
            status=self.status,
            failure=self.failure,
            outcomes=self.outcomes,
            attachments=attachments.attachments,
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=round(duration_ms, 3),
        )


class ScenarioExecutor:
    """Runs one scenario: before hooks, steps bracketed by step hooks, after hooks.

    Once a unit does not pass, remaining steps are recorded as skipped without
    being invoked. After hooks always run once a world exists. Failures,
    including a failing world factory, never escape ``execute``;
    they end up in the returned scenario's result.
    """

    def __init__(
        self,
        scenario: ScenarioNode,
        *,
        matcher: StepMatcher,
        hooks: Optional[HookRegistry] = None,
        settings: Optional[RuntimeSettings] = None,
        world_factory: WorldFactory = World,
        world_parameters: Optional[Mapping[str, Any]] = None,
        listeners: Sequence[RunListener] = (),
    ) -> None:
        self._node = scenario
        self._matcher = matcher
        self._hooks = hooks or HookRegistry()
        self._settings = settings or RuntimeSettings()
        self._world_factory = world_factory
        self._world_parameters = dict(world_parameters or {})
        self._listeners = tuple(listeners)
        self._runner = StepRunner()
        self._recorder = ScenarioRecorder(self._settings.severity)
        self._attachments = AttachmentStore()
        self._live = Scenario(scenario, self._recorder, self._attachments)
        self._state = ExecutorState.NOT_STARTED
        self._logger = LOGGER.bind(scenario=scenario.name, uri=scenario.uri)

    @property
    def state(self) -> ExecutorState:
        return self._state

    @property
    def scenario(self) -> Scenario:
        """Live view of the running scenario."""

        return self._live

    def run(self) -> Scenario:
        """Execute in a fresh event loop."""

        return asyncio.run(self.execute())

    async def execute(self) -> Scenario:
        if self._state is not ExecutorState.NOT_STARTED:
            raise RuntimeError(f"Scenario '{self._node.name}' has already been executed")

        tags = self._node.tags
        started_at = datetime.now(timezone.utc)
        timer = time.perf_counter()
        self._logger.info("scenario_started", steps=len(self._node.steps), tags=list(tags))

        self._advance(ExecutorState.RUNNING_BEFORE_HOOKS)
        world, flow = self._build_world()
        world_ready = isinstance(flow, Continuing)
        for hook in self._hooks.for_scenario(HookPhase.BEFORE, tags):
            if isinstance(flow, Halted):
                self._logger.debug("hook_skipped", hook=hook.name, phase=hook.phase.value)
                continue
            outcome = await self._run_hook(hook, world, UnitKind.BEFORE)
            if outcome.status is not Status.PASSED:
                flow = Halted(outcome)

        self._advance(ExecutorState.RUNNING_STEPS)
        for index, step in enumerate(self._node.steps):
            flow = await self._run_step(world, index, step, flow)

        self._advance(ExecutorState.RUNNING_AFTER_HOOKS)
        for hook in self._hooks.for_scenario(HookPhase.AFTER, tags):
            if not world_ready:
                self._logger.debug("hook_skipped", hook=hook.name, phase=hook.phase.value)
                continue
            await self._run_hook(hook, world, UnitKind.AFTER)

        await self._attachments.drain(effective_timeout(self._settings.hook_timeout))
        self._attachments.close()
        result = self._recorder.freeze(
            attachments=self._attachments,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration_ms=(time.perf_counter() - timer) * 1000,
        )
        self._advance(ExecutorState.COMPLETED)

        scenario = Scenario(self._node, result, self._attachments)
        self._logger.info(
            "scenario_finished",
            status=result.status.value,
            steps=len(result.step_outcomes),
            attachments=len(result.attachments),
            duration_ms=result.duration_ms,
        )
        for listener in self._listeners:
            listener.scenario_finished(scenario)
        return scenario

    def _build_world(self) -> tuple[Any, Flow]:
        """Create the world; a failing factory is recorded as a failed before unit."""

        started_at = datetime.now(timezone.utc)
        try:
            return self._world_factory(self._live, self._world_parameters), CONTINUING
        except Exception as exc:
            outcome = UnitOutcome(
                kind=UnitKind.BEFORE,
                name=getattr(self._world_factory, "__name__", "world_factory"),
                status=Status.FAILED,
                failure=FailureDetail.from_exception(exc),
                started_at=started_at,
            )
            return None, Halted(self._record(outcome))

    async def _run_step(self, world: Any, index: int, step: StepNode, flow: Flow) -> Flow:
        name = f"{step.keyword.strip()} {step.text}".strip()
        if isinstance(flow, Halted):
            self._record(self._terminal(name, index, Status.SKIPPED))
            return flow

        try:
            matches = list(self._matcher.match(step))
        except Exception as exc:
            self._logger.warning("step_match_failed", step=name, error=str(exc))
            return Halted(self._record(self._terminal(name, index, Status.FAILED, exc)))
        if not matches:
            undefined = StepUndefined(step.text)
            return Halted(self._record(self._terminal(name, index, Status.UNDEFINED, undefined)))
        if len(matches) > 1:
            ambiguous = StepAmbiguous(step.text, [match.describe() for match in matches])
            return Halted(self._record(self._terminal(name, index, Status.AMBIGUOUS, ambiguous)))

        tags = self._node.tags
        for hook in self._hooks.for_scenario(HookPhase.BEFORE_STEP, tags):
            outcome = await self._run_hook(hook, world, UnitKind.BEFORE_STEP, step_index=index)
            if outcome.status is not Status.PASSED:
                self._record(self._terminal(name, index, Status.SKIPPED))
                return Halted(outcome)

        definition = matches[0]
        timeout = definition.timeout if definition.timeout is not None else self._settings.step_timeout
        outcome = self._record(
            await self._runner.run(
                definition.body,
                world,
                definition.arguments,
                kind=UnitKind.STEP,
                name=name,
                timeout=timeout,
                step_index=index,
            )
        )
        next_flow: Flow = Halted(outcome) if outcome.status.halts_scenario else flow

        for hook in self._hooks.for_scenario(HookPhase.AFTER_STEP, tags):
            hook_outcome = await self._run_hook(hook, world, UnitKind.AFTER_STEP, step_index=index)
            if hook_outcome.status is not Status.PASSED and isinstance(next_flow, Continuing):
                next_flow = Halted(hook_outcome)
        return next_flow

    async def _run_hook(
        self,
        hook: Hook,
        world: Any,
        kind: UnitKind,
        *,
        step_index: Optional[int] = None,
    ) -> UnitOutcome:
        timeout = hook.timeout if hook.timeout is not None else self._settings.hook_timeout
        outcome = await self._runner.run(
            hook.body,
            world,
            (self._live,),
            kind=kind,
            name=hook.name,
            timeout=timeout,
            step_index=step_index,
        )
        return self._record(outcome)

    def _terminal(
        self,
        name: str,
        index: int,
        status: Status,
        error: Optional[BaseException] = None,
    ) -> UnitOutcome:
        """Outcome for a step whose body is never invoked."""

        return UnitOutcome(
            kind=UnitKind.STEP,
            name=name,
            status=status,
            failure=FailureDetail.from_exception(error) if error is not None else None,
            started_at=datetime.now(timezone.utc),
            step_index=index,
        )

    def _record(self, outcome: UnitOutcome) -> UnitOutcome:
        self._recorder.record(outcome)
        log = self._logger.warning if outcome.status.halts_scenario else self._logger.info
        log(
            "unit_finished",
            kind=outcome.kind.value,
            unit=outcome.name,
            status=outcome.status.value,
            duration_ms=outcome.duration_ms,
            error=outcome.failure.message if outcome.failure else None,
        )
        for listener in self._listeners:
            listener.unit_finished(outcome)
        return outcome

    def _advance(self, state: ExecutorState) -> None:
        if _STATE_SEQUENCE.index(state) != _STATE_SEQUENCE.index(self._state) + 1:
            raise RuntimeError(f"Invalid executor transition {self._state.value} -> {state.value}")
        self._state = state
