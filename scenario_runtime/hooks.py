"""Hook definitions and the immutable registry handed to every executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Union

TagPredicate = Callable[[frozenset[str]], bool]
TagSelector = Union[str, Iterable[str], TagPredicate, None]


class HookPhase(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    BEFORE_STEP = "before_step"
    AFTER_STEP = "after_step"

    @property
    def is_teardown(self) -> bool:
        return self in {HookPhase.AFTER, HookPhase.AFTER_STEP}


def any_tag(*tags: str) -> TagPredicate:
    """Predicate matching scenarios carrying at least one of ``tags``."""

    wanted = frozenset(tags)

    def predicate(scenario_tags: frozenset[str]) -> bool:
        return bool(wanted & scenario_tags)

    return predicate


def _as_predicate(selector: TagSelector) -> Optional[TagPredicate]:
    if selector is None or callable(selector):
        return selector
    if isinstance(selector, str):
        return any_tag(selector)
    return any_tag(*selector)


@dataclass(frozen=True)
class Hook:
    """Body run around scenarios or steps whose tags satisfy ``applies_to``."""

    phase: HookPhase
    body: Callable[..., Any]
    name: str
    applies_to: Optional[TagPredicate] = None
    order: int = 0
    timeout: Optional[float] = None
    sequence: int = field(default=0, compare=False)

    def applies(self, tags: Iterable[str]) -> bool:
        if self.applies_to is None:
            return True
        return bool(self.applies_to(frozenset(tags)))


class HookRegistry:
    """Read-only collection of hooks, built once before any scenario runs.

    Setup hooks run by ascending ``order`` then registration; teardown hooks
    run in the mirrored order.
    """

    def __init__(self, hooks: Iterable[Hook] = ()) -> None:
        self._hooks = tuple(hooks)

    def __len__(self) -> int:
        return len(self._hooks)

    def __iter__(self):
        return iter(self._hooks)

    def for_scenario(self, phase: HookPhase, tags: Iterable[str]) -> tuple[Hook, ...]:
        tag_set = frozenset(tags)
        selected = sorted(
            (hook for hook in self._hooks if hook.phase is phase and hook.applies(tag_set)),
            key=lambda hook: (hook.order, hook.sequence),
        )
        if phase.is_teardown:
            selected.reverse()
        return tuple(selected)


class HookRegistryBuilder:
    """Collects hooks through decorators and freezes them into a registry.

    ::

        hooks = HookRegistryBuilder()

        @hooks.before(tags="@db")
        def open_connection(world, scenario):
            world.db = connect()

        registry = hooks.build()
    """

    def __init__(self) -> None:
        self._hooks: list[Hook] = []

    def register(
        self,
        phase: HookPhase,
        body: Callable[..., Any],
        *,
        tags: TagSelector = None,
        order: int = 0,
        timeout: Optional[float] = None,
        name: Optional[str] = None,
    ) -> Hook:
        hook = Hook(
            phase=phase,
            body=body,
            name=name or getattr(body, "__name__", phase.value),
            applies_to=_as_predicate(tags),
            order=order,
            timeout=timeout,
            sequence=len(self._hooks),
        )
        self._hooks.append(hook)
        return hook

    def before(self, body: Optional[Callable[..., Any]] = None, **options: Any):
        return self._decorate(HookPhase.BEFORE, body, options)

    def after(self, body: Optional[Callable[..., Any]] = None, **options: Any):
        return self._decorate(HookPhase.AFTER, body, options)

    def before_step(self, body: Optional[Callable[..., Any]] = None, **options: Any):
        return self._decorate(HookPhase.BEFORE_STEP, body, options)

    def after_step(self, body: Optional[Callable[..., Any]] = None, **options: Any):
        return self._decorate(HookPhase.AFTER_STEP, body, options)

    def build(self) -> HookRegistry:
        return HookRegistry(self._hooks)

    def _decorate(self, phase: HookPhase, body: Optional[Callable[..., Any]], options: dict[str, Any]):
        if body is not None:
            self.register(phase, body, **options)
            return body

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(phase, func, **options)
            return func

        return decorator
