"""Test bootstrap and shared fixtures for scenario-runtime."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from scenario_runtime.models import ScenarioNode, StepDefinitionMatch, StepNode  # noqa: E402


class StepLibrary:
    """Exact-text matcher standing in for the pattern-matching collaborator."""

    def __init__(self) -> None:
        self._definitions: dict[str, list[StepDefinitionMatch]] = {}

    def define(self, text: str, body: Callable[..., Any], **options: Any) -> Callable[..., Any]:
        match = StepDefinitionMatch(body=body, pattern=text, **options)
        self._definitions.setdefault(text, []).append(match)
        return body

    def match(self, step: StepNode) -> list[StepDefinitionMatch]:
        return list(self._definitions.get(step.text, []))


class ChunkFeed:
    """Async byte stream fed chunk by chunk from the test."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.started = False

    def push(self, chunk: Any) -> None:
        self._queue.put_nowait(chunk)

    def end(self) -> None:
        self._queue.put_nowait(None)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        self.started = True
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk


@pytest.fixture()
def library() -> StepLibrary:
    return StepLibrary()


@pytest.fixture()
def chunk_feed() -> Callable[[], ChunkFeed]:
    return ChunkFeed


@pytest.fixture()
def make_scenario() -> Callable[..., ScenarioNode]:
    def factory(*texts: str, name: str = "Checkout", tags: tuple[str, ...] = ()) -> ScenarioNode:
        steps = tuple(
            StepNode(keyword="Given " if index == 0 else "And ", text=text, line=4 + index)
            for index, text in enumerate(texts)
        )
        return ScenarioNode(
            name=name,
            description="Buying things",
            uri="features/checkout.feature",
            line=3,
            tags=tags,
            steps=steps,
        )

    return factory
