"""Unit and scenario status values with severity-based aggregation."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Sequence


class Status(str, Enum):
    """Outcome of one executed unit (step or hook)."""

    PASSED = "passed"
    FAILED = "failed"
    UNDEFINED = "undefined"
    PENDING = "pending"
    AMBIGUOUS = "ambiguous"
    SKIPPED = "skipped"

    @property
    def halts_scenario(self) -> bool:
        """Whether later steps must be skipped once a step lands in this status."""

        return self not in {Status.PASSED, Status.SKIPPED}


# Best first, worst last.
DEFAULT_SEVERITY_ORDER: tuple[Status, ...] = (
    Status.PASSED,
    Status.SKIPPED,
    Status.PENDING,
    Status.UNDEFINED,
    Status.FAILED,
    Status.AMBIGUOUS,
)


class SeverityOrder:
    """Total order over :class:`Status` used to pick the scenario verdict."""

    def __init__(self, ranking: Sequence[Status] = DEFAULT_SEVERITY_ORDER) -> None:
        ranking = tuple(Status(value) for value in ranking)
        if len(ranking) != len(Status) or set(ranking) != set(Status):
            raise ValueError(
                "Severity order must list every status exactly once, "
                f"got {[status.value for status in ranking]}"
            )
        self._ranking = ranking
        self._rank = {status: index for index, status in enumerate(ranking)}

    @classmethod
    def worst_first(cls, names: Sequence[str]) -> "SeverityOrder":
        """Build an order from status names listed worst to best."""

        return cls([Status(name.strip().lower()) for name in reversed(names)])

    @property
    def ranking(self) -> tuple[Status, ...]:
        return self._ranking

    def rank(self, status: Status) -> int:
        return self._rank[status]

    def worst(self, statuses: Iterable[Status]) -> Status:
        verdict = Status.PASSED
        for status in statuses:
            if self._rank[status] > self._rank[verdict]:
                verdict = status
        return verdict

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SeverityOrder):
            return NotImplemented
        return self._ranking == other._ranking

    def __hash__(self) -> int:
        return hash(self._ranking)

    def __repr__(self) -> str:
        worst_first = " > ".join(status.name for status in reversed(self._ranking))
        return f"SeverityOrder({worst_first})"


DEFAULT_SEVERITY = SeverityOrder()


def aggregate(statuses: Iterable[Status], order: SeverityOrder | None = None) -> Status:
    """Return the most severe status, ``PASSED`` for an empty sequence."""

    return (order or DEFAULT_SEVERITY).worst(statuses)
