from __future__ import annotations

import itertools

import pytest

from scenario_runtime.status import DEFAULT_SEVERITY_ORDER, SeverityOrder, Status, aggregate

WORST_FIRST = [
    Status.AMBIGUOUS,
    Status.FAILED,
    Status.UNDEFINED,
    Status.PENDING,
    Status.SKIPPED,
    Status.PASSED,
]


def test_default_order_lists_worst_last() -> None:
    assert list(reversed(DEFAULT_SEVERITY_ORDER)) == WORST_FIRST


def test_empty_sequence_is_passed() -> None:
    assert aggregate([]) is Status.PASSED


@pytest.mark.parametrize(
    "statuses",
    [combo for length in (1, 2, 3) for combo in itertools.product(list(Status), repeat=length)],
)
def test_aggregate_picks_most_severe(statuses: tuple[Status, ...]) -> None:
    expected = next(status for status in WORST_FIRST if status in statuses)
    assert aggregate(statuses) is expected


def test_position_does_not_matter() -> None:
    assert aggregate([Status.FAILED, Status.PASSED, Status.PASSED]) is Status.FAILED
    assert aggregate([Status.PASSED, Status.PASSED, Status.AMBIGUOUS]) is Status.AMBIGUOUS


def test_custom_order_changes_verdict() -> None:
    order = SeverityOrder.worst_first(["pending", "ambiguous", "failed", "undefined", "skipped", "passed"])
    assert aggregate([Status.FAILED, Status.PENDING], order) is Status.PENDING
    assert aggregate([Status.FAILED, Status.PENDING]) is Status.FAILED


@pytest.mark.parametrize(
    "ranking",
    [
        [Status.PASSED, Status.FAILED],
        [Status.PASSED, Status.PASSED, Status.SKIPPED, Status.PENDING, Status.UNDEFINED, Status.FAILED],
    ],
)
def test_incomplete_order_is_rejected(ranking: list[Status]) -> None:
    with pytest.raises(ValueError):
        SeverityOrder(ranking)


def test_unknown_status_name_is_rejected() -> None:
    with pytest.raises(ValueError):
        SeverityOrder.worst_first(["broken", "failed", "undefined", "pending", "skipped", "passed"])


@pytest.mark.parametrize(
    ("status", "halts"),
    [
        (Status.PASSED, False),
        (Status.SKIPPED, False),
        (Status.FAILED, True),
        (Status.PENDING, True),
        (Status.UNDEFINED, True),
        (Status.AMBIGUOUS, True),
    ],
)
def test_halting_statuses(status: Status, halts: bool) -> None:
    assert status.halts_scenario is halts


def test_order_repr_reads_worst_first() -> None:
    assert repr(SeverityOrder()) == "SeverityOrder(AMBIGUOUS > FAILED > UNDEFINED > PENDING > SKIPPED > PASSED)"
