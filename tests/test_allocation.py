"""Tests for allocation schedules and percentage splits."""
import pytest

from opsconsole.processing.allocation import (
    assign_round_robin,
    build_schedule,
    even_percentages,
    largest_remainder_counts,
    largest_remainder_schedule,
    percentage_rule,
    validate_percentages,
)


def test_percentage_rule_expands_by_share():
    rule = {
        "mode": "percentage",
        "percents": [
            {"member": "ASHA", "percent": 60},
            {"member": "ravi", "percent": 40},
            {"member": "ghost", "percent": 10},
        ],
    }

    schedule = build_schedule(rule, ["asha", "Ravi"])

    assert len(schedule) == 100
    assert schedule.count("asha") == 60
    assert schedule.count("Ravi") == 40


def test_schedule_without_rule_is_member_list():
    assert build_schedule(None, ["asha", "", "ravi"]) == ["asha", "ravi"]
    assert build_schedule({"mode": "percentage", "percents": []}, ["asha"]) == ["asha"]


def test_round_robin_cycles_schedule():
    assert assign_round_robin([11, 12, 13], ["asha", "ravi"]) == [(11, "asha"), (12, "ravi"), (13, "asha")]
    with pytest.raises(ValueError, match="at least one team member"):
        assign_round_robin([1], [])


def test_largest_remainder_split():
    percents = {"a": 50, "b": 30, "c": 20}

    assert largest_remainder_counts(["a", "b", "c"], percents, 7) == {"a": 4, "b": 2, "c": 1}
    assert largest_remainder_schedule(["a", "b", "c"], percents, 7) == ["a", "b", "c", "a", "b", "a", "a"]
    assert largest_remainder_schedule([], percents, 7) == []


def test_even_percentages_sum_to_hundred():
    shares = even_percentages(["a", "b", "c"])

    assert shares == {"a": 34, "b": 33, "c": 33}
    assert sum(shares.values()) == 100
    assert even_percentages([]) == {}


def test_percentage_validation():
    with pytest.raises(ValueError, match=r"currently 90"):
        validate_percentages({"a": 50, "b": 40})

    rule = percentage_rule({"a": 60, "b": 40, "c": 0})

    assert rule == {
        "mode": "percentage",
        "percents": [{"member": "a", "percent": 60.0}, {"member": "b", "percent": 40.0}],
    }
