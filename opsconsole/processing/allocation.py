"""Turning allocation rules and percentage splits into assignment schedules."""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def build_schedule(rule: Optional[Mapping[str, Any]], members: Sequence[str]) -> List[str]:
    """Expand a team's allocation rule into a repeating assignee schedule.

    A percentage rule lists each matching member ``round(percent)`` times;
    names are compared case-insensitively and unknown names are skipped.
    Without a usable rule the schedule is the plain member list.
    """

    handles = [m for m in members if m]
    if rule and rule.get("mode") == "percentage":
        by_norm = {str(m).strip().lower(): m for m in handles}
        expanded: List[str] = []
        for entry in rule.get("percents") or []:
            name = str(entry.get("member") or "").strip().lower()
            try:
                share = max(0, _round_half_up(float(entry.get("percent") or 0)))
            except (TypeError, ValueError):
                share = 0
            actual = by_norm.get(name)
            if name and share and actual:
                expanded.extend([actual] * share)
        if expanded:
            return expanded
    return list(handles)


def assign_round_robin(ids: Iterable[Any], schedule: Sequence[str]) -> List[Tuple[Any, str]]:
    """Pair each id with ``schedule[i % len(schedule)]``."""

    if not schedule:
        raise ValueError("Cannot assign without at least one team member")
    return [(item, schedule[index % len(schedule)]) for index, item in enumerate(ids)]


def largest_remainder_counts(members: Sequence[str], percents: Mapping[str, float], total: int) -> Dict[str, int]:
    """Split ``total`` items by percentage, handing leftovers to the largest fractions."""

    ideal = [(m, (float(percents.get(m, 0)) / 100.0) * total) for m in members]
    base = [(m, int(math.floor(x)), x - math.floor(x)) for m, x in ideal]
    counts = {m: c for m, c, _ in base}
    need = max(0, total - sum(counts.values()))
    by_fraction = sorted(base, key=lambda item: -item[2])
    for i in range(need):
        member = by_fraction[i % len(by_fraction)][0]
        counts[member] += 1
    return counts


def largest_remainder_schedule(members: Sequence[str], percents: Mapping[str, float], total: int) -> List[str]:
    """Interleave the per-member counts round-robin into a schedule of ``total`` names."""

    members = [m for m in members if m]
    if not members or total <= 0:
        return []
    remaining = largest_remainder_counts(members, percents, total)
    schedule: List[str] = []
    while len(schedule) < total and any(remaining[m] > 0 for m in members):
        for member in members:
            if remaining[member] > 0:
                schedule.append(member)
                remaining[member] -= 1
                if len(schedule) >= total:
                    break
    while len(schedule) < total:
        schedule.append(members[len(schedule) % len(members)])
    return schedule


def even_percentages(members: Sequence[str]) -> Dict[str, int]:
    """Equal whole-number shares that add up to exactly 100."""

    members = [m for m in members if m]
    if not members:
        return {}
    base, remainder = divmod(100, len(members))
    return {m: base + (1 if i < remainder else 0) for i, m in enumerate(members)}


def validate_percentages(percents: Mapping[str, float]) -> int:
    total = _round_half_up(sum(float(v or 0) for v in percents.values()))
    if total != 100:
        raise ValueError(f"Percentage total must equal 100 (currently {total})")
    return total


def percentage_rule(percents: Mapping[str, float]) -> Dict[str, Any]:
    """The stored shape of a percentage allocation rule."""

    validate_percentages(percents)
    return {
        "mode": "percentage",
        "percents": [{"member": m, "percent": float(p)} for m, p in percents.items() if p],
    }
