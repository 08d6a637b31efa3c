"""Customer segmentation by state, city, pincode and area."""
from __future__ import annotations

import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from opsconsole.processing.filters import within_range

DIMENSIONS = ("state", "city", "pincode", "area")

_PINCODE = re.compile(r"(\d{6})$")


def parse_from_address(address: Optional[str]) -> Dict[str, Optional[str]]:
    """Split ``"street, area, city, state 641001"`` into location parts.

    The trailing six digits are the pincode, the last part the state, the
    one before it the city, and everything earlier the area.
    """

    out: Dict[str, Optional[str]] = {dim: None for dim in DIMENSIONS}
    if not address:
        return out
    parts = [part.strip() for part in str(address).split(",") if part.strip()]
    if not parts:
        return out

    match = _PINCODE.search(parts[-1])
    if match:
        out["pincode"] = match.group(1)
        parts[-1] = parts[-1][: match.start()].rstrip(", ").strip()
        if not parts[-1]:
            parts.pop()
    if not parts:
        return out

    out["state"] = parts[-1]
    out["city"] = parts[-2] if len(parts) >= 2 else None
    out["area"] = ", ".join(parts[:-2]) if len(parts) >= 3 else None
    return out


def segment_counts(
    rows: Iterable[Mapping[str, Any]],
    dims: Sequence[str] = ("state",),
    start: Any = None,
    end: Any = None,
    status: str = "",
) -> List[Dict[str, Any]]:
    """Count orders per combination of ``dims``, largest segments first.

    Explicit columns win; missing ones are filled from the parsed address.
    """

    dims = [d for d in dims if d in DIMENSIONS] or ["state"]
    needle = status.strip().lower()
    counts: Counter = Counter()
    for row in rows:
        if (start or end) and not within_range(row.get("order_date"), start, end):
            continue
        if needle and needle not in str(row.get("status") or "").lower():
            continue
        fallback = parse_from_address(row.get("address"))
        key = tuple(str(row.get(d) or fallback.get(d) or "") for d in dims)
        counts[key] += 1

    result = []
    for key, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        entry: Dict[str, Any] = {d: (value or None) for d, value in zip(dims, key)}
        entry["count"] = count
        result.append(entry)
    return result
