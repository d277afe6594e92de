"""Slot label parsing for daygrid.

Slot labels are opaque user text such as "9:00 AM - 10:00 AM". The only
structure we rely on is the leading start time, used to keep the registry in
chronological order.
"""

import math
import re
from typing import Iterable, List, Optional, Tuple

# Sort key for labels we cannot read (they go last)
UNPARSEABLE_SORT_KEY = math.inf

_START_RE = re.compile(r"^(\d{1,2})(?:[:.](\d{2}))?\s*(?:([AaPp])\.?\s*[Mm]\.?)?$")
_LEGACY_RE = re.compile(r"^\[([^\]]+)\]\s*(.*)$", re.DOTALL)


def parse_start(label: Optional[str]) -> float:
    """Return the start of a slot label as minutes since midnight.

    12-hour labels ("9:30 AM", "1 PM") are converted to 24-hour minutes.
    Without an AM/PM suffix the value is taken as already 24-hour
    ("13:30" -> 810, "8:30" -> 510). Anything unreadable returns
    `UNPARSEABLE_SORT_KEY`; this never raises.
    """
    if not isinstance(label, str):
        return UNPARSEABLE_SORT_KEY

    start = label.split("-", 1)[0].strip()
    match = _START_RE.match(start)
    if not match:
        return UNPARSEABLE_SORT_KEY

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = match.group(3)
    if meridiem:
        if not 1 <= hour <= 12 or minute > 59:
            return UNPARSEABLE_SORT_KEY
        hour = hour % 12
        if meridiem.lower() == "p":
            hour += 12
        return hour * 60 + minute

    if hour > 23 or minute > 59:
        return UNPARSEABLE_SORT_KEY
    return hour * 60 + minute


def sort_slots(labels: Iterable[str]) -> List[str]:
    """Sort slot labels chronologically by start time (stable)."""
    return sorted(labels, key=parse_start)


def split_legacy_description(text: str) -> Tuple[Optional[str], str]:
    """Split a legacy "[<slot>] <description>" value.

    Older records kept the slot inside the description text. Returns
    (slot, description); slot is None when the prefix is absent.
    """
    match = _LEGACY_RE.match(text or "")
    if not match:
        return None, text or ""
    return match.group(1).strip(), match.group(2)


def format_legacy_description(slot: str, description: str) -> str:
    """Encode a slot into the legacy "[<slot>] <description>" form."""
    return f"[{slot}] {description}"
