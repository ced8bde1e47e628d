"""Parsing of OpenHAB item state text into numeric readings."""
import math
from typing import Optional

# OpenHAB's "no current value" markers
SENTINEL_STATES = frozenset({"NULL", "UNDEF"})


def is_sentinel(state: Optional[str]) -> bool:
    """True if the item has nothing to report (empty, NULL or UNDEF)."""
    return not state or state in SENTINEL_STATES


def parse_numeric_state(state: Optional[str]) -> Optional[float]:
    """
    Parse the leading numeric token of a state string.

    OpenHAB appends the unit after a space for dimensioned items, so
    "23.5 °C" → 23.5 and "1013 hPa" → 1013.0. Returns None for sentinels
    and for anything that is not a finite number ("ERR", "ON", "nan").
    """
    if is_sentinel(state):
        return None
    tokens = state.split()
    if not tokens:
        return None
    try:
        value = float(tokens[0])
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value
