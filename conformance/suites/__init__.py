from typing import Callable, List, Optional, Tuple

from . import notification, search, things

SUITES = {
    "things": things.CASES,
    "notification": notification.CASES,
    "search": search.CASES,
}


def select_cases(only: Optional[str] = None) -> List[Tuple[str, Callable]]:
    """All top-level cases in run order, optionally filtered by suite or case name."""
    out: List[Tuple[str, Callable]] = []
    for suite, cases in SUITES.items():
        for name, fn in cases:
            if only and only not in (suite, name):
                continue
            out.append((name, fn))
    return out


__all__ = ["SUITES", "select_cases"]
