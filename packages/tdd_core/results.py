"""Per-assertion outcome bookkeeping.

A ResultStore maps assertion IDs to the names of the cases that exercised
them, bucketed by outcome. Every case in a run shares one store, possibly
from several threads at once, so all mutation goes through a single lock.

Assertion IDs end up as CSV cells and the case names in a cell are space
separated, so IDs containing a comma or a space are rejected at the point of
attribution rather than being discovered while writing the report.
"""
from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional


class HarnessError(RuntimeError):
    """Defect in the test suite itself (bad assertion ID, pre-set status).

    Never caught by the case runner: a suite that triggers it aborts.
    """


class Outcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class OutcomeRecord:
    passed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def bucket(self, outcome: Outcome) -> List[str]:
        return getattr(self, outcome.value)

    def total(self) -> int:
        return len(self.passed) + len(self.failed) + len(self.skipped)


def validate_assertion_id(assertion: str) -> str:
    if not isinstance(assertion, str) or not assertion:
        raise HarnessError(f"Assertion must be a non-empty string: {assertion!r}")
    if "," in assertion:
        raise HarnessError("Assertion should not contain commas: " + assertion)
    if " " in assertion:
        raise HarnessError("Assertion should not contain spaces: " + assertion)
    return assertion


class ResultStore:
    def __init__(self):
        self._records: Dict[str, OutcomeRecord] = {}
        self._lock = threading.Lock()

    def attribute(self, assertions: Iterable[str], name: str, outcome: Outcome, note: Optional[str] = None) -> None:
        """Append ``name`` to the ``outcome`` bucket of every assertion."""
        assertions = [validate_assertion_id(a) for a in assertions]
        outcome = Outcome(outcome)
        with self._lock:
            for a in assertions:
                rec = self._records.get(a)
                if rec is None:
                    rec = self._records[a] = OutcomeRecord()
                rec.bucket(outcome).append(name)
                if note:
                    rec.notes.append(f"{name}: {note}")

    def snapshot(self) -> Dict[str, OutcomeRecord]:
        with self._lock:
            return copy.deepcopy(self._records)

    def ids(self) -> List[str]:
        with self._lock:
            return sorted(self._records)

    def __contains__(self, assertion: str) -> bool:
        with self._lock:
            return assertion in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["HarnessError", "Outcome", "OutcomeRecord", "ResultStore", "validate_assertion_id"]
