"""Attribute case outcomes to assertion IDs.

Typical use inside a case body::

    def status_code(t):
        report(t, "tdd-things-create-known-td-resp")
        assert_status_code(t, response, 201, body)

``report`` registers a cleanup, so the attribution happens after the body
has finished and sees the final failed/skipped state of ``t``. The outcome
is always derived from the case; callers never pass it in.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from .case import Case
from .results import HarnessError, Outcome, validate_assertion_id


@dataclass
class Record:
    assertions: List[str] = field(default_factory=list)
    comments: str = ""
    status: str = ""  # filled in when the owning case finishes


def outcome_of(t: Case) -> Outcome:
    if t.failed():
        return Outcome.FAILED
    if t.skipped():
        return Outcome.SKIPPED
    return Outcome.PASSED


def _insert(t: Case, assertions: List[str], note: Optional[str] = None) -> Outcome:
    outcome = outcome_of(t)
    if assertions:
        t.results.attribute(assertions, t.name, outcome, note=note if outcome != Outcome.PASSED else None)
    return outcome


def report(t: Case, *assertions: str) -> None:
    ids = [validate_assertion_id(a) for a in assertions]
    t.cleanup(_insert, t, ids)


def report_group(t: Case, *groups: Iterable[str]) -> None:
    for group in groups:
        report(t, *group)


def _insert_record(t: Case, r: Record) -> None:
    r.status = _insert(t, list(r.assertions), note=r.comments or None).value


def report_record(t: Case, r: Optional[Record]) -> None:
    if r is None:
        r = Record()
    if r.status:
        raise HarnessError(f"Record status must not be set by the caller (got {r.status!r} in {t.name})")
    for a in r.assertions:
        validate_assertion_id(a)
    t.cleanup(_insert_record, t, r)


def fatal(t: Case, r: Record, msg: str, *args: Any) -> None:
    r.comments = msg % args if args else msg
    t.fatal(r.comments)


def skip(t: Case, r: Record, msg: str, *args: Any) -> None:
    r.comments = msg % args if args else msg
    t.skip(r.comments)


__all__ = ["Record", "outcome_of", "report", "report_group", "report_record", "fatal", "skip"]
