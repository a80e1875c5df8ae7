"""Compile per-assertion outcomes into the CSV report.

Rollup per assertion ID: any failed attribution makes it ``fail``, else any
skipped one makes it ``null`` (needs manual verification), else ``pass``.
Registry IDs that no case attributed are added as ``null`` rows so gaps in
automated coverage show up in the report. Rows are sorted by ID so repeated
runs of an unchanged suite produce identical files.
"""
from __future__ import annotations

import csv
import io
import logging
import pathlib
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Union

import httpx

from .assertions import (
    ASSERTIONS_MANUAL_URL,
    ASSERTIONS_TEMPLATE_URL,
    DEFAULT_PREFIX,
    AssertionRegistry,
    load_registry,
)
from .results import HarnessError, OutcomeRecord, ResultStore

logger = logging.getLogger("tdd.report")

HEADER = ["ID", "Status", "Comment"]
REPORT_FILE = "tdd-report.csv"
MANUAL_REPORT_FILE = "tdd-manual.csv"

STATUS_PASS = "pass"
STATUS_FAIL = "fail"
STATUS_NULL = "null"

UNTESTED_COMMENT = "not tested by this suite"
MANUAL_COMMENT = "no automated test; manual testing required"


@dataclass(frozen=True)
class ReportRow:
    id: str
    status: str
    comment: str = ""

    def as_record(self) -> List[str]:
        return [self.id, self.status, self.comment]


def rollup_status(r: OutcomeRecord) -> str:
    if r.failed:
        return STATUS_FAIL
    if r.skipped:
        return STATUS_NULL
    return STATUS_PASS


def detail_string(r: OutcomeRecord) -> str:
    details: List[str] = []
    for label, names in (("failed", r.failed), ("skipped", r.skipped), ("passed", r.passed)):
        if names:
            details.append(" ".join(f"{label}:{n}" for n in names))
    return " ".join(details)


def result_to_row(assertion_id: str, r: OutcomeRecord) -> ReportRow:
    return ReportRow(assertion_id, rollup_status(r), detail_string(r))


def _records(results: Union[ResultStore, Mapping[str, OutcomeRecord]]) -> Dict[str, OutcomeRecord]:
    if isinstance(results, ResultStore):
        return results.snapshot()
    return dict(results)


def untested_rows(results: Union[ResultStore, Mapping[str, OutcomeRecord]], registry: AssertionRegistry) -> List[ReportRow]:
    records = _records(results)
    rows = [
        ReportRow(e.id, STATUS_NULL, MANUAL_COMMENT if e.manual else UNTESTED_COMMENT)
        for e in registry
        if e.id not in records
    ]
    rows.sort(key=lambda row: row.id)
    return rows


def check_anomalies(records: Mapping[str, OutcomeRecord], registry: AssertionRegistry) -> Dict[str, List[str]]:
    """Log attributed IDs that are unknown to, or manual-only in, the registry."""
    unknown = [aid for aid in sorted(records) if aid not in registry]
    manual = [aid for aid in sorted(records) if registry.is_manual(aid)]
    for aid in unknown:
        logger.warning(f"Tested assertion not in the list of normative assertions: {aid}")
    for aid in manual:
        logger.error(f"Assertion is listed for manual testing but was attributed by an automated test: {aid}")
    return {"unknown": unknown, "manual": manual}


def compile_report(results: Union[ResultStore, Mapping[str, OutcomeRecord]], registry: Optional[AssertionRegistry] = None) -> List[ReportRow]:
    records = _records(results)
    rows = [result_to_row(aid, r) for aid, r in records.items()]
    if registry is not None:
        check_anomalies(records, registry)
        rows.extend(untested_rows(records, registry))
    rows.sort(key=lambda row: row.id)
    return rows


def render_csv(rows: List[ReportRow], header: Optional[List[str]] = None) -> str:
    buf = io.StringIO(newline="")
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header or HEADER)
    for row in rows:
        writer.writerow(row.as_record())
    return buf.getvalue()


def write_csv_report(path: Union[str, pathlib.Path], rows: List[ReportRow], header: Optional[List[str]] = None) -> pathlib.Path:
    path = pathlib.Path(path)
    try:
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(header or HEADER)
            for row in rows:
                writer.writerow(row.as_record())
            f.flush()
    except (OSError, csv.Error) as e:
        raise SystemExit(f"Error writing the report {path}: {e}")
    logger.info(f"Wrote {len(rows)} rows to {path}")
    return path


def summarize(rows: List[ReportRow], registry: Optional[AssertionRegistry] = None, results: Optional[Union[ResultStore, Mapping[str, OutcomeRecord]]] = None) -> Dict[str, object]:
    counts = {STATUS_PASS: 0, STATUS_FAIL: 0, STATUS_NULL: 0}
    for row in rows:
        counts[row.status] = counts.get(row.status, 0) + 1
    out: Dict[str, object] = {"rows": len(rows), **counts}
    if registry is not None and results is not None:
        records = _records(results)
        covered = sum(1 for aid in registry.ids() if aid in records)
        out["registry"] = len(registry)
        out["covered"] = covered
        out["coverage"] = round(covered / len(registry), 4) if len(registry) else 0.0
    return out


class ReportState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    ACCUMULATING = "accumulating"
    COMPILED = "compiled"


class ReportWriter:
    """Own the registry and result store for one harness run.

    ``load()`` once before any case runs, hand ``results`` to the cases,
    ``commit()`` once after all of them have finished.
    """

    def __init__(
        self,
        report_dir: Union[str, pathlib.Path] = "report",
        template_url: str = ASSERTIONS_TEMPLATE_URL,
        manual_url: Optional[str] = ASSERTIONS_MANUAL_URL,
        prefix: str = DEFAULT_PREFIX,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
        registry: Optional[AssertionRegistry] = None,
    ):
        self.report_dir = pathlib.Path(report_dir)
        self.template_url = template_url
        self.manual_url = manual_url
        self.prefix = prefix
        self.timeout = timeout
        self._client = client
        self.registry = registry
        self._results = ResultStore()
        self.state = ReportState.UNINITIALIZED
        self.rows: List[ReportRow] = []
        self.summary: Dict[str, object] = {}

    def load(self) -> AssertionRegistry:
        if self.state != ReportState.UNINITIALIZED:
            raise HarnessError(f"report writer already {self.state.value}")
        try:
            self.report_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SystemExit(f"Error creating report directory: {e}")
        if self.registry is None:
            self.registry = load_registry(
                self.template_url,
                self.manual_url,
                cache_dir=self.report_dir,
                prefix=self.prefix,
                timeout=self.timeout,
                client=self._client,
            )
        self.state = ReportState.LOADED
        return self.registry

    @property
    def results(self) -> ResultStore:
        if self.state == ReportState.LOADED:
            self.state = ReportState.ACCUMULATING
        elif self.state != ReportState.ACCUMULATING:
            raise HarnessError(f"results are not available while the report writer is {self.state.value}")
        return self._results

    @property
    def report_path(self) -> pathlib.Path:
        return self.report_dir / REPORT_FILE

    @property
    def manual_report_path(self) -> pathlib.Path:
        return self.report_dir / MANUAL_REPORT_FILE

    def commit(self) -> List[ReportRow]:
        if self.state not in (ReportState.LOADED, ReportState.ACCUMULATING):
            raise HarnessError(f"cannot compile the report while it is {self.state.value}")
        if self.registry is None:
            raise HarnessError("cannot compile the report without an assertion registry")
        self.state = ReportState.COMPILED
        records = self._results.snapshot()
        self.rows = compile_report(records, self.registry)
        write_csv_report(self.report_path, self.rows)
        write_csv_report(self.manual_report_path, untested_rows(records, self.registry))
        summary = self.summary = summarize(self.rows, self.registry, records)
        print("==================== REPORT ====================")
        print(f"pass={summary[STATUS_PASS]} fail={summary[STATUS_FAIL]} null={summary[STATUS_NULL]} "
              f"coverage={summary['covered']}/{summary['registry']}")
        print(f"Report: {self.report_path}")
        print(f"Manual: {self.manual_report_path}")
        print("================================================")
        return self.rows


__all__ = [
    "HEADER", "ReportRow", "ReportState", "ReportWriter",
    "STATUS_PASS", "STATUS_FAIL", "STATUS_NULL", "UNTESTED_COMMENT", "MANUAL_COMMENT",
    "rollup_status", "detail_string", "result_to_row", "untested_rows", "check_anomalies",
    "compile_report", "render_csv", "write_csv_report", "summarize",
]
