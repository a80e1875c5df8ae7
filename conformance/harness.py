"""Conformance harness.

Runs the Thing Directory cases against a live server and writes the
per-assertion report under ./report (tdd-report.csv for every normative
assertion, tdd-manual.csv for the ones no automated case covered).

Usage:
  python -m conformance.harness --server http://localhost:8081
  TDD_SERVER_URL=http://localhost:8081 python -m conformance.harness --testJSONPath --parallel 4

Exit codes:
  0 report written (failing cases included, unless --strict)
  1 failing cases with --strict, or invalid input
  2 internal error in the harness itself
"""
from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

# Ensure local packages directory is on path when executed without editable install
ROOT = pathlib.Path(__file__).resolve().parents[1]
PKG_DIR = ROOT / 'packages'
if str(PKG_DIR) not in sys.path:
    sys.path.insert(0, str(PKG_DIR))
from tdd_core.assertions import AssertionRegistry  # noqa: E402
from tdd_core.case import Case, run_case  # noqa: E402
from tdd_core.report import ReportWriter  # noqa: E402
from tdd_core.results import HarnessError, ResultStore  # noqa: E402
from tdd_sdk.config import HarnessConfig, load_config  # noqa: E402

from conformance.environment import Environment  # noqa: E402
from conformance.suites import select_cases  # noqa: E402

logger = logging.getLogger("tdd.harness")


def add_run_arguments(ap: argparse.ArgumentParser):
    ap.add_argument('--server', help='Base URL of the directory service (env TDD_SERVER_URL)')
    ap.add_argument('--testJSONPath', dest='test_jsonpath', action='store_true', help='Enable JSONPath testing')
    ap.add_argument('--testXPath', dest='test_xpath', action='store_true', help='Enable XPath testing')
    ap.add_argument('--templateURL', dest='template_url', help='URL to download assertions template (env TDD_TEMPLATE_URL)')
    ap.add_argument('--manualURL', dest='manual_url', help='URL to download template for assertions that are tested manually (env TDD_MANUAL_URL)')
    ap.add_argument('--report-dir', dest='report_dir', help='Directory for cached templates and CSV reports (env TDD_REPORT_DIR)')
    ap.add_argument('--ignoreUnknownEvents', dest='ignore_unknown_events', action='store_true', help='Ignore unknown events instead of failing the tests')
    ap.add_argument('--things-path', dest='things_path', help='Things collection path, /things or /td (env TDD_THINGS_PATH)')
    ap.add_argument('--anonymous-id-prefix', dest='anonymous_id_prefix', help='Expected prefix of system-generated IDs, urn:uuid: or _: (env TDD_ANONYMOUS_ID_PREFIX)')
    ap.add_argument('--timeout', type=float, help='HTTP timeout in seconds')
    ap.add_argument('--event-timeout', dest='event_timeout', type=float, help='Seconds to wait for a notification')
    ap.add_argument('--parallel', type=int, help='Run top-level cases on N worker threads')
    ap.add_argument('--only', help='Run only the named suite or top-level case')
    ap.add_argument('--strict', action='store_true', help='Exit 1 when any case failed')
    ap.add_argument('--json', action='store_true', help='Print the run summary as JSON')
    ap.add_argument('-v', '--verbose', action='store_true', help='Debug logging')


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog='conformance.harness', description='Thing Directory conformance harness')
    add_run_arguments(ap)
    return ap


CONFIG_FIELDS = (
    'server', 'template_url', 'manual_url', 'report_dir', 'things_path', 'anonymous_id_prefix',
    'timeout', 'event_timeout', 'parallel', 'only',
)
CONFIG_FLAGS = ('test_jsonpath', 'test_xpath', 'ignore_unknown_events', 'strict')


def config_from_args(args: argparse.Namespace, env: Optional[Dict[str, str]] = None) -> HarnessConfig:
    overrides: Dict[str, Any] = {f: getattr(args, f, None) for f in CONFIG_FIELDS}
    # store_true flags only override when set
    overrides.update({f: True for f in CONFIG_FLAGS if getattr(args, f, False)})
    return load_config(overrides, env=env)


def _status(c: Case) -> str:
    if c.failed():
        return 'FAIL'
    if c.skipped():
        return 'SKIP'
    return 'PASS'


def run_cases(env: Environment, results: ResultStore, cases: Sequence[Tuple[str, Callable]], parallel: int = 1) -> List[Case]:
    """Run top-level cases against ``env``; every case shares ``results``."""
    def one(item: Tuple[str, Callable]) -> Case:
        name, fn = item
        c = run_case(name, fn, results, env)
        print(f"[case] {c.name}: {_status(c)}")
        return c

    if parallel > 1:
        with ThreadPoolExecutor(max_workers=parallel, thread_name_prefix='tdd') as pool:
            return list(pool.map(one, cases))
    return [one(item) for item in cases]


def run(config: HarnessConfig, http=None, registry: Optional[AssertionRegistry] = None, registry_client=None) -> Tuple[int, Dict[str, Any]]:
    """Load the registry, run the selected cases and write the report.

    ``http`` replaces the directory HTTP client, ``registry_client`` the one
    used to fetch templates, ``registry`` skips fetching altogether.
    """
    cases = select_cases(config.only)
    if not cases:
        raise SystemExit(f"No cases match {config.only!r}")
    writer = ReportWriter(
        config.report_dir,
        template_url=config.template_url,
        manual_url=config.manual_url,
        prefix=config.assertion_prefix,
        timeout=config.timeout,
        client=registry_client,
        registry=registry,
    )
    reg = writer.load()
    print(f"Server URL: {config.server}")
    env = Environment.from_config(config, http=http, registry=reg)
    try:
        ran = run_cases(env, writer.results, cases, config.parallel)
    finally:
        env.client.close()
    writer.commit()
    failed = [c.name for c in ran if c.failed()]
    if failed:
        print("Some tests failed, but the reporting is complete.")
    code = 1 if failed and config.strict else 0
    out = {
        "ok": not failed,
        "failed": failed,
        "summary": writer.summary,
        "report": str(writer.report_path),
        "manual_report": str(writer.manual_report_path),
    }
    return code, out


def main(argv: Optional[Sequence[str]] = None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    config = config_from_args(args)
    try:
        code, out = run(config)
    except HarnessError:
        traceback.print_exc()
        sys.exit(2)
    if args.json:
        print(json.dumps(out, indent=2))
    sys.exit(code)


if __name__ == '__main__':  # pragma: no cover
    main()
