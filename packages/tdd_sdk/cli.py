"""Thing Directory conformance CLI

- Server URL via --server or TDD_SERVER_URL (also the other TDD_* env vars)
- Consistent --json output shape with ok/error
- Subcommands: run (full harness + CSV report), assertions (list the normative
  registry with manual tags), ping (reachability of the directory)
"""

import argparse
import json
import logging
import sys
import textwrap
import traceback
from typing import Optional

import httpx

from tdd_core.assertions import ASSERTIONS_MANUAL_URL, ASSERTIONS_TEMPLATE_URL, load_registry

from .client import DirectoryClient

EXIT_OK = 0
EXIT_USER = 1
EXIT_INTERNAL = 2


def cmd_run(args):
    from conformance.harness import config_from_args, run

    config = config_from_args(args)
    code, out = run(config)
    if args.json:
        print(json.dumps(out, indent=2))
    sys.exit(code)


def cmd_assertions(args):
    registry = load_registry(
        args.template_url or ASSERTIONS_TEMPLATE_URL,
        None if args.no_manual else (args.manual_url or ASSERTIONS_MANUAL_URL),
        cache_dir=args.report_dir,
        prefix=args.prefix,
    )
    if args.json:
        entries = [{"id": e.id, "manual": e.manual} for e in registry]
        print(json.dumps({"ok": True, "count": len(registry), "assertions": entries}, indent=2))
        return
    for e in registry:
        print(f"{e.id}{'  [manual]' if e.manual else ''}")
    print(f"{len(registry)} assertions, {len(registry.manual_ids())} manual")


def cmd_ping(args):
    from conformance.harness import config_from_args

    config = config_from_args(args)
    with DirectoryClient(config.server, things_path=config.things_path, timeout=config.timeout) as client:
        try:
            r = client.list()
        except httpx.HTTPError as e:
            _emit_error(args, f"unreachable: {e}")
    ok = r.status_code == 200
    if args.json:
        print(json.dumps({"ok": ok, "code": r.status_code, "url": client.things_url()}, indent=2))
    else:
        print("reachable" if ok else f"unexpected status ({r.status_code})")
    if not ok:
        sys.exit(EXIT_USER)


def build_parser():
    from conformance.harness import add_run_arguments

    p = argparse.ArgumentParser(
        prog="tdd-conformance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Thing Directory conformance CLI",
        epilog=textwrap.dedent("""Env vars:
  TDD_SERVER_URL (directory base URL)
  TDD_TEMPLATE_URL / TDD_MANUAL_URL (assertion registry sources)
  TDD_REPORT_DIR, TDD_THINGS_PATH, TDD_ANONYMOUS_ID_PREFIX
"""),
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    s_run = sub.add_parser("run", help="Run all cases and write the report")
    add_run_arguments(s_run)
    s_run.set_defaults(func=cmd_run)

    s_a = sub.add_parser("assertions", help="List normative assertions")
    s_a.add_argument("--templateURL", dest="template_url")
    s_a.add_argument("--manualURL", dest="manual_url")
    s_a.add_argument("--no-manual", action="store_true", help="Do not load the manual list")
    s_a.add_argument("--report-dir", dest="report_dir", default="report")
    s_a.add_argument("--prefix", default="tdd-")
    s_a.add_argument("--json", action="store_true")
    s_a.add_argument("-v", "--verbose", action="store_true")
    s_a.set_defaults(func=cmd_assertions)

    s_p = sub.add_parser("ping", help="Directory reachability check")
    s_p.add_argument("--server")
    s_p.add_argument("--things-path", dest="things_path")
    s_p.add_argument("--timeout", type=float)
    s_p.add_argument("--json", action="store_true")
    s_p.add_argument("-v", "--verbose", action="store_true")
    s_p.set_defaults(func=cmd_ping)

    return p


def _emit_error(args, message: str, code: int = EXIT_USER):
    if getattr(args, 'json', False):
        print(json.dumps({"ok": False, "error": message}, indent=2))
    else:
        print(f"Error: {message}", file=sys.stderr)
    sys.exit(code)


def main(argv: Optional[list] = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO)
    try:
        args.func(args)
    except KeyboardInterrupt:
        _emit_error(args, "aborted")
    except SystemExit:
        raise
    except Exception as e:
        tb_last = traceback.format_exc().splitlines()[-1]
        _emit_error(args, f"{e} ({tb_last})", EXIT_INTERNAL)


if __name__ == "__main__":
    main()
