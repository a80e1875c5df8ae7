import csv
import json

import pytest

from tdd_core.assertions import AssertionRegistry, RegistryEntry
from tdd_core.results import HarnessError
from tdd_sdk.config import HarnessConfig

from conformance import harness
from conformance.suites import SUITES


def _registry():
    return AssertionRegistry([
        RegistryEntry("tdd-things-crud"),
        RegistryEntry("tdd-things-delete"),
        RegistryEntry("tdd-things-delete-resp"),
        RegistryEntry("tdd-search-sparql"),
        RegistryEntry("tdd-never-tested"),
        RegistryEntry("tdd-manual-only", manual=True),
    ])


def _config(tmp_path, **kw):
    return HarnessConfig(server="http://testserver", report_dir=str(tmp_path / "report"), event_wait=0, **kw)


def test_run_things_suite_writes_reports(directory, tmp_path, capsys):
    code, out = harness.run(_config(tmp_path, only="things"), http=directory, registry=_registry())
    assert code == 0
    assert out["ok"] is True and out["failed"] == []
    printed = capsys.readouterr().out
    assert "Server URL: http://testserver" in printed
    assert "[case] CreateThing: PASS" in printed

    with open(out["report"], newline="") as f:
        rows = {r[0]: r for r in csv.reader(f)}
    assert rows["tdd-things-crud"][1] == "pass"
    assert rows["tdd-things-delete"][1] == "pass"
    assert rows["tdd-never-tested"][1:] == ["null", "not tested by this suite"]
    # unknown IDs attributed by the cases are still reported
    assert rows["tdd-things-list-resp"][1] == "pass"

    with open(out["manual_report"], newline="") as f:
        manual = [r[0] for r in csv.reader(f)][1:]
    assert manual == ["tdd-manual-only", "tdd-never-tested", "tdd-search-sparql"]
    assert out["summary"]["covered"] == 3


def test_failed_cases_exit_zero_unless_strict(directory, tmp_path, capsys):
    code, out = harness.run(_config(tmp_path, only="notification"), http=directory, registry=_registry())
    assert code == 0 and out["ok"] is False
    assert "Some tests failed, but the reporting is complete." in capsys.readouterr().out

    code, out = harness.run(_config(tmp_path, only="CreateEvent", strict=True), http=directory, registry=_registry())
    assert code == 1 and out["failed"] == ["CreateEvent"]


def test_parallel_run_matches_serial(directory, tmp_path):
    _, serial = harness.run(_config(tmp_path / "s", only="things"), http=directory, registry=_registry())
    _, parallel = harness.run(_config(tmp_path / "p", only="things", parallel=4), http=directory, registry=_registry())
    assert serial["summary"] == parallel["summary"]
    with open(serial["report"]) as a, open(parallel["report"]) as b:
        # comments list case names in completion order, statuses must agree
        assert [r[:2] for r in csv.reader(a)] == [r[:2] for r in csv.reader(b)]


def test_unknown_case_selection(tmp_path):
    with pytest.raises(SystemExit):
        harness.run(_config(tmp_path, only="NoSuchCase"), registry=_registry())


def test_suite_defect_aborts_run(directory, tmp_path, monkeypatch):
    def broken(t, env):
        raise HarnessError("bad assertion id")

    monkeypatch.setitem(SUITES, "things", [("Broken", broken)])
    with pytest.raises(HarnessError):
        harness.run(_config(tmp_path, only="things"), http=directory, registry=_registry())


def test_config_from_args_merges_env():
    args = harness.build_parser().parse_args(["--testJSONPath", "--parallel", "3", "--things-path", "/td"])
    config = harness.config_from_args(args, env={"TDD_SERVER_URL": "http://dir.example:8081/", "TDD_REPORT_DIR": "out"})
    assert config.server == "http://dir.example:8081"
    assert config.test_jsonpath and not config.test_xpath
    assert config.parallel == 3
    assert config.things_path == "/td"
    assert config.report_dir == "out"

    args = harness.build_parser().parse_args(["--server", "http://cli.example"])
    config = harness.config_from_args(args, env={"TDD_SERVER_URL": "http://env.example"})
    assert config.server == "http://cli.example"


def test_main_json_output(tmp_path, monkeypatch, capsys):
    calls = []

    def fake_run(config):
        calls.append(config)
        return 0, {"ok": True, "failed": []}

    monkeypatch.setattr(harness, "run", fake_run)
    monkeypatch.setenv("TDD_SERVER_URL", "http://dir.example")
    with pytest.raises(SystemExit) as ei:
        harness.main(["--json", "--report-dir", str(tmp_path)])
    assert ei.value.code == 0
    assert json.loads(capsys.readouterr().out) == {"ok": True, "failed": []}
    assert calls[0].report_dir == str(tmp_path)
