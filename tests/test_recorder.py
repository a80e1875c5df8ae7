import pytest

from tdd_core import recorder
from tdd_core.case import run_case
from tdd_core.recorder import Record, report, report_group, report_record
from tdd_core.results import HarnessError, ResultStore


def test_report_reflects_final_outcome():
    store = ResultStore()

    def body(t):
        report(t, "tdd-a")
        t.run("ok", lambda t: report(t, "tdd-b"))

        def bad(t):
            report(t, "tdd-c")
            t.fatal("nope")

        t.run("bad", bad)

    run_case("Top", body, store)
    snap = store.snapshot()
    assert snap["tdd-b"].passed == ["Top/ok"]
    assert snap["tdd-c"].failed == ["Top/bad"]
    # parent failed through its child
    assert snap["tdd-a"].failed == ["Top"]


def test_report_on_skipped_case():
    store = ResultStore()

    def body(t):
        report(t, "tdd-s")
        t.skip("not enabled")

    run_case("Skip", body, store)
    assert store.snapshot()["tdd-s"].skipped == ["Skip"]


def test_report_with_no_ids_records_nothing():
    store = ResultStore()
    run_case("Empty", lambda t: report(t), store)
    assert len(store) == 0


def test_report_group_attributes_every_group():
    store = ResultStore()
    run_case("G", lambda t: report_group(t, ("tdd-x", "tdd-y"), ["tdd-z"]), store)
    assert store.ids() == ["tdd-x", "tdd-y", "tdd-z"]


def test_report_rejects_bad_id_immediately():
    with pytest.raises(HarnessError):
        run_case("Bad", lambda t: report(t, "tdd a"), ResultStore())


def test_report_record_fills_status_and_note():
    store = ResultStore()
    r = Record(assertions=["tdd-r"])

    def body(t):
        report_record(t, r)
        recorder.fatal(t, r, "bad status %d", 500)

    run_case("Rec", body, store)
    assert r.status == "failed"
    assert r.comments == "bad status 500"
    assert store.snapshot()["tdd-r"].notes == ["Rec: bad status 500"]


def test_report_record_skip():
    store = ResultStore()
    r = Record(assertions=["tdd-r"])

    def body(t):
        report_record(t, r)
        recorder.skip(t, r, "not implemented")

    c = run_case("Rec", body, store)
    assert c.skipped()
    assert r.status == "skipped"
    assert store.snapshot()["tdd-r"].skipped == ["Rec"]


def test_report_record_none_is_allowed():
    store = ResultStore()
    run_case("None", lambda t: report_record(t, None), store)
    assert len(store) == 0


def test_report_record_with_status_is_a_harness_error():
    with pytest.raises(HarnessError):
        run_case("Preset", lambda t: report_record(t, Record(assertions=["tdd-r"], status="passed")), ResultStore())
