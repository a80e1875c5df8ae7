import queue
import time

from tdd_core.case import run_case
from tdd_core.results import ResultStore
from tdd_sdk.config import HarnessConfig
from tdd_sdk.events import Event, SubscriptionError

from conformance.environment import Environment
from conformance.harness import run_cases
from conformance.suites import notification
from conformance.suites.notification import check_event, expect_event, expect_no_event, next_event


class StubSubscription:
    """Replays queued items through the EventSubscription.next contract."""

    def __init__(self, *items):
        self.items = list(items)

    def next(self, timeout=None):
        if not self.items:
            raise queue.Empty
        item = self.items.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _env(**kw):
    config = HarnessConfig(server="http://testserver", event_timeout=0.2, event_wait=0, **kw)
    return Environment.from_config(config)


def _run(fn):
    store = ResultStore()
    c = run_case("Notify", fn, store)
    return c, store.snapshot()


def test_check_event_passes_on_matching_event():
    ev = Event(id="1", event="create", data='{"id": "urn:a", "title": "x"}')
    got = []
    c, snap = _run(lambda t: got.append(check_event(t, ev, "create", "urn:a")))
    assert not c.failed()
    assert got == [{"id": "urn:a", "title": "x"}]
    for aid in ("tdd-notification-event-id", "tdd-notification-event-types", "tdd-notification-filter-type",
                "tdd-notification-data", "tdd-notification-data-td-id"):
        assert snap[aid].passed, aid


def test_check_event_accepts_draft_type_names():
    ev = Event(id="7", event="thing_created", data='{"id": "urn:a"}')
    c, snap = _run(lambda t: check_event(t, ev, "create", "urn:a"))
    assert not c.failed()
    assert snap["tdd-notification-event-types"].passed


def test_check_event_reports_each_mismatch():
    ev = Event(id="", event="update", data='{"id": "urn:other"}')
    c, snap = _run(lambda t: check_event(t, ev, "create", "urn:a", filtered=False))
    assert c.failed()
    assert snap["tdd-notification-event-id"].failed
    assert snap["tdd-notification-event-types"].failed
    assert snap["tdd-notification-data"].passed
    assert snap["tdd-notification-data-td-id"].failed
    assert "tdd-notification-filter-type" not in snap


def test_check_event_bad_data():
    ev = Event(id="1", event="create", data="not json")
    c, snap = _run(lambda t: check_event(t, ev, "create", "urn:a"))
    assert snap["tdd-notification-data"].failed
    # dependent check fails on previous errors
    assert snap["tdd-notification-data-td-id"].failed


def test_expect_event_timeout():
    env = _env()
    c, snap = _run(lambda t: expect_event(t, env, StubSubscription(), "create", "urn:a"))
    assert c.failed()
    assert snap["tdd-notification-sse"].failed == ["Notify/event_subscription_timeout"]


def test_expect_event_diff_unsupported_is_a_pass():
    env = _env()
    sub = StubSubscription(SubscriptionError(501))
    c, snap = _run(lambda t: expect_event(t, env, sub, "create", "urn:a", diff=True))
    assert not c.failed()
    assert snap["tdd-notification-data-diff-unsupported"].passed


def test_expect_event_diff_other_status_fails():
    env = _env()
    sub = StubSubscription(SubscriptionError(500))
    c, snap = _run(lambda t: expect_event(t, env, sub, "create", "urn:a", diff=True))
    assert snap["tdd-notification-data-diff-unsupported"].failed


def test_expect_event_refused_without_diff():
    env = _env()
    sub = StubSubscription(SubscriptionError(404))
    c, snap = _run(lambda t: expect_event(t, env, sub, "create", "urn:a"))
    assert snap["tdd-notification-sse"].failed == ["Notify/event_subscription_errors"]


def test_unknown_events_are_skipped_when_configured():
    env = _env(ignore_unknown_events=True)
    sub = StubSubscription(Event(id="0", event="heartbeat", data="{}"), Event(id="1", event="delete", data="{}"))
    assert next_event(sub, env).event == "delete"

    strict = _env()
    sub = StubSubscription(Event(id="0", event="heartbeat", data="{}"))
    assert next_event(sub, strict).event == "heartbeat"


def test_expect_no_event():
    env = _env()
    c, snap = _run(lambda t: expect_no_event(t, env, StubSubscription(), "update", "create"))
    assert not c.failed() and not snap
    assert "did not get any update event" in c.logs[-1]

    sub = StubSubscription(Event(id="1", event="update", data="{}"))
    c, snap = _run(lambda t: expect_no_event(t, env, sub, "update", "create"))
    assert c.failed()
    assert snap["tdd-notification-filter-type"].failed


def test_notification_suite_against_directory_without_events(env):
    # the fake answers 501 to every subscription
    store = ResultStore()
    c = run_case("CreateEvent", notification.create_event, store, env)
    snap = store.snapshot()
    assert c.failed()
    assert snap["tdd-notification-data-diff-unsupported"].passed
    assert snap["tdd-notification-sse"].failed


def test_next_event_skips_events_for_other_tds():
    env = _env()
    sub = StubSubscription(
        Event(id="1", event="create", data='{"id": "urn:b"}'),
        Event(id="2", event="create", data='{"id": "urn:a"}'),
    )
    assert next_event(sub, env, "urn:a").id == "2"

    # events without a readable id are handed to the checks
    sub = StubSubscription(Event(id="3", event="create", data="not json"))
    assert next_event(sub, env, "urn:a").id == "3"


def test_expect_event_ignores_other_tds():
    env = _env()
    sub = StubSubscription(
        Event(id="1", event="update", data='{"id": "urn:b"}'),
        Event(id="2", event="create", data='{"id": "urn:a"}'),
    )
    c, snap = _run(lambda t: expect_event(t, env, sub, "create", "urn:a"))
    assert not c.failed()
    assert snap["tdd-notification-filter-type"].passed


def test_expect_no_event_ignores_other_tds():
    env = _env()
    sub = StubSubscription(Event(id="1", event="update", data='{"id": "urn:b"}'))
    c, snap = _run(lambda t: expect_no_event(t, env, sub, "update", "create", "urn:a"))
    assert not c.failed() and not snap

    sub = StubSubscription(Event(id="1", event="update", data='{"id": "urn:a"}'))
    c, snap = _run(lambda t: expect_no_event(t, env, sub, "update", "create", "urn:a"))
    assert snap["tdd-notification-filter-type"].failed


def test_notification_cases_pass_with_live_events(streaming_directory, streaming_env):
    app, _ = streaming_directory
    store = ResultStore()
    for name, fn in notification.CASES:
        c = run_case(name, fn, store, streaming_env)
        assert not c.failed(), (name, c.logs)
    snap = store.snapshot()
    for aid in ("tdd-notification-sse", "tdd-notification-event-id", "tdd-notification-event-types",
                "tdd-notification-filter-type", "tdd-notification-data", "tdd-notification-data-td-id",
                "tdd-notification-data-create-full", "tdd-notification-data-update-id",
                "tdd-notification-data-update-diff", "tdd-notification-data-delete-diff"):
        assert snap[aid].passed and not snap[aid].failed, aid
    assert "tdd-notification-data-diff-unsupported" not in snap
    # case cleanups closed every stream
    deadline = time.monotonic() + 2
    while app.state.events.subscriber_count() and time.monotonic() < deadline:
        time.sleep(0.02)
    assert app.state.events.subscriber_count() == 0


def test_notification_cases_in_parallel_see_only_their_tds(streaming_env):
    results = ResultStore()
    cases = run_cases(streaming_env, results, notification.CASES, parallel=3)
    assert [c.name for c in cases] == ["CreateEvent", "UpdateEvent", "DeleteEvent"]
    assert not any(c.failed() for c in cases), [c.logs for c in cases]
    assert not results.snapshot()["tdd-notification-filter-type"].failed
