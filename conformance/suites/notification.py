"""Notification API: SSE subscriptions for create, update and delete events.

Each scenario subscribes first, waits for the stream to settle, then changes
a TD and checks what arrives. Subscriptions are closed by case cleanups so a
fatal check never leaves a stream open.
"""
from __future__ import annotations

import json
import logging
import queue
import time
from typing import Any, Dict, Optional

from tdd_core.recorder import report
from tdd_core.td import mocked_td, serialized_equal
from tdd_core.utils import pretty_json
from tdd_sdk.checks import create_thing, delete_thing, update_thing
from tdd_sdk.events import Event, EventSubscription, SubscriptionError

from ..environment import Environment

logger = logging.getLogger("tdd.events")

EVENT_CREATE = "create"
EVENT_UPDATE = "update"
EVENT_DELETE = "delete"
# earlier directory drafts used thing_created, thing_updated and thing_deleted
EVENT_ALIASES = {
    EVENT_CREATE: "thing_created",
    EVENT_UPDATE: "thing_updated",
    EVENT_DELETE: "thing_deleted",
}
EVENT_TYPES = (EVENT_CREATE, EVENT_UPDATE, EVENT_DELETE) + tuple(EVENT_ALIASES.values())


def subscribe(t, env: Environment, kind: Optional[str] = None, diff: bool = False) -> EventSubscription:
    sub = EventSubscription(env.client.http, env.client.events_url(kind, diff), connect_timeout=env.config.timeout)
    t.cleanup(sub.close)
    sub.start()
    sub.wait_connected(env.config.event_timeout)
    if env.config.event_wait:
        time.sleep(env.config.event_wait)
    return sub


def td_id_of(ev: Event) -> Optional[str]:
    try:
        data = json.loads(ev.data)
    except ValueError:
        return None
    return data.get("id") if isinstance(data, dict) else None


def next_event(sub, env: Environment, id: Optional[str] = None) -> Event:
    """Next event within the event timeout.

    Unknown types are dropped if configured. With ``id`` set, events about
    other TDs are dropped too: cases running in parallel share one directory
    and a subscription sees their changes as well.
    """
    deadline = time.monotonic() + env.config.event_timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise queue.Empty
        ev = sub.next(timeout=remaining)
        if ev.event not in EVENT_TYPES and env.config.ignore_unknown_events:
            logger.info(f"Ignoring unknown event type {ev.event!r} (id={ev.id})")
            continue
        if id is not None:
            other = td_id_of(ev)
            if other is not None and other != id:
                logger.debug(f"Ignoring {ev.event} event for another TD: {other}")
                continue
        return ev


def check_event(t, ev: Event, expected_type: str, id: str, filtered: bool = True) -> Optional[Dict[str, Any]]:
    """Common checks on a received event; return the decoded data or None."""
    data: Optional[Dict[str, Any]] = None

    def event_id(t):
        report(t, "tdd-notification-sse", "tdd-notification-event-id")
        if not ev.id:
            t.fatal("missing event ID")

    def event_type(t):
        ids = ["tdd-notification-sse", "tdd-notification-event-types"]
        if filtered:
            ids.append("tdd-notification-filter-type")
        report(t, *ids)
        if ev.event not in (expected_type, EVENT_ALIASES.get(expected_type)):
            t.fatal("Unexpected event type: %s, expected: %s", ev.event, expected_type)

    def event_data(t):
        nonlocal data
        report(t, "tdd-notification-data")
        try:
            decoded = json.loads(ev.data)
        except ValueError:
            t.fatal("unable to unmarshal the event data to TDD")
        if not isinstance(decoded, dict):
            t.fatal("event data is not a JSON object: %s", ev.data)
        data = decoded

    def event_td_id(t):
        report(t, "tdd-notification-data-td-id")
        if data is None:
            t.fatal("previous errors")
        if data.get("id") != id:
            t.fatal("td id did not match: expected %s, got %s", id, data.get("id"))

    t.run("get event ID", event_id)
    t.run("get event type", event_type)
    t.run("check event data", event_data)
    t.run("check event data td id", event_td_id)
    return data


def expect_event(t, env: Environment, sub, expected_type: str, id: str, filtered: bool = True, diff: bool = False) -> Optional[Dict[str, Any]]:
    try:
        ev = next_event(sub, env, id)
    except queue.Empty:
        def timeout(t):
            report(t, "tdd-notification-sse")
            t.fatal("timed out waiting for data")
        t.run("event subscription timeout", timeout)
        return None
    except SubscriptionError as e:
        if diff:
            def unsupported(t):
                report(t, "tdd-notification-data-diff-unsupported")
                if e.status_code != 501:
                    t.fatal("unexpected response code: %d", e.status_code)
            t.run("event subscription diff unsupported", unsupported)
            return None
        err: Exception = e
    except Exception as e:  # noqa
        err = e
    else:
        return check_event(t, ev, expected_type, id, filtered=filtered)

    def errors(t):
        report(t, "tdd-notification-sse")
        t.fatal("unexpected error while subscribing to notification: %s", err)
    t.run("event subscription errors", errors)
    return None


def expect_no_event(t, env: Environment, sub, kind: str, action: str, id: Optional[str] = None):
    try:
        ev = next_event(sub, env, id)
    except queue.Empty:
        t.log("success: did not get any %s event", kind)
        return
    except Exception as e:  # noqa
        t.fatal("unexpected response to %s subscription %s", kind, e)

    def event_type(t):
        report(t, "tdd-notification-filter-type")
        t.fatal("unexpected %s event received for TD %s", ev.event or kind, action)
    t.run("get event type", event_type)


def create_event(t, env: Environment):
    client = env.client

    def subscriber(t, kind: Optional[str], diff: bool):
        sub = subscribe(t, env, kind, diff)
        id = env.new_id()
        td = mocked_td(id)
        create_thing(t, client, id, td)
        data = expect_event(t, env, sub, EVENT_CREATE, id, filtered=kind is not None, diff=diff)
        if diff and data is not None:
            def create_full(t):
                report(t, "tdd-notification-data-create-full")
                if not serialized_equal(td, data):
                    t.fatal("notification data is not same as the one created: Expected:\n%s\nRetrieved:\n%s",
                            pretty_json(td), pretty_json(data))
            t.run("check event data create full", create_full)

    def update_subscriber(t):
        sub = subscribe(t, env, EVENT_UPDATE)
        id = env.new_id()
        create_thing(t, client, id, mocked_td(id))
        expect_no_event(t, env, sub, EVENT_UPDATE, "create", id)

    t.run("create event subscriber", subscriber, EVENT_CREATE, False)
    t.run("create event with diff subscriber", subscriber, EVENT_CREATE, True)
    t.run("all event subscriber", subscriber, None, False)
    t.run("update event subscriber", update_subscriber)


def update_event(t, env: Environment):
    client = env.client
    id = env.new_id()
    td = mocked_td(id)
    create_thing(t, client, id, td)

    def subscriber(t, kind: Optional[str], diff: bool, title: str):
        sub = subscribe(t, env, kind, diff)
        td["title"] = title
        update_thing(t, client, id, td)
        data = expect_event(t, env, sub, EVENT_UPDATE, id, filtered=kind is not None, diff=diff)
        if diff and data is not None:
            def update_id(t):
                report(t, "tdd-notification-data-update-id")
                if data.get("id") != id:
                    t.fatal("td id did not match: expected %s, got %s", id, data.get("id"))

            def update_diff(t):
                report(t, "tdd-notification-data-update-diff")
                for key in data:
                    if key not in ("id", "title", "registration"):
                        t.fatal("unexpected part in the merge patch : %s", key)
                if data.get("title") != td["title"]:
                    t.fatal("notification data does not reflect the changes in the title: Expected:\n%s\nRetrieved:\n%s",
                            td["title"], data.get("title"))
            t.run("check event data update id", update_id)
            t.run("check event data update diff", update_diff)

    def create_subscriber(t):
        sub = subscribe(t, env, EVENT_CREATE)
        td["title"] = "updated title for create event subscriber"
        update_thing(t, client, id, td)
        expect_no_event(t, env, sub, EVENT_CREATE, "update", id)

    t.run("update event subscriber", subscriber, EVENT_UPDATE, False, "updated title for update event subscriber")
    t.run("update event with diff subscriber", subscriber, EVENT_UPDATE, True, "updated title for update diff event subscriber")
    t.run("all event subscriber", subscriber, None, False, "updated title for all event subscriber")
    t.run("create event subscriber", create_subscriber)


def delete_event(t, env: Environment):
    client = env.client

    def subscriber(t, kind: Optional[str], diff: bool):
        id = env.new_id()
        create_thing(t, client, id, mocked_td(id))
        sub = subscribe(t, env, kind, diff)
        delete_thing(t, client, id)
        data = expect_event(t, env, sub, EVENT_DELETE, id, filtered=kind is not None, diff=diff)
        if diff and data is not None:
            def delete_diff(t):
                report(t, "tdd-notification-data-delete-diff")
                for key in data:
                    if key != "id":
                        t.fatal("unexpected part in the delete notification : %s", key)
            t.run("check event data delete diff", delete_diff)

    def create_subscriber(t):
        id = env.new_id()
        create_thing(t, client, id, mocked_td(id))
        sub = subscribe(t, env, EVENT_CREATE)
        delete_thing(t, client, id)
        expect_no_event(t, env, sub, EVENT_CREATE, "delete", id)

    t.run("delete event subscriber", subscriber, EVENT_DELETE, False)
    t.run("delete event with diff subscriber", subscriber, EVENT_DELETE, True)
    t.run("all event subscriber", subscriber, None, False)
    t.run("create event subscriber", create_subscriber)


CASES = [
    ("CreateEvent", create_event),
    ("UpdateEvent", update_event),
    ("DeleteEvent", delete_event),
]
