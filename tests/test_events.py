import queue

import httpx
import pytest

from tdd_sdk.events import Event, EventSubscription, SubscriptionError, parse_sse

STREAM = (
    ": keep-alive\n"
    "\n"
    "id: 1\n"
    "event: create\n"
    'data: {"id": "urn:x"}\n'
    "\n"
    "event: update\n"
    "data: line one\n"
    "data: line two\n"
    "retry: 3000\n"
    "\n"
    "id: 3\n"
    "data: plain\n"
    "\n"
)


def _stream_client(status=200, body=STREAM):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["accept"] == "text/event-stream"
        return httpx.Response(status, text=body, headers={"content-type": "text/event-stream"})
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_parse_sse_fields():
    events = list(parse_sse(STREAM.splitlines()))
    assert events[0] == Event(id="1", event="create", data='{"id": "urn:x"}')
    assert events[0].json() == {"id": "urn:x"}
    # id persists, multi-line data is joined
    assert events[1] == Event(id="1", event="update", data="line one\nline two", retry=3000)
    # default type
    assert events[2].event == "message" and events[2].id == "3"


def test_parse_sse_without_data_dispatches_nothing():
    assert list(parse_sse(["event: create", "", ": only a comment", ""])) == []


def test_subscription_queues_events():
    with EventSubscription(_stream_client(), "http://dir/events") as sub:
        assert sub.wait_connected(2)
        first = sub.next(timeout=2)
        assert first.event == "create"
        assert sub.next(timeout=2).event == "update"
        assert sub.next(timeout=2).data == "plain"
        with pytest.raises(queue.Empty):
            sub.next(timeout=0.1)


def test_subscription_refused():
    sub = EventSubscription(_stream_client(status=501, body='{"title": "Not Implemented", "status": 501}'), "http://dir/events?diff=true")
    with sub:
        sub.wait_connected(2)
        with pytest.raises(SubscriptionError) as ei:
            sub.next(timeout=2)
    assert ei.value.status_code == 501


def test_subscription_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with EventSubscription(client, "http://dir/events") as sub:
        with pytest.raises(httpx.ConnectError):
            sub.next(timeout=2)
