"""Server-Sent Events subscriber for the directory notification API.

The stream is read on a background thread and parsed line by line; each
complete event (terminated by a blank line) is pushed onto a queue that the
test case drains with :meth:`EventSubscription.next`. A non-200 answer to
the subscription request is queued as :class:`SubscriptionError` and raised
from ``next`` so the caller can tell "refused" from "no event in time".
"""
import json
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional

import httpx

from .client import MediaType

logger = logging.getLogger("tdd.events")

__all__ = ["Event", "SubscriptionError", "EventSubscription", "parse_sse"]


@dataclass
class Event:
    id: str = ""
    event: str = ""
    data: str = ""
    retry: Optional[int] = None

    def json(self) -> Any:
        return json.loads(self.data)


class SubscriptionError(Exception):
    def __init__(self, status_code: int, message: str = "request failed"):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


def parse_sse(lines: Iterable[str]) -> Iterator[Event]:
    last_id = ""
    event = ""
    data: List[str] = []
    retry: Optional[int] = None
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data:
                yield Event(id=last_id, event=event or "message", data="\n".join(data), retry=retry)
            event, data, retry = "", [], None
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data.append(value)
        elif name == "event":
            event = value
        elif name == "id":
            if "\0" not in value:
                last_id = value
        elif name == "retry":
            if value.isdigit():
                retry = int(value)
        # unknown field names are ignored


class EventSubscription:
    """Background SSE reader; use as a context manager so the stream is closed."""

    def __init__(self, client: httpx.Client, url: str, connect_timeout: float = 10.0):
        self.client = client
        self.url = url
        self.connect_timeout = connect_timeout
        self.connected = threading.Event()
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._stop = threading.Event()
        self._response: Optional[httpx.Response] = None
        self._thread = threading.Thread(target=self._run, name="sse-subscriber", daemon=True)

    def start(self) -> "EventSubscription":
        self._thread.start()
        return self

    def _run(self):
        headers = {"Accept": MediaType.EVENT_STREAM, "Cache-Control": "no-cache"}
        timeout = httpx.Timeout(self.connect_timeout, read=None)
        try:
            with self.client.stream("GET", self.url, headers=headers, timeout=timeout) as resp:
                self._response = resp
                if resp.status_code != 200:
                    resp.read()
                    logger.info(f"Subscription to {self.url} refused: {resp.status_code}")
                    self._queue.put(SubscriptionError(resp.status_code))
                    return
                self.connected.set()
                for ev in parse_sse(resp.iter_lines()):
                    if self._stop.is_set():
                        break
                    logger.debug(f"Event from {self.url}: id={ev.id} type={ev.event}")
                    self._queue.put(ev)
        except Exception as e:  # noqa
            if not self._stop.is_set():
                logger.warning(f"Subscription to {self.url} failed: {e}")
                self._queue.put(e)
        finally:
            self.connected.set()

    def wait_connected(self, timeout: Optional[float] = None) -> bool:
        return self.connected.wait(timeout)

    def next(self, timeout: Optional[float] = None) -> Event:
        """Return the next event; raise queue.Empty on timeout or the reader's error."""
        item = self._queue.get(timeout=timeout)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self._stop.set()
        resp = self._response
        if resp is not None:
            try:
                resp.close()
            except Exception as e:  # noqa
                logger.debug(f"Closing stream {self.url}: {e}")
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)

    def __enter__(self) -> "EventSubscription":
        if not self._thread.is_alive() and not self.connected.is_set():
            self.start()
        return self

    def __exit__(self, *exc):
        self.close()
