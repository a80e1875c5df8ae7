import json
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

__all__ = ["DirectoryClient", "MediaType", "DEFAULT_THINGS_PATH", "DEFAULT_ANONYMOUS_ID_PREFIX"]

DEFAULT_THINGS_PATH = "/things"
DEFAULT_ANONYMOUS_ID_PREFIX = "urn:uuid:"


class MediaType:
    JSON = "application/json"
    JSONLD = "application/ld+json"
    THING_DESCRIPTION = "application/td+json"
    MERGE_PATCH = "application/merge-patch+json"
    SPARQL_QUERY = "application/sparql-query"
    PROBLEM = "application/problem+json"
    EVENT_STREAM = "text/event-stream"


class DirectoryClient:
    """Thin httpx wrapper over the Thing Directory HTTP API.

    Every method returns the raw ``httpx.Response``; status and payload checks
    belong to the caller. Transport failures propagate as ``httpx.HTTPError``.
    Pass ``client`` to reuse an existing ``httpx.Client`` (for example a
    FastAPI ``TestClient``); otherwise one is created and owned here.
    """
    def __init__(
        self,
        base_url: str,
        things_path: str = DEFAULT_THINGS_PATH,
        anonymous_id_prefix: str = DEFAULT_ANONYMOUS_ID_PREFIX,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.things_path = "/" + things_path.strip("/")
        self.anonymous_id_prefix = anonymous_id_prefix
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def http(self) -> httpx.Client:
        return self._client

    def close(self):
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ---------------- URLs ----------------
    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def things_url(self, id: Optional[str] = None) -> str:
        if id is None:
            return self.url(self.things_path)
        return self.url(f"{self.things_path}/{id}")

    def events_url(self, kind: Optional[str] = None, diff: bool = False) -> str:
        path = "/events" if not kind else f"/events/{kind}"
        u = self.url(path)
        return u + "?diff=true" if diff else u

    def _send(self, method: str, url: str, content: Optional[bytes] = None, content_type: Optional[str] = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        h: Dict[str, str] = dict(headers or {})
        if content_type:
            h["Content-Type"] = content_type
        return self._client.request(method, url, content=content, headers=h, timeout=self.timeout)

    @staticmethod
    def _body(doc: Any) -> bytes:
        if isinstance(doc, (bytes, bytearray)):
            return bytes(doc)
        if isinstance(doc, str):
            return doc.encode("utf-8")
        return json.dumps(doc).encode("utf-8")

    # ---------------- Things API ----------------
    def create_anonymous(self, td: Any, content_type: str = MediaType.THING_DESCRIPTION) -> httpx.Response:
        return self._send("POST", self.things_url(), self._body(td), content_type)

    def create_or_replace(self, id: str, td: Any, content_type: str = MediaType.THING_DESCRIPTION) -> httpx.Response:
        return self._send("PUT", self.things_url(id), self._body(td), content_type)

    update = create_or_replace

    def put_collection(self, td: Any) -> httpx.Response:
        """PUT to the collection itself; a directory must reject this."""
        return self._send("PUT", self.things_url(), self._body(td), MediaType.THING_DESCRIPTION)

    def retrieve(self, id: str) -> httpx.Response:
        return self._send("GET", self.things_url(id))

    def head(self, id: Optional[str] = None) -> httpx.Response:
        return self._send("HEAD", self.things_url(id))

    def patch(self, id: str, patch: Any, content_type: str = MediaType.MERGE_PATCH) -> httpx.Response:
        return self._send("PATCH", self.things_url(id), self._body(patch), content_type)

    def delete(self, id: str) -> httpx.Response:
        return self._send("DELETE", self.things_url(id))

    def list(self) -> httpx.Response:
        return self._send("GET", self.things_url())

    # ---------------- Search API ----------------
    def search_jsonpath(self, query: str) -> httpx.Response:
        return self._send("GET", self.url("/search/jsonpath") + "?query=" + quote(query, safe=""))

    def search_xpath(self, query: str) -> httpx.Response:
        return self._send("GET", self.url("/search/xpath") + "?query=" + quote(query, safe=""))

    def search_sparql(self, query: str, method: str = "GET") -> httpx.Response:
        method = method.upper()
        if method == "GET":
            return self._send("GET", self.url("/search/sparql") + "?query=" + quote(query, safe=""))
        if method == "POST":
            return self._send("POST", self.url("/search/sparql"), query.encode("utf-8"), MediaType.SPARQL_QUERY)
        raise ValueError(f"unsupported SPARQL method: {method}")
