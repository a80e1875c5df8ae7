"""Response assertions and fatal-on-error fixtures for directory cases.

Every helper takes the case handle ``t`` first and ends the case through
``t.fatal`` on mismatch; none of them return error values.
"""
import datetime
import json
import re
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from tdd_core.td import serialized_equal
from tdd_core.utils import now_utc, pretty_json

from .client import DirectoryClient, MediaType

__all__ = [
    "ProblemDetails", "ValidationErrorItem",
    "read_json", "media_type_of", "assert_status_code", "assert_status_in", "assert_content_media_type",
    "assert_error_response", "assert_validation_response", "assert_registration_info",
    "assert_equal_td", "parse_rfc3339", "thing_id_from_location", "send",
    "create_thing", "retrieve_thing", "update_thing", "delete_thing", "retrieve_all_things",
    "REGISTRATION_MAX_AGE",
]

REGISTRATION_MAX_AGE = datetime.timedelta(minutes=1)
RFC3339_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})?$")


class ValidationErrorItem(BaseModel):
    model_config = ConfigDict(extra="allow")
    field: str
    description: str


class ProblemDetails(BaseModel):
    """RFC 7807 problem body, with the directory's ``validationErrors`` extension."""
    model_config = ConfigDict(extra="allow")
    type: Optional[str] = None
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    validationErrors: Optional[List[ValidationErrorItem]] = None


def _pretty_body(body: Optional[bytes]) -> str:
    if not body:
        return ""
    try:
        return pretty_json(json.loads(body))
    except ValueError:
        return body.decode("utf-8", errors="replace")


def read_json(t, resp: Optional[httpx.Response]) -> Any:
    if resp is None:
        t.fatal("previous errors")
    try:
        return json.loads(resp.content)
    except ValueError as e:
        t.fatal("Error decoding body: %s. Body:\n%s", e, resp.text)


def assert_status_code(t, resp: Optional[httpx.Response], expected: int, body: Optional[bytes] = None):
    if resp is None:
        t.fatal("previous errors")
    got = resp.status_code
    if got != expected:
        text = _pretty_body(body if body is not None else resp.content)
        if text:
            t.log("Body: %s", text)
        t.fatal("Expected status %d, got: %d", expected, got)


def assert_status_in(t, resp: Optional[httpx.Response], expected: Iterable[int], body: Optional[bytes] = None):
    if resp is None:
        t.fatal("previous errors")
    expected = list(expected)
    got = resp.status_code
    if got not in expected:
        text = _pretty_body(body if body is not None else resp.content)
        if text:
            t.log("Body: %s", text)
        lo, hi = min(expected), max(expected)
        t.fatal("Expected status in %d-%d, got: %d", lo, hi, got)


def media_type_of(resp: httpx.Response) -> str:
    return resp.headers.get("content-type", "").split(";", 1)[0].strip().lower()


def assert_content_media_type(t, resp: Optional[httpx.Response], expected: str):
    if resp is None:
        t.fatal("previous errors")
    got = resp.headers.get("content-type", "")
    media_type = media_type_of(resp)
    if not media_type or "/" not in media_type:
        t.fatal("Error parsing content media type: %r", got)
    if media_type != expected:
        t.fatal("Expected Content-Type: %s, got %s", expected, got)


def _problem(t, resp: httpx.Response, body: Optional[bytes]) -> ProblemDetails:
    raw = body if body is not None else resp.content
    try:
        return ProblemDetails.model_validate_json(raw)
    except ValidationError as e:
        t.fatal("Error response is not a problem details object: %s. Body:\n%s", e, _pretty_body(raw))


def assert_error_response(t, resp: Optional[httpx.Response], body: Optional[bytes] = None) -> ProblemDetails:
    if resp is None:
        t.fatal("previous errors")
    media_type = media_type_of(resp)
    if media_type not in (MediaType.PROBLEM, MediaType.JSON):
        t.fatal("Expected Content-Type: %s, got %s", MediaType.PROBLEM, resp.headers.get("content-type", ""))
    problem = _problem(t, resp, body)
    if problem.status != resp.status_code:
        t.fatal("Problem status %d does not match response status %d", problem.status, resp.status_code)
    return problem


def assert_validation_response(t, resp: Optional[httpx.Response], body: Optional[bytes] = None) -> ProblemDetails:
    problem = assert_error_response(t, resp, body)
    if not problem.validationErrors:
        t.fatal("Missing validationErrors in error response: %s", problem.model_dump_json())
    return problem


def parse_rfc3339(value: str) -> datetime.datetime:
    """Parse an RFC 3339 date-time, keeping at most microsecond precision.

    Fractions of any length are accepted (nanosecond stamps are common)
    and a timezone offset is required.
    """
    m = RFC3339_RE.match(value.strip())
    if m is None:
        raise ValueError(f"not an RFC 3339 date-time: {value}")
    date, clock, fraction, offset = m.groups()
    if offset is None:
        raise ValueError(f"missing timezone offset: {value}")
    if offset in ("Z", "z"):
        offset = "+00:00"
    fraction = (fraction or "").ljust(6, "0")[:6]
    return datetime.datetime.fromisoformat(f"{date}T{clock}.{fraction}{offset}")


def assert_registration_info(t, td: Dict[str, Any], field: str, max_age: datetime.timedelta = REGISTRATION_MAX_AGE) -> datetime.datetime:
    """Check ``registration.<field>`` is an RFC 3339 time within ``max_age`` of now."""
    reg = td.get("registration") if isinstance(td, dict) else None
    if not isinstance(reg, dict):
        t.fatal("invalid or missing registration object: %r", reg)
    value = reg.get(field)
    if not isinstance(value, str):
        t.fatal("invalid or missing registration.%s: %r", field, value)
    try:
        ts = parse_rfc3339(value)
    except ValueError as e:
        t.fatal("invalid registration.%s format: %s", field, e)
    age = now_utc() - ts
    if age < datetime.timedelta(0) or age > max_age:
        t.fatal("registration.%s is in future or too old: %s", field, value)
    return ts


def assert_equal_td(t, expected: Dict[str, Any], got: Dict[str, Any]):
    if not isinstance(got, dict):
        t.fatal("Expected a TD object, got: %s", pretty_json(got))
    if not serialized_equal(expected, got):
        t.fatal("Expected:\n%s\nGot:\n%s", pretty_json(expected), pretty_json(got))


def thing_id_from_location(client: DirectoryClient, location: str) -> str:
    """Map a Location header to a thing ID (absolute, path-relative or bare ID)."""
    for prefix in (client.things_url() + "/", client.things_path + "/", client.things_path.lstrip("/") + "/"):
        if location.startswith(prefix):
            return location[len(prefix):]
    return location


def send(t, what: str, fn: Callable[..., httpx.Response], *args: Any) -> httpx.Response:
    """Call ``fn(*args)``; a transport error ends the case as "Error <what>: ..."."""
    try:
        return fn(*args)
    except httpx.HTTPError as e:
        t.fatal("Error %s: %s", what, e)


def _fatal_http(t, what: str, e: httpx.HTTPError):
    t.fatal("Error %s: %s", what, e)


def create_thing(t, client: DirectoryClient, id: Optional[str], td: Dict[str, Any]) -> str:
    """Create ``td`` (anonymously when ``id`` is empty) and return its ID."""
    try:
        if id:
            resp = client.create_or_replace(id, td)
        else:
            resp = client.create_anonymous(td)
    except httpx.HTTPError as e:
        _fatal_http(t, "posting", e)
    if resp.status_code != 201:
        t.fatal("Error creating test data: %d: %s", resp.status_code, resp.text)
    if id:
        return id
    location = resp.headers.get("location")
    if not location:
        t.fatal("System-generated ID not in response. Headers: %s", dict(resp.headers))
    return thing_id_from_location(client, location)


def retrieve_thing(t, client: DirectoryClient, id: str) -> Dict[str, Any]:
    try:
        resp = client.retrieve(id)
    except httpx.HTTPError as e:
        _fatal_http(t, "getting TD", e)
    if resp.status_code != 200:
        t.fatal("Error retrieving test data: %d: %s", resp.status_code, resp.text)
    td = read_json(t, resp)
    if not isinstance(td, dict):
        t.fatal("Retrieved TD is not an object: %s", resp.text)
    return td


def update_thing(t, client: DirectoryClient, id: str, td: Dict[str, Any]):
    try:
        resp = client.update(id, td)
    except httpx.HTTPError as e:
        _fatal_http(t, "updating", e)
    if resp.status_code not in (200, 204):
        t.fatal("Error updating test data: %d: %s", resp.status_code, resp.text)


def delete_thing(t, client: DirectoryClient, id: str):
    try:
        resp = client.delete(id)
    except httpx.HTTPError as e:
        _fatal_http(t, "deleting", e)
    if resp.status_code != 204:
        t.fatal("Error deleting test data: %d: %s", resp.status_code, resp.text)


def retrieve_all_things(t, client: DirectoryClient) -> List[Dict[str, Any]]:
    try:
        resp = client.list()
    except httpx.HTTPError as e:
        _fatal_http(t, "getting TDs", e)
    if resp.status_code != 200:
        t.fatal("Error retrieving test data: %d: %s", resp.status_code, resp.text)
    tds = read_json(t, resp)
    if not isinstance(tds, list):
        t.fatal("Expected an array of TDs, got: %s", resp.text)
    return tds
