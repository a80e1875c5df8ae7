"""Things API: create, retrieve, update, patch, delete and list TDs."""
from __future__ import annotations

import json
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from tdd_core.recorder import report, report_group
from tdd_core.td import get_id, merge_patch, mocked_td, strip_fields
from tdd_sdk.checks import (
    assert_content_media_type,
    assert_equal_td,
    assert_error_response,
    assert_registration_info,
    assert_status_code,
    assert_status_in,
    assert_validation_response,
    create_thing,
    read_json,
    retrieve_all_things,
    retrieve_thing,
    send,
    thing_id_from_location,
)
from tdd_sdk.client import MediaType

from ..environment import Environment

CRUD = ("tdd-things-crud", "tdd-things-crudl")
VALIDATION = (
    "tdd-validation-syntactic",
    "tdd-http-error-response",
    "tdd-validation-result",
    "tdd-validation-response",
)


def _is_uri(s: str) -> bool:
    p = urlparse(s)
    return bool(p.scheme) or s.startswith("/")


def check_rejected(t, res: httpx.Response):
    """Sub-cases shared by every "reject invalid" scenario."""
    body = res.content

    def status(t):
        report(t, "tdd-validation-syntactic")
        assert_status_code(t, res, 400, body)

    def response(t):
        report(t, "tdd-http-error-response")
        assert_error_response(t, res, body)

    def validation(t):
        report(t, "tdd-validation-result", "tdd-validation-response")
        assert_validation_response(t, res, body)

    t.run("status", status)
    t.run("response", response)
    t.run("validation", validation)


def create_anonymous_thing(t, env: Environment):
    report(t, *CRUD,
           "tdd-things-create-anonymous-td",
           "tdd-things-create-anonymous-contenttype",
           "tdd-things-create-anonymous-td-resp",
           "tdd-anonymous-td-local-uuid",
           "tdd-anonymous-td-identifier",
           "tdd-things-create-known-vs-anonymous",
           *VALIDATION)
    client = env.client
    td = mocked_td()
    response: Optional[httpx.Response] = None

    def submit(t):
        nonlocal response
        report(t, *CRUD, "tdd-things-create-anonymous-td", "tdd-things-create-anonymous-contenttype")
        response = send(t, "posting", client.create_anonymous, td)

    t.run("submit request", submit)
    if response is None:
        t.fatal("previous errors")
    body = response.content

    def status_code(t):
        report(t, "tdd-things-create-anonymous-td-resp")
        assert_status_code(t, response, 201, body)

    t.run("status code", status_code)

    generated_id = ""

    def location_header(t):
        nonlocal generated_id
        report(t, "tdd-things-create-anonymous-td-resp", "tdd-anonymous-td-local-uuid")
        location = response.headers.get("location", "")
        if not location:
            t.fatal("System-generated ID not in response. Got location header: %r", location)
        prefix = client.anonymous_id_prefix
        if not prefix.startswith("_:") and not _is_uri(location):
            t.fatal("System-generated ID not in a valid URI. Got: %s", location)
        if prefix not in location:
            t.fatal("System-generated ID doesn't have %s scheme. Got: %s", prefix, location)
        generated_id = thing_id_from_location(client, location)

    t.run("location header", location_header)

    def retrieve(t):
        report(t, "tdd-things-create-anonymous-td")
        if not generated_id:
            t.fatal("previous errors")
        stored = retrieve_thing(t, client, generated_id)
        assert_equal_td(t, td, strip_fields(stored, "id"))

    t.run("retrieve", retrieve)

    def registration_info(t):
        report(t, "tdd-anonymous-td-identifier")
        if not generated_id:
            t.fatal("previous errors")
        stored = retrieve_thing(t, client, generated_id)
        get_id(t, stored)

    t.run("registration info", registration_info)

    def reject_put(t):
        report(t, "tdd-things-create-known-vs-anonymous")
        res = send(t, "putting", client.put_collection, mocked_td())
        if not 400 <= res.status_code < 500:
            t.fatal("Anonymous TD submission with PUT not rejected. Got status: %d", res.status_code)

    t.run("reject PUT", reject_put)

    def reject_invalid(t):
        invalid = strip_fields(mocked_td(), "title")
        check_rejected(t, send(t, "posting", client.create_anonymous, invalid))

    t.run("reject invalid", reject_invalid)


def create_thing_case(t, env: Environment):
    report(t, *CRUD,
           "tdd-things-create-known-td",
           "tdd-things-create-known-contenttype",
           "tdd-things-create-known-td-resp",
           *VALIDATION)
    client = env.client
    id = env.new_id()
    td = mocked_td(id)
    response: Optional[httpx.Response] = None

    def request(t):
        nonlocal response
        report(t, *CRUD, "tdd-things-create-known-td", "tdd-things-create-known-contenttype")
        response = send(t, "putting", client.create_or_replace, id, td)

    t.run("request", request)
    if response is None:
        t.fatal("previous errors")
    body = response.content

    def status_code(t):
        report(t, "tdd-things-create-known-td-resp")
        assert_status_code(t, response, 201, body)

    t.run("status code", status_code)

    def reject_invalid(t):
        other = env.new_id()
        invalid = strip_fields(mocked_td(other), "title")
        check_rejected(t, send(t, "putting", client.create_or_replace, other, invalid))

    t.run("reject invalid", reject_invalid)


def retrieve_thing_case(t, env: Environment):
    report(t, *CRUD,
           "tdd-things-retrieve",
           "tdd-things-default-representation",
           "tdd-things-retrieve-resp",
           "tdd-registrationinfo-vocab-created",
           "tdd-registrationinfo-vocab-modified",
           "tdd-http-head")
    client = env.client
    id = env.new_id()
    td = mocked_td(id)
    create_thing(t, client, id, td)
    response: Optional[httpx.Response] = None

    def submit(t):
        nonlocal response
        report(t, *CRUD, "tdd-things-retrieve")
        response = send(t, "getting TD", client.retrieve, id)

    t.run("submit request", submit)
    if response is None:
        t.fatal("previous errors")
    body = response.content

    def status_code(t):
        report(t, "tdd-things-retrieve-resp")
        assert_status_code(t, response, 200, body)

    def content_type(t):
        report(t, "tdd-things-default-representation", "tdd-things-retrieve-resp")
        assert_content_media_type(t, response, MediaType.THING_DESCRIPTION)

    def payload(t):
        report(t, "tdd-things-retrieve")
        assert_equal_td(t, td, read_json(t, response))

    def registration_info(t):
        report(t, "tdd-registrationinfo-vocab-created", "tdd-registrationinfo-vocab-modified")
        stored = retrieve_thing(t, client, id)
        assert_registration_info(t, stored, "created")
        assert_registration_info(t, stored, "modified")

    def head(t):
        report(t, "tdd-http-head")
        res = send(t, "making HEAD request", client.head, id)
        assert_status_code(t, res, 200, res.content)

    t.run("status code", status_code)
    t.run("content type", content_type)
    t.run("payload", payload)
    t.run("registration info", registration_info)
    t.run("HEAD", head)


def update_thing_case(t, env: Environment):
    report(t, *CRUD,
           "tdd-things-update",
           "tdd-things-update-contenttype",
           "tdd-things-update-resp",
           *VALIDATION)
    client = env.client
    id = env.new_id()
    td = mocked_td(id)
    create_thing(t, client, id, td)

    td["title"] = "updated title"
    response: Optional[httpx.Response] = None

    def submit(t):
        nonlocal response
        report(t, *CRUD, "tdd-things-update")
        response = send(t, "putting TD", client.update, id, td)

    t.run("submit request", submit)
    if response is None:
        t.fatal("previous errors")
    body = response.content

    def status_code(t):
        report(t, "tdd-things-update-resp")
        assert_status_in(t, response, (200, 204), body)

    def payload(t):
        report(t, "tdd-things-update")
        stored = retrieve_thing(t, client, id)
        assert_equal_td(t, td, stored)

    def reject_invalid(t):
        invalid = strip_fields(td, "title")
        check_rejected(t, send(t, "putting", client.update, id, invalid))

    t.run("status code", status_code)
    t.run("payload", payload)
    t.run("reject invalid", reject_invalid)


PATCH_REQUEST = ("tdd-things-update-partial", "tdd-things-update-partial-partialtd", "tdd-things-update-partial-contenttype")
PATCH_STATUS = ("tdd-things-update-partial-resp",)
PATCH_RESULT = ("tdd-things-update-partial", "tdd-things-update-partial-mergepatch")

STATUS_FORM = {"href": "https://mylamp.example.com/status"}

# name -> (extra members of the stored TD, merge patch document)
PATCH_SCENARIOS: Dict[str, tuple] = {
    "replace title": ({}, {"title": "new title"}),
    "remove description": ({"description": "this is a test descr"}, {"description": None}),
    "update properties": (
        {"properties": {"status": {"forms": [STATUS_FORM]}}},
        {"properties": {"new_property": {"forms": [{"href": "https://mylamp.example.com/new_property"}]}}},
    ),
    "replace array": (
        {"properties": {"status": {"forms": [STATUS_FORM]}}},
        {"properties": {"status": {"forms": [STATUS_FORM, {"href": "coaps://mylamp.example.com/status"}]}}},
    ),
}


def patch_scenario(t, env: Environment, extra: Dict[str, Any], patch: Dict[str, Any]):
    client = env.client
    id = env.new_id()
    td = mocked_td(id)
    td.update(extra)
    create_thing(t, client, id, td)
    response: Optional[httpx.Response] = None

    def submit(t):
        nonlocal response
        report(t, *PATCH_REQUEST)
        response = send(t, "patching TD", client.patch, id, json.dumps(patch))

    t.run("submit request", submit)
    if response is None:
        t.fatal("previous errors")
    body = response.content

    def status_code(t):
        report(t, *PATCH_STATUS)
        assert_status_in(t, response, (200, 204), body)

    def result(t):
        report(t, *PATCH_RESULT)
        stored = retrieve_thing(t, client, id)
        assert_equal_td(t, merge_patch(td, patch), stored)

    t.run("status code", status_code)
    t.run("result", result)


def patch_thing(t, env: Environment):
    report_group(t, PATCH_REQUEST, PATCH_STATUS, PATCH_RESULT, VALIDATION)

    for name, (extra, patch) in PATCH_SCENARIOS.items():
        t.run(name, patch_scenario, env, extra, patch)

    def reject_invalid(t):
        id = env.new_id()
        create_thing(t, env.client, id, mocked_td(id))
        check_rejected(t, send(t, "patching TD", env.client.patch, id, '{"title": null}'))

    t.run("reject invalid", reject_invalid)


def delete_thing_case(t, env: Environment):
    report(t, *CRUD, "tdd-things-delete", "tdd-things-delete-resp")
    client = env.client
    id = env.new_id()
    create_thing(t, client, id, mocked_td(id))

    def run_delete(t, target: str, expected: int, request_ids):
        response: Optional[httpx.Response] = None

        def submit(t):
            nonlocal response
            report(t, *request_ids)
            response = send(t, "deleting TD", client.delete, target)

        t.run("submit request", submit)
        if response is None:
            t.fatal("previous errors")
        body = response.content

        def status_code(t):
            report(t, "tdd-things-delete-resp")
            assert_status_code(t, response, expected, body)

        t.run("status code", status_code)

    t.run("existing", run_delete, id, 204, CRUD + ("tdd-things-delete",))

    def retrieve_deleted(t):
        report(t, "tdd-things-delete")
        res = send(t, "getting TD", client.retrieve, id)
        assert_status_code(t, res, 404, res.content)

    t.run("retrieve deleted", retrieve_deleted)
    t.run("non-existing", run_delete, "non-existing-td", 404, ("tdd-things-delete",))


def _collection(t, body: bytes):
    try:
        collection = json.loads(body)
    except ValueError as e:
        t.fatal("Error decoding page: %s", e)
    if not isinstance(collection, list) or not collection:
        t.fatal("Unexpected empty collection.")
    return collection


def list_things(t, env: Environment):
    report(t,
           "tdd-things-list-only",
           "tdd-things-crudl",
           "tdd-things-list-method",
           "tdd-things-default-representation",
           "tdd-things-list-resp",
           "tdd-registrationinfo-vocab-created",
           "tdd-registrationinfo-vocab-modified",
           "tdd-anonymous-td-identifier",
           "tdd-http-head")
    client = env.client
    tag = env.new_tag()
    response: Optional[httpx.Response] = None

    def submit(t):
        nonlocal response
        report(t, "tdd-things-list-only", "tdd-things-crudl", "tdd-things-list-method")
        for _ in range(3):
            id = env.new_id()
            td = mocked_td(id)
            td["tag"] = tag
            create_thing(t, client, id, td)
        response = send(t, "getting list of TDs", client.list)

    t.run("submit request", submit)
    if response is None:
        t.fatal("previous errors")
    body = response.content

    def status_code(t):
        report(t, "tdd-things-list-method")
        assert_status_code(t, response, 200, body)

    def content_type(t):
        report(t, "tdd-things-default-representation", "tdd-things-list-resp")
        assert_content_media_type(t, response, MediaType.JSONLD)

    def payload(t):
        report(t, "tdd-things-list-resp")
        listed = []
        for td in _collection(t, body):
            title = td.get("title") if isinstance(td, dict) else None
            if not isinstance(title, str) or not title:
                t.fatal("Object in array may not be a TD: no mandatory title. Body:\n%s", json.dumps(td, indent=2))
            if td.get("tag") == tag:
                listed.append(td)
        if len(listed) != 3:
            t.fatal("Unexpected items in collection: %d. Expected 3 with tag: %s", len(listed), tag)

    def tagged(t):
        # the directory may hold TDs registered long before this run
        for td in _collection(t, body):
            if isinstance(td, dict) and td.get("tag") == tag:
                return td
        t.fatal("No TD with tag %s in the collection", tag)

    def registration_created(t):
        report(t, "tdd-registrationinfo-vocab-created")
        assert_registration_info(t, tagged(t), "created")

    def registration_modified(t):
        report(t, "tdd-registrationinfo-vocab-modified")
        assert_registration_info(t, tagged(t), "modified")

    def anonymous_td_id(t):
        report(t, "tdd-anonymous-td-identifier")
        td = mocked_td()
        tag2 = env.new_tag()
        td["tag"] = tag2
        create_thing(t, client, None, td)
        for item in retrieve_all_things(t, client):
            if isinstance(item, dict) and item.get("tag") == tag2:
                get_id(t, item)
                return
        t.fatal("Could not find the created anonymous TD with tag: %s", tag2)

    def head(t):
        report(t, "tdd-http-head")
        res = send(t, "making HEAD request", client.head)
        assert_status_code(t, res, 200, res.content)

    t.run("status code", status_code)
    t.run("content type", content_type)
    t.run("payload", payload)
    t.run("RegistrationInfo created", registration_created)
    t.run("RegistrationInfo modified", registration_modified)
    t.run("anonymous td id", anonymous_td_id)
    t.run("HEAD", head)


CASES = [
    ("CreateAnonymousThing", create_anonymous_thing),
    ("CreateThing", create_thing_case),
    ("RetrieveThing", retrieve_thing_case),
    ("UpdateThing", update_thing_case),
    ("PatchThing", patch_thing),
    ("DeleteThing", delete_thing_case),
    ("ListThings", list_things),
]
