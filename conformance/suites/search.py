"""Search API: JSONPath, XPath and SPARQL queries."""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import httpx

from tdd_core.recorder import Record, report, report_record, skip
from tdd_core.td import get_id, mocked_td, serialized_equal
from tdd_core.utils import pretty_json
from tdd_sdk.checks import assert_content_media_type, assert_status_code, create_thing, read_json, send
from tdd_sdk.client import MediaType

from ..environment import Environment

SPARQL_QUERY = "select * { ?s ?p ?o }limit 5"
SPARQL_FEDERATED_QUERY = """select * {
    service <https://dbpedia.org/sparql>{
         ?s ?p ?o
    }
}limit 5"""


def sparql_results_sample() -> Dict[str, Any]:
    return {"head": {"vars": ["s", "p", "o"]}}


def _filtered(t, body: bytes) -> List[Dict[str, Any]]:
    try:
        tds = json.loads(body)
    except ValueError as e:
        t.fatal("Error decoding page: %s", e)
    if not isinstance(tds, list):
        t.fatal("Expected an array of TDs, got: %s", body.decode("utf-8", errors="replace"))
    return tds


def query_suite(t, env: Environment, lang: str, search: Callable[[str], httpx.Response], tag_query: str, bad_query: str):
    """Filter, filter-anonymous and bad-query scenarios for one query language.

    ``tag_query`` is a format string taking the tag to match.
    """
    request_ids = (f"tdd-search-{lang}", f"tdd-search-{lang}-method", f"tdd-search-{lang}-parameter")
    response_id = f"tdd-search-{lang}-response"
    client = env.client

    def filter_case(t):
        tag = env.new_tag()
        created: Dict[str, Dict[str, Any]] = {}
        for _ in range(3):
            id = env.new_id()
            td = mocked_td(id)
            td["tag"] = tag
            create_thing(t, client, id, td)
            created[id] = td
        response: Optional[httpx.Response] = None

        def submit(t):
            nonlocal response
            report(t, *request_ids)
            response = send(t, "getting TDs", search, tag_query % tag)

        t.run("submit request", submit)
        if response is None:
            t.fatal("previous errors")
        body = response.content

        def status_code(t):
            report(t, response_id)
            assert_status_code(t, response, 200, body)

        def content_type(t):
            report(t, response_id)
            assert_content_media_type(t, response, MediaType.JSON)

        def payload(t):
            report(t, response_id)
            tds = _filtered(t, body)
            if len(tds) != len(created):
                t.fatal("Filtering returned %d TDs, expected %d", len(tds), len(created))
            for td in tds:
                id = get_id(t, td)
                if id not in created:
                    t.fatal("Result does not include the TD with id: %s", id)
                if not serialized_equal(created[id], td):
                    t.fatal("Expected:\n%s\nGot:\n%s", pretty_json(created[id]), pretty_json(td))

        t.run("status code", status_code)
        t.run("content type", content_type)
        t.run("payload", payload)

    def filter_anonymous(t):
        report(t, "tdd-anonymous-td-identifier")
        tag = env.new_tag()
        td = mocked_td()
        td["tag"] = tag
        create_thing(t, client, None, td)
        res = send(t, "getting TDs", search, tag_query % tag)
        tds = _filtered(t, res.content)
        if len(tds) != 1:
            t.fatal("Filtering returned %d TDs, expected 1", len(tds))
        get_id(t, tds[0])

    def reject_bad_query(t):
        response: Optional[httpx.Response] = None

        def submit(t):
            nonlocal response
            report(t, *request_ids)
            response = send(t, "getting TDs", search, bad_query)

        t.run("submit request", submit)

        def status_code(t):
            report(t, response_id)
            assert_status_code(t, response, 400, None)

        t.run("status code", status_code)

    t.run("filter", filter_case)
    t.run("filter anonymous", filter_anonymous)
    t.run("reject bad query", reject_bad_query)


def jsonpath(t, env: Environment):
    report(t, "tdd-search-jsonpath", "tdd-search-jsonpath-method",
           "tdd-search-jsonpath-parameter", "tdd-search-jsonpath-response")
    if not env.config.test_jsonpath:
        t.skip("JSONPath testing disabled (enable with --testJSONPath)")
    query_suite(t, env, "jsonpath", env.client.search_jsonpath, "$[?(@.tag=='%s')]", "*/id")


def xpath(t, env: Environment):
    report(t, "tdd-search-xpath", "tdd-search-xpath-method",
           "tdd-search-xpath-parameter", "tdd-search-xpath-response")
    if not env.config.test_xpath:
        t.skip("XPath testing disabled (enable with --testXPath)")
    query_suite(t, env, "xpath", env.client.search_xpath, "*[tag='%s']", "$[:].id")


def sparql_search(t, env: Environment, r: Record, query: str, method: str):
    report_record(t, r)
    res = send(t, "solving SPARQL query", env.client.search_sparql, query, method)
    if res.status_code == 501:
        skip(t, r, "SPARQL search is not implemented by the server (501)")
    assert_status_code(t, res, 200, res.content)
    result = read_json(t, res)
    if not isinstance(result, dict):
        t.fatal("Expected a SPARQL results object, got: %s", res.text)
    t.log("%s", result)
    result.pop("results", None)
    expected = sparql_results_sample()
    if not serialized_equal(result, expected):
        t.fatal("Expected:\n%s\nGot:\n%s", pretty_json(expected), pretty_json(result))


def sparql(t, env: Environment):
    common = ["tdd-search-sparql", "tdd-search-sparql-resp"]
    t.run("search using GET", sparql_search, env,
          Record(assertions=common + ["tdd-search-sparql-method-get"]), SPARQL_QUERY, "GET")
    t.run("search using POST", sparql_search, env,
          Record(assertions=common + ["tdd-search-sparql-method-post"]), SPARQL_QUERY, "POST")
    t.run("federated search using GET", sparql_search, env,
          Record(assertions=common + ["tdd-search-sparql-method-get", "tdd-search-sparql-federation"]),
          SPARQL_FEDERATED_QUERY, "GET")


CASES = [
    ("JSONPath", jsonpath),
    ("XPath", xpath),
    ("SPARQL", sparql),
]
