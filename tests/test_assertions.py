import httpx
import pytest

from tdd_core.assertions import (
    MANUAL_FILE,
    TEMPLATE_FILE,
    AssertionRegistry,
    RegistryEntry,
    load_assertions,
    load_registry,
    parse_template,
)

TEMPLATE = "ID,Status,Comment\ntdd-a,null,\ntdd-b,null,\nother-x,null,\ntdd-a,null,\n\ntdd-m,null,\n"
MANUAL = "ID,Status,Comment\ntdd-m,null,\ntdd-extra,null,\n"


def _client(routes, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(str(request.url))
        body = routes.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=body)
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_parse_template_filters_prefix_and_duplicates():
    assert parse_template(TEMPLATE) == ["tdd-a", "tdd-b", "tdd-m"]
    assert parse_template(TEMPLATE, prefix="") == ["tdd-a", "tdd-b", "other-x", "tdd-m"]


def test_load_assertions_downloads_once_then_uses_cache(tmp_path):
    calls = []
    client = _client({"https://example.org/template.csv": TEMPLATE}, calls)
    path = tmp_path / TEMPLATE_FILE
    ids = load_assertions("https://example.org/template.csv", path, client=client)
    assert ids == ["tdd-a", "tdd-b", "tdd-m"]
    assert path.read_text() == TEMPLATE
    again = load_assertions("https://example.org/template.csv", path, client=client)
    assert again == ids
    assert len(calls) == 1


def test_load_assertions_download_failure(tmp_path):
    client = _client({})
    with pytest.raises(SystemExit):
        load_assertions("https://example.org/missing.csv", tmp_path / TEMPLATE_FILE, client=client)
    assert not (tmp_path / TEMPLATE_FILE).exists()


def test_load_assertions_unreadable_cache(tmp_path):
    path = tmp_path / TEMPLATE_FILE
    path.write_bytes(b"\xff\xfe\xfa not utf-8")
    with pytest.raises(SystemExit):
        load_assertions("https://example.org/template.csv", path, client=_client({}))


def test_load_registry_tags_manual_entries(tmp_path):
    client = _client({
        "https://example.org/template.csv": TEMPLATE,
        "https://example.org/manual.csv": MANUAL,
    })
    reg = load_registry("https://example.org/template.csv", "https://example.org/manual.csv", cache_dir=tmp_path, client=client)
    assert reg.ids() == ["tdd-a", "tdd-b", "tdd-m", "tdd-extra"]
    assert reg.manual_ids() == ["tdd-m", "tdd-extra"]
    assert reg.is_manual("tdd-m") and not reg.is_manual("tdd-a")
    assert "tdd-extra" in reg and len(reg) == 4
    assert (tmp_path / MANUAL_FILE).exists()


def test_load_registry_without_manual(tmp_path):
    client = _client({"https://example.org/template.csv": TEMPLATE})
    reg = load_registry("https://example.org/template.csv", None, cache_dir=tmp_path, client=client)
    assert reg.manual_ids() == []


def test_registry_keeps_first_entry():
    reg = AssertionRegistry([RegistryEntry("tdd-a"), RegistryEntry("tdd-a", manual=True)])
    assert len(reg) == 1 and reg.get("tdd-a").testable
