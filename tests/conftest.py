"""Pytest configuration ensuring local packages and the harness are importable.

The harness lives in the implicit namespace package ``conformance`` at the
repository root and the libraries under ``packages/``; both are force-added
to sys.path before tests collect so the suite runs without an editable
install.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
PKG_DIR = ROOT / "packages"

def _ensure(p: Path):
    s = str(p)
    if s not in sys.path:
        sys.path.insert(0, s)

_ensure(ROOT)
if PKG_DIR.exists():
    _ensure(PKG_DIR)


@pytest.fixture()
def directory():
    """In-process fake directory behind a TestClient (base URL http://testserver)."""
    from fastapi.testclient import TestClient
    from fake_directory import create_app

    with TestClient(create_app()) as c:
        yield c


def _config(tmp_path, **kw):
    from tdd_sdk.config import HarnessConfig

    settings = dict(
        server="http://testserver",
        report_dir=str(tmp_path / "report"),
        event_timeout=0.5,
        event_wait=0,
        test_jsonpath=True,
        test_xpath=True,
    )
    settings.update(kw)
    return HarnessConfig(**settings)


@pytest.fixture()
def env(directory, tmp_path):
    from conformance.environment import Environment

    return Environment.from_config(_config(tmp_path), http=directory)


@pytest.fixture()
def streaming_directory():
    """Fake directory with notifications on; yields ``(app, http)``.

    ``http`` is an httpx client whose event streams deliver each event as
    soon as the app publishes it.
    """
    import httpx
    from fastapi.testclient import TestClient
    from fake_directory import DirectoryTransport, create_app

    app = create_app(events=True)
    with TestClient(app) as asgi, httpx.Client(transport=DirectoryTransport(app, asgi)) as http:
        yield app, http
        app.state.events.close()


@pytest.fixture()
def streaming_env(streaming_directory, tmp_path):
    from conformance.environment import Environment

    _, http = streaming_directory
    return Environment.from_config(_config(tmp_path, event_timeout=1.0), http=http)
