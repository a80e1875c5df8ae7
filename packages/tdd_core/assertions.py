"""Normative assertion registry.

The list of assertion IDs lives in CSV templates published in the
w3c/wot-discovery repository. A template is read from a local cache file; when
the cache is missing it is downloaded first and written verbatim, so the
same parse path runs whether or not the network was used.

Failure to establish the registry is fatal: the report cannot be reconciled
without it, so every error here ends the process via SystemExit.
"""
from __future__ import annotations

import csv
import io
import logging
import pathlib
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Union

import httpx

logger = logging.getLogger("tdd.assertions")

DISCOVERY_REPO_BRANCH = "https://raw.githubusercontent.com/w3c/wot-discovery/main"
ASSERTIONS_TEMPLATE_URL = DISCOVERY_REPO_BRANCH + "/testing/template.csv"
ASSERTIONS_MANUAL_URL = DISCOVERY_REPO_BRANCH + "/testing/manual.csv"
TEMPLATE_FILE = "template.csv"
MANUAL_FILE = "manual.csv"
DEFAULT_PREFIX = "tdd-"

_HEADER_CELLS = {"id", "assertionid", "assertion id"}


@dataclass(frozen=True)
class RegistryEntry:
    id: str
    manual: bool = False

    @property
    def testable(self) -> bool:
        return not self.manual


class AssertionRegistry:
    """Ordered, read-only set of registry entries."""

    def __init__(self, entries: List[RegistryEntry]):
        self._entries: Dict[str, RegistryEntry] = {}
        for e in entries:
            self._entries.setdefault(e.id, e)

    def ids(self) -> List[str]:
        return list(self._entries)

    def manual_ids(self) -> List[str]:
        return [e.id for e in self._entries.values() if e.manual]

    def is_manual(self, assertion: str) -> bool:
        e = self._entries.get(assertion)
        return bool(e and e.manual)

    def get(self, assertion: str) -> Optional[RegistryEntry]:
        return self._entries.get(assertion)

    def __contains__(self, assertion: object) -> bool:
        return assertion in self._entries

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)


def download_template(url: str, path: Union[str, pathlib.Path], timeout: float = 30.0, client: Optional[httpx.Client] = None) -> int:
    """Fetch ``url`` and write the body verbatim to ``path``; return bytes written."""
    path = pathlib.Path(path)
    print(f"Downloading assertions from {url}")
    try:
        if client is not None:
            resp = client.get(url, timeout=timeout, follow_redirects=True)
        else:
            resp = httpx.get(url, timeout=timeout, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise SystemExit(f"Error downloading assertions template: {e}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as f:
            total = f.write(resp.content)
    except OSError as e:
        raise SystemExit(f"Error creating assertions template file: {e}")
    logger.info(f"Wrote {total} bytes to {path}")
    return total


def parse_template(text: str, prefix: str = DEFAULT_PREFIX) -> List[str]:
    ids: List[str] = []
    seen = set()
    for record in csv.reader(io.StringIO(text)):
        if not record:
            continue
        aid = record[0].strip()
        if not aid:
            continue
        if prefix:
            if not aid.startswith(prefix):
                continue
        elif aid.lower() in _HEADER_CELLS:
            continue
        if aid not in seen:
            seen.add(aid)
            ids.append(aid)
    return ids


def load_assertions(url: str, path: Union[str, pathlib.Path], prefix: str = DEFAULT_PREFIX, timeout: float = 30.0, client: Optional[httpx.Client] = None) -> List[str]:
    """Return the assertion IDs of a template, downloading it if not cached."""
    path = pathlib.Path(path)
    if not path.exists():
        download_template(url, path, timeout=timeout, client=client)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise SystemExit(f"Error opening assertions template file: {e}")
    try:
        ids = parse_template(text, prefix=prefix)
    except csv.Error as e:
        raise SystemExit(f"Error reading assertions template file: {e}")
    logger.info(f"Loaded {len(ids)} assertions from {path}")
    return ids


def load_registry(
    template_url: str = ASSERTIONS_TEMPLATE_URL,
    manual_url: Optional[str] = ASSERTIONS_MANUAL_URL,
    cache_dir: Union[str, pathlib.Path] = "report",
    prefix: str = DEFAULT_PREFIX,
    timeout: float = 30.0,
    client: Optional[httpx.Client] = None,
) -> AssertionRegistry:
    """Load the template and (optionally) manual lists into one registry.

    Template entries that also appear in the manual list are tagged manual.
    Manual entries missing from the template are appended, still manual.
    """
    cache_dir = pathlib.Path(cache_dir)
    template = load_assertions(template_url, cache_dir / TEMPLATE_FILE, prefix=prefix, timeout=timeout, client=client)
    manual: List[str] = []
    if manual_url:
        manual = load_assertions(manual_url, cache_dir / MANUAL_FILE, prefix=prefix, timeout=timeout, client=client)
    manual_set = set(manual)
    entries = [RegistryEntry(aid, manual=aid in manual_set) for aid in template]
    known = set(template)
    entries.extend(RegistryEntry(aid, manual=True) for aid in manual if aid not in known)
    return AssertionRegistry(entries)


__all__ = [
    "ASSERTIONS_TEMPLATE_URL", "ASSERTIONS_MANUAL_URL", "DEFAULT_PREFIX",
    "RegistryEntry", "AssertionRegistry",
    "download_template", "parse_template", "load_assertions", "load_registry",
]
