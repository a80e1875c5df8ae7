"""Test case handle with nested sub-cases and deferred cleanups.

Modelled on Go's ``testing.T``: a case is marked failed or skipped by the
code running inside it, sub-cases are started with :meth:`Case.run`, and
callbacks registered with :meth:`Case.cleanup` always run once the case body
has returned, whichever way it exits. A failed sub-case marks its parent as
failed, and a parent's cleanups run only after all of its sub-cases are done.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Optional, Tuple

from .results import HarnessError, ResultStore

logger = logging.getLogger("tdd.case")


class CaseFailed(Exception):
    """Raised by :meth:`Case.fatal` to stop the current case."""


class CaseSkipped(Exception):
    """Raised by :meth:`Case.skip` to stop the current case."""


def _clean_name(name: str) -> str:
    return "_".join(name.split())


class Case:
    def __init__(self, name: str, results: Optional[ResultStore] = None, parent: Optional["Case"] = None):
        self.name = name
        self.parent = parent
        if results is None:
            results = parent.results if parent is not None else ResultStore()
        self.results = results
        self.logs: List[str] = []
        self._failed = False
        self._skipped = False
        self._finished = False
        self._cleanups: List[Tuple[Callable[..., Any], tuple, dict]] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Case({self.name!r}, failed={self._failed}, skipped={self._skipped})"

    # ---------------- State ----------------
    def failed(self) -> bool:
        with self._lock:
            return self._failed

    def skipped(self) -> bool:
        with self._lock:
            return self._skipped

    def finished(self) -> bool:
        return self._finished

    def fail(self) -> None:
        with self._lock:
            self._failed = True

    # ---------------- Reporting ----------------
    def log(self, msg: str, *args: Any) -> str:
        text = msg % args if args else msg
        with self._lock:
            self.logs.append(text)
        logger.debug(f"{self.name}: {text}")
        return text

    def error(self, msg: str, *args: Any) -> None:
        text = self.log(msg, *args)
        logger.info(f"FAIL {self.name}: {text}")
        self.fail()

    def fatal(self, msg: str, *args: Any) -> None:
        text = self.log(msg, *args)
        logger.info(f"FAIL {self.name}: {text}")
        self.fail()
        raise CaseFailed(text)

    def skip(self, msg: str = "", *args: Any) -> None:
        text = self.log(msg, *args) if msg else ""
        with self._lock:
            self._skipped = True
        raise CaseSkipped(text)

    def cleanup(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Register ``fn`` to run after the case body; last registered runs first."""
        with self._lock:
            self._cleanups.append((fn, args, kwargs))

    # ---------------- Execution ----------------
    def run(self, name: str, fn: Callable[..., Any], *args: Any) -> bool:
        """Run ``fn(child, *args)`` as a named sub-case; return True unless it failed."""
        child = Case(f"{self.name}/{_clean_name(name)}", parent=self)
        child.execute(fn, *args)
        return not child.failed()

    def run_parallel(self, subcases: Iterable[Tuple[str, Callable[..., Any]]], max_workers: Optional[int] = None) -> bool:
        """Run sibling sub-cases concurrently and wait for all of them."""
        subcases = list(subcases)
        if not subcases:
            return True
        with ThreadPoolExecutor(max_workers=max_workers or len(subcases), thread_name_prefix="case") as pool:
            futures = [pool.submit(self.run, name, fn) for name, fn in subcases]
            outcomes = [f.result() for f in futures]
        return all(outcomes)

    def execute(self, fn: Callable[..., Any], *args: Any) -> "Case":
        if self._finished:
            raise HarnessError(f"case {self.name} already executed")
        try:
            try:
                fn(self, *args)
            except (CaseFailed, CaseSkipped):
                pass
            except HarnessError:
                raise
            except Exception as e:
                logger.exception(f"Unexpected error in {self.name}")
                self.error("unexpected error: %r", e)
        finally:
            self._run_cleanups()
            self._finished = True
            if self.parent is not None and self.failed():
                self.parent.fail()
            logger.debug(f"{self.name}: {'FAIL' if self.failed() else 'SKIP' if self.skipped() else 'PASS'}")
        return self

    def _run_cleanups(self) -> None:
        while True:
            with self._lock:
                if not self._cleanups:
                    return
                fn, args, kwargs = self._cleanups.pop()
            try:
                fn(*args, **kwargs)
            except (CaseFailed, CaseSkipped):
                continue
            except HarnessError:
                raise
            except Exception as e:
                logger.exception(f"Cleanup failed in {self.name}")
                self.error("cleanup error: %r", e)


def new_root(name: str, results: ResultStore) -> Case:
    return Case(_clean_name(name), results=results)


def run_case(name: str, fn: Callable[..., Any], results: ResultStore, *args: Any) -> Case:
    """Execute a top-level case bound to ``results`` and return its handle."""
    return new_root(name, results).execute(fn, *args)


__all__ = ["Case", "CaseFailed", "CaseSkipped", "new_root", "run_case"]
