import logging
import os
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError, field_validator

from tdd_core.assertions import ASSERTIONS_MANUAL_URL, ASSERTIONS_TEMPLATE_URL, DEFAULT_PREFIX

from .client import DEFAULT_ANONYMOUS_ID_PREFIX, DEFAULT_THINGS_PATH

logger = logging.getLogger("tdd.harness")

__all__ = ["HarnessConfig", "ENV_VARS", "load_config"]

# field -> environment variable
ENV_VARS = {
    "server": "TDD_SERVER_URL",
    "template_url": "TDD_TEMPLATE_URL",
    "manual_url": "TDD_MANUAL_URL",
    "report_dir": "TDD_REPORT_DIR",
    "things_path": "TDD_THINGS_PATH",
    "anonymous_id_prefix": "TDD_ANONYMOUS_ID_PREFIX",
}


class HarnessConfig(BaseModel):
    server: str
    test_jsonpath: bool = False
    test_xpath: bool = False
    template_url: str = ASSERTIONS_TEMPLATE_URL
    manual_url: Optional[str] = ASSERTIONS_MANUAL_URL
    report_dir: str = "report"
    assertion_prefix: str = DEFAULT_PREFIX
    ignore_unknown_events: bool = False
    things_path: str = DEFAULT_THINGS_PATH
    anonymous_id_prefix: str = DEFAULT_ANONYMOUS_ID_PREFIX
    timeout: float = 10.0
    event_timeout: float = 5.0
    event_wait: float = 1.0
    parallel: int = 1
    only: Optional[str] = None
    strict: bool = False

    @field_validator("server")
    @classmethod
    def _server_url(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Server URL is not set!")
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Error parsing server URL: {v}")
        return v.rstrip("/")

    @field_validator("things_path")
    @classmethod
    def _things_path(cls, v: str) -> str:
        v = "/" + v.strip().strip("/")
        if v == "/":
            raise ValueError("things path must not be empty")
        return v

    @field_validator("timeout", "event_timeout")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("event_wait")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("parallel")
    @classmethod
    def _workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


def load_config(overrides: Optional[Mapping[str, Any]] = None, env: Optional[Mapping[str, str]] = None) -> HarnessConfig:
    """Merge CLI values over environment variables over defaults.

    ``None`` in ``overrides`` means "not given on the command line".
    Invalid settings end the process with SystemExit.
    """
    env = os.environ if env is None else env
    data: dict = {}
    for field, var in ENV_VARS.items():
        if env.get(var):
            data[field] = env[var]
    for k, v in (overrides or {}).items():
        if v is not None:
            data[k] = v
    data.setdefault("server", "")
    try:
        return HarnessConfig(**data)
    except ValidationError as e:
        msgs = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        logger.error(f"Invalid configuration: {msgs}")
        raise SystemExit(f"Invalid configuration: {msgs}")
