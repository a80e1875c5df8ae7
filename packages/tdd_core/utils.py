import datetime
import json
import uuid


def canonical_json(obj) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False, default=str)
def now_utc() -> datetime.datetime:
    # Use timezone-aware UTC datetime (avoids deprecation warnings)
    return datetime.datetime.now(datetime.timezone.utc)
def gen_urn_uuid(prefix: str = "urn:uuid:") -> str:
    return f"{prefix}{uuid.uuid4()}"
def gen_tag() -> str:
    return str(uuid.uuid4())
