import secrets
import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(ts: Optional[datetime] = None) -> str:
    ts = ts or utcnow()
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def today(ts: Optional[datetime] = None) -> str:
    return (ts or utcnow()).date().isoformat()


def parse_ts(value: Optional[str]) -> Optional[datetime]:
    """Best-effort parse of an ISO date or timestamp; None when unparseable."""
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(3)}"
