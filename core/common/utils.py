import math
import time
from datetime import datetime, timezone
from typing import Any, Optional


def sanitize_for_bson(obj):
    if isinstance(obj, dict):
        return {k: sanitize_for_bson(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [sanitize_for_bson(x) for x in obj]
    if isinstance(obj, int) and not isinstance(obj, bool):
        # bounds de int64
        MAX_I64 = 2**63 - 1
        MIN_I64 = -2**63
        if obj > MAX_I64 or obj < MIN_I64:
            return float(obj)
    if isinstance(obj, float) and not math.isfinite(obj):
        return None
    return obj


def now_ms() -> int:
    return int(time.time() * 1000)


def to_iso(ts_ms: int) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def now_iso() -> str:
    return to_iso(now_ms())


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into an aware UTC datetime.
    Naive values are taken as UTC; unparseable values return None.
    """
    if not value:
        return None
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_utc_day_ms(ts_ms: Optional[int] = None) -> int:
    ts_ms = now_ms() if ts_ms is None else ts_ms
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    midnight = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


def to_float(value: Any, default: float = 0.0) -> float:
    """
    Best-effort float coercion for loosely-typed API payloads.
    None, non-numeric and non-finite values map to `default`.
    """
    if value is None:
        return default
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(f):
        return default
    return f


def clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)
