"""Router telemetry: event logging and summary reader."""

import json
from collections import deque
from datetime import datetime, timezone, timedelta
from typing import Optional

import settings
from text_utils import normalize_whitespace

WARNING_EVENTS = ("mode_ambiguous", "persona_conflict")


def telemetry_enabled() -> bool:
    return settings.ROUTER_TELEMETRY_ENABLED


def append_router_telemetry(event: str, payload: Optional[dict] = None, level: Optional[str] = None) -> None:
    if not telemetry_enabled():
        return
    name = normalize_whitespace(event or "event") or "event"
    try:
        data = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": name,
            "level": level or ("warning" if name in WARNING_EVENTS else "info"),
            "payload": payload or {},
        }
        path = settings.ROUTER_TELEMETRY_LOG
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(data, ensure_ascii=False) + "\n")
    except Exception:
        # Telemetry must never block routing.
        pass


def _parse_iso_utc(ts_raw: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(str(ts_raw).replace("Z", "+00:00"))
    except Exception:
        return None


def read_router_telemetry_summary(hours: int = 24, limit: int = 6) -> dict:
    h = max(1, min(168, int(hours or 24)))
    n = max(1, min(25, int(limit or 6)))
    now_utc = datetime.now(timezone.utc)
    cutoff = now_utc - timedelta(hours=h)

    counts: dict[str, int] = {}
    rule_counts: dict[str, int] = {}
    warnings = 0
    recent: deque = deque(maxlen=n)
    parse_errors = 0
    path = settings.ROUTER_TELEMETRY_LOG
    file_exists = path.exists()

    if file_exists:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                raw = (line or "").strip()
                if not raw:
                    continue
                try:
                    item = json.loads(raw)
                except Exception:
                    parse_errors += 1
                    continue
                ts = _parse_iso_utc(str(item.get("ts") or ""))
                if not ts or ts < cutoff:
                    continue
                event = normalize_whitespace(str(item.get("event") or "event")) or "event"
                counts[event] = counts.get(event, 0) + 1
                if item.get("level") == "warning":
                    warnings += 1
                payload = item.get("payload") if isinstance(item.get("payload"), dict) else {}
                if event in ("validation_retry", "validation_failed"):
                    for rule_id in payload.get("rule_ids") or []:
                        key = normalize_whitespace(str(rule_id or ""))
                        if key:
                            rule_counts[key] = rule_counts.get(key, 0) + 1
                recent.append({"ts": ts.isoformat(), "event": event, "payload": payload})

    routed = counts.get("route_ok", 0) + counts.get("validation_failed", 0)
    failure_rate = round((counts.get("validation_failed", 0) / routed) * 100.0, 2) if routed > 0 else 0.0

    return {
        "status": "ok",
        "now_utc": now_utc.isoformat(),
        "window_hours": h,
        "telemetry_enabled": telemetry_enabled(),
        "file_exists": file_exists,
        "file_path": str(path.name),
        "counts": counts,
        "rule_violation_counts": rule_counts,
        "warning_count": warnings,
        "persona_fallback_count": counts.get("persona_fallback", 0),
        "mode_ambiguous_count": counts.get("mode_ambiguous", 0),
        "validation_failure_rate_percent": failure_rate,
        "recent": list(recent),
        "parse_errors": parse_errors,
    }
