"""Row shapes shared by both payment session backends."""
from __future__ import annotations
import json
import time
from typing import Any, Dict, Mapping, Optional

DEFAULT_CURRENCY = "ngn"


def encode(reference: str, mapping: Mapping[str, Any],
           created_at: float) -> Dict[str, Any]:
    """Flat, string-safe record; metadata travels as JSON text."""
    return {
        "reference": reference,
        "email": mapping["email"],
        "amount": int(mapping["amount"]),
        "currency": mapping.get("currency") or DEFAULT_CURRENCY,
        "metadata": json.dumps(mapping.get("metadata") or {}),
        "status": mapping.get("status") or "pending",
        "created_at": created_at,
    }


def decode(row: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    out["amount"] = int(out.get("amount") or 0)
    out["metadata"] = json.loads(out.get("metadata") or "{}")
    out["created_at"] = float(out.get("created_at") or 0.0)
    return out


def pending_item(reference: str, row: Mapping[str, Any],
                 now: Optional[float] = None) -> Dict[str, Any]:
    """One entry of the admin "pending payments" list."""
    s = decode(row)
    now = time.time() if now is None else now
    return {
        "reference": reference,
        "created_at": s["created_at"],
        "age_ms": int(max(0.0, now - s["created_at"]) * 1000),
        "order_id": s["metadata"].get("order_id", ""),
        "email": s.get("email") or "",
        "amount": s["amount"],
        "currency": s.get("currency") or DEFAULT_CURRENCY,
        "status": s.get("status") or "pending",
    }
