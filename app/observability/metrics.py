"""
Verification metrics
--------------------
Redis-backed counters for decision outcomes and provider calls, plus a
snapshot consumed by /admin/metrics. Missing keys (first boot) read as zero.
"""
from __future__ import annotations
import time
from typing import Dict, List, Tuple
from app.store.redis_conn import get_redis

K_DECISION = "metrics:decision:{context}:{decision}"   # INCR
K_PROVIDER_LAT = "metrics:provider:latencies"          # LPUSH ms
K_PROVIDER_CALLS = "metrics:provider:calls"            # INCR
K_PROVIDER_FAIL = "metrics:provider:failures"          # INCR
K_PROVIDER_FAIL_RECENT = "metrics:provider:failed_recent"  # LPUSH endpoint

CONTEXTS = ("pan_aadhaar", "bank_kyc", "partner_pan", "director_pan")
DECISIONS = ("approve", "flag", "block")

_MAX_SAMPLES = 500  # cap to bound percentile computation cost


def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])


def record_decision(context: str, decision: str) -> None:
    r = get_redis()
    r.incr(K_DECISION.format(context=context, decision=decision), 1)


def record_provider_call(endpoint: str, ms: int, ok: bool) -> None:
    r = get_redis()
    r.incr(K_PROVIDER_CALLS, 1)
    r.lpush(K_PROVIDER_LAT, int(ms))
    r.ltrim(K_PROVIDER_LAT, 0, _MAX_SAMPLES - 1)
    if not ok:
        r.incr(K_PROVIDER_FAIL, 1)
        r.lpush(K_PROVIDER_FAIL_RECENT, endpoint)
        r.ltrim(K_PROVIDER_FAIL_RECENT, 0, 49)  # keep last 50


def _read_latency_list(key: str) -> List[float]:
    r = get_redis()
    out: List[float] = []
    for x in r.lrange(key, 0, _MAX_SAMPLES - 1) or []:
        try:
            out.append(float(x) / 1000.0)  # seconds
        except (TypeError, ValueError):
            continue
    return out


def _p50_p95(latencies_s: List[float]) -> Tuple[float, float]:
    if not latencies_s:
        return 0.0, 0.0
    return _percentile(latencies_s, 0.50), _percentile(latencies_s, 0.95)


def get_decision_snapshot() -> dict:
    """
    Fields:
      - decisions: {context: {approve, flag, block, total, flag_rate, block_rate}}
      - provider: calls, failures, failure_rate, p50/p95 latency (seconds), recent_failures
    """
    r = get_redis()

    decisions: Dict[str, dict] = {}
    for ctx in CONTEXTS:
        counts = {d: int(r.get(K_DECISION.format(context=ctx, decision=d)) or 0) for d in DECISIONS}
        total = sum(counts.values())
        decisions[ctx] = {
            **counts,
            "total": total,
            "flag_rate": round(counts["flag"] * 100.0 / total, 3) if total else 0.0,
            "block_rate": round(counts["block"] * 100.0 / total, 3) if total else 0.0,
        }

    calls = int(r.get(K_PROVIDER_CALLS) or 0)
    failures = int(r.get(K_PROVIDER_FAIL) or 0)
    p50, p95 = _p50_p95(_read_latency_list(K_PROVIDER_LAT))

    return {
        "decisions": decisions,
        "provider": {
            "calls": calls,
            "failures": failures,
            "failure_rate": round(failures * 100.0 / calls, 3) if calls else 0.0,
            "p50_latency": round(p50, 3),
            "p95_latency": round(p95, 3),
            "recent_failures": list(r.lrange(K_PROVIDER_FAIL_RECENT, 0, 19) or []),
        },
        "snapshot_at": int(time.time()),
    }
