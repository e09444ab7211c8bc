# fec_transport_lab/src/fec_lab/metrics/replay_summary.py
from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ReplaySummary:
    steps: int
    switches: int
    holds: Dict[str, int] = field(default_factory=dict)
    invalid_samples: int = 0
    no_feasible_steps: int = 0

    mean_overhead: float = 0.0
    mean_score: float = 0.0
    p95_score: float = 0.0
    final_config: Optional[Dict[str, Any]] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _percentile(values: List[float], p: float) -> float:
    """
    线性插值分位数。p in [0,100].
    """
    if not values:
        raise ValueError("percentile: empty values")
    if p <= 0:
        return min(values)
    if p >= 100:
        return max(values)
    xs = sorted(values)
    n = len(xs)
    r = (n - 1) * (p / 100.0)
    lo = int(math.floor(r))
    hi = int(math.ceil(r))
    if lo == hi:
        return xs[lo]
    frac = r - lo
    return xs[lo] * (1 - frac) + xs[hi] * frac


def summarize_records(records: List[Dict[str, Any]]) -> ReplaySummary:
    """
    records: replay 写出的 metrics.jsonl 记录
    使用字段：switched, reason, invalid_sample, overhead, score（后两者可能为 None）
    """
    if not records:
        raise ValueError("records 为空，无法汇总")

    holds: Dict[str, int] = {}
    switches = 0
    invalid = 0
    overheads: List[float] = []
    scores: List[float] = []

    for r in records:
        if r.get("switched"):
            switches += 1
        else:
            reason = str(r.get("reason", "unknown"))
            holds[reason] = holds.get(reason, 0) + 1
        if r.get("invalid_sample"):
            invalid += 1
        if r.get("overhead") is not None:
            overheads.append(float(r["overhead"]))
        if r.get("score") is not None:
            scores.append(float(r["score"]))

    last = records[-1]
    final_config = None
    if "n" in last:
        final_config = {"n": last["n"], "s": last["s"], "r": last["r"]}

    return ReplaySummary(
        steps=len(records),
        switches=switches,
        holds=holds,
        invalid_samples=invalid,
        no_feasible_steps=holds.get("no_feasible", 0),
        mean_overhead=sum(overheads) / len(overheads) if overheads else 0.0,
        mean_score=sum(scores) / len(scores) if scores else 0.0,
        p95_score=_percentile(scores, 95.0) if scores else 0.0,
        final_config=final_config,
    )


def load_metrics_jsonl(path: str) -> List[Dict[str, Any]]:
    records: List[Dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            records.append(json.loads(line))
    return records


def summarize_jsonl(metrics_jsonl_path: str) -> ReplaySummary:
    return summarize_records(load_metrics_jsonl(metrics_jsonl_path))
