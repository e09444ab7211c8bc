# fec_transport_lab/src/fec_lab/experiments/collect_summaries.py
from __future__ import annotations

import argparse
import glob
import json
import os
from typing import Any, Dict, List

HEADER = ["run", "steps", "switches", "invalid", "no_feasible", "mean_o", "mean_score", "p95_score"]


def collect(runs_root: str, pattern: str = "*") -> List[Dict[str, Any]]:
    run_dirs = sorted(d for d in glob.glob(os.path.join(runs_root, pattern)) if os.path.isdir(d))

    rows = []
    for d in run_dirs:
        sp = os.path.join(d, "summary.json")
        if not os.path.exists(sp):
            continue
        with open(sp, "r", encoding="utf-8") as f:
            s = json.load(f)
        rows.append({
            "run": os.path.basename(d),
            "steps": s.get("steps"),
            "switches": s.get("switches"),
            "invalid": s.get("invalid_samples"),
            "no_feasible": s.get("no_feasible_steps"),
            "mean_o": s.get("mean_overhead"),
            "mean_score": s.get("mean_score"),
            "p95_score": s.get("p95_score"),
        })
    return rows


def format_tsv(rows: List[Dict[str, Any]]) -> str:
    lines = ["\t".join(HEADER)]
    for r in rows:
        lines.append("\t".join(
            "" if r[h] is None else (f"{r[h]:.6g}" if isinstance(r[h], (int, float)) else str(r[h]))
            for h in HEADER
        ))
    return "\n".join(lines) + "\n"


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--runs_root", type=str, default="runs")
    ap.add_argument("--pattern", type=str, default="*")
    ap.add_argument("--out", type=str, default=None, help="output tsv path; default: stdout")
    args = ap.parse_args()

    out_text = format_tsv(collect(args.runs_root, args.pattern))
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(out_text)
        print(f"[ok] wrote {args.out}")
    else:
        print(out_text, end="")


if __name__ == "__main__":
    main()
