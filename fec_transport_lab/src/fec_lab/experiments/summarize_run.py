# fec_transport_lab/src/fec_lab/experiments/summarize_run.py
from __future__ import annotations

import argparse
import json
import os
from typing import Any, Dict

from fec_lab.metrics.replay_summary import summarize_jsonl


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--run_dir", type=str, required=True, help="runs/<name> directory")
    args = ap.parse_args()

    metrics_path = os.path.join(args.run_dir, "metrics.jsonl")
    meta_path = os.path.join(args.run_dir, "meta.json")
    out_path = os.path.join(args.run_dir, "summary.json")

    s = summarize_jsonl(metrics_path)

    meta: Dict[str, Any] = {}
    if os.path.exists(meta_path):
        with open(meta_path, "r", encoding="utf-8") as f:
            meta = json.load(f)

    summary = s.as_dict()
    summary["meta"] = meta

    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, ensure_ascii=False, indent=2)

    print(f"[ok] wrote {out_path}")
    print(
        f"steps={s.steps}  switches={s.switches}  invalid={s.invalid_samples}  "
        f"no_feasible={s.no_feasible_steps}  mean_o={s.mean_overhead:.3f}  "
        f"mean_score={s.mean_score:.4g}  p95_score={s.p95_score:.4g}  final={s.final_config}"
    )


if __name__ == "__main__":
    main()
