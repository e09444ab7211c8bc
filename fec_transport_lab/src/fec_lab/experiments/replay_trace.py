# fec_transport_lab/src/fec_lab/experiments/replay_trace.py
from __future__ import annotations

import argparse
import os
import time
from typing import List, Optional

from loguru import logger

from fec_lab.codec.cost import DEFAULT_CODEC_COSTS, load_benchmark_csv
from fec_lab.controller.adaptive import AdaptiveFecController, NoFeasiblePolicy
from fec_lab.controller.fixed import FixedFecController
from fec_lab.experiments.runner import ReplayRunner, RunnerConfig
from fec_lab.logging.sinks import JsonlSink, make_run_dir, write_json
from fec_lab.metrics.replay_summary import summarize_records
from fec_lab.model.config import FecConfig, load_config_json
from fec_lab.model.types import CandidateConfig
from fec_lab.signals.estimator import SignalEstimator
from fec_lab.trace.loader import load_signal_trace_csv


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="按测量 trace 回放 FEC 参数控制器")
    ap.add_argument("--trace_csv", type=str, required=True,
                    help="columns: start_ms,loss_rate,buffer_s,goodput_bps,playback_bps")
    ap.add_argument("--config_json", type=str, default=None, help="FecConfig JSON；不给则使用默认常量表")
    ap.add_argument("--runs_root", type=str, default="runs")
    ap.add_argument("--name", type=str, default=None)
    ap.add_argument("--controller", type=str, default="adaptive", choices=["adaptive", "fixed"])
    ap.add_argument("--fixed", type=str, default="20,512,0.3", help="fixed 控制器的 N,S,R")
    ap.add_argument("--policy", type=str, default="hold", choices=[p.value for p in NoFeasiblePolicy])
    ap.add_argument("--codec", type=str, default=None, help="XOR / ReedSolomon / RaptorQ")
    ap.add_argument("--codec_benchmark_csv", type=str, default=None)
    ap.add_argument("--codec_budget_ms", type=float, default=None)
    ap.add_argument("--print_every", type=int, default=10)
    return ap


def _parse_fixed(text: str) -> CandidateConfig:
    parts = [x.strip() for x in text.split(",")]
    if len(parts) != 3:
        raise ValueError(f"--fixed 需要 N,S,R 三个值：{text}")
    return CandidateConfig(n=int(parts[0]), s=int(parts[1]), r=float(parts[2]))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    cfg = load_config_json(args.config_json) if args.config_json else FecConfig()
    trace = load_signal_trace_csv(args.trace_csv)

    codec_cost = None
    if args.codec:
        table = load_benchmark_csv(args.codec_benchmark_csv) if args.codec_benchmark_csv else DEFAULT_CODEC_COSTS
        if args.codec not in table:
            raise SystemExit(f"未知 codec {args.codec!r}，可选={sorted(table)}")
        codec_cost = table[args.codec]

    if args.controller == "fixed":
        controller = FixedFecController(_parse_fixed(args.fixed), cfg.constants)
    else:
        controller = AdaptiveFecController(
            cfg,
            no_feasible_policy=NoFeasiblePolicy(args.policy),
            codec_cost=codec_cost,
            codec_budget_s=args.codec_budget_ms / 1000.0 if args.codec_budget_ms is not None else None,
        )

    name = args.name or f"{args.controller}_{os.path.splitext(os.path.basename(args.trace_csv))[0]}_{int(time.time())}"
    paths = make_run_dir(args.runs_root, name)
    write_json(paths.meta_path, {
        "trace_csv": os.path.abspath(args.trace_csv),
        "num_samples": len(trace),
        "controller": args.controller,
        "policy": args.policy,
        "codec": codec_cost.algo if codec_cost else None,
        "codec_budget_ms": args.codec_budget_ms,
        "config": cfg.as_dict(),
    })
    logger.info(f"run dir: {paths.out_dir}")

    runner = ReplayRunner(
        estimator=SignalEstimator(cfg.constants, cfg.estimator),
        controller=controller,
        trace=trace,
        cfg=RunnerConfig(print_every_steps=args.print_every, csv_path=paths.csv_path),
        sink=JsonlSink(paths.metrics_path),
    )
    records = runner.run()

    summary = summarize_records(records)
    write_json(paths.summary_path, summary.as_dict())
    logger.info(
        f"steps={summary.steps} switches={summary.switches} invalid={summary.invalid_samples} "
        f"no_feasible={summary.no_feasible_steps} mean_o={summary.mean_overhead:.3f} "
        f"p95_score={summary.p95_score:.4g}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
