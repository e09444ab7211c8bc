# fec_transport_lab/src/fec_lab/experiments/runner.py
from __future__ import annotations

import csv
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from fec_lab.controller.base import FecController, FecDecision
from fec_lab.errors import InvalidSample, NoFeasibleCandidate
from fec_lab.model.types import RuntimeSignals
from fec_lab.signals.estimator import SignalEstimator
from fec_lab.trace.loader import SignalSample


@dataclass
class RunnerConfig:
    # 每隔多少个决策步打印一次状态；<= 0 不打印
    print_every_steps: int = 10

    # 若设置，run() 结束后把所有记录写到 CSV（列为所有出现过的 key 的并集）
    # 若不设置且 sink 有 metrics_path（*.jsonl），默认导出到同目录下的 metrics.csv
    csv_path: Optional[str] = None


class ReplayRunner:
    """
    按 trace 逐步回放：每个样本对应一个决策步（segment 边界）。

    - 样本先进 SignalEstimator；InvalidSample 时沿用上一个快照做决策
    - 控制器抛出 NoFeasibleCandidate（RAISE 策略）时记录并继续，active 保持不变
    """

    def __init__(
        self,
        estimator: SignalEstimator,
        controller: FecController,
        trace: List[SignalSample],
        cfg: Optional[RunnerConfig] = None,
        sink=None,
    ):
        self.estimator = estimator
        self.controller = controller
        self.trace = trace
        self.cfg = cfg or RunnerConfig()
        self.sink = sink

        self._csv_path: Optional[str] = self.cfg.csv_path
        if self._csv_path is None and sink is not None:
            p = getattr(sink, "metrics_path", None)
            if isinstance(p, str) and p.endswith(".jsonl"):
                self._csv_path = p[:-6] + ".csv"

        self._switches = 0
        self._invalid = 0

    def _observe(self, sample: SignalSample) -> tuple[Optional[RuntimeSignals], bool]:
        try:
            sig = self.estimator.update(
                raw_loss=sample.loss_rate,
                raw_buffer_s=sample.buffer_s,
                raw_goodput_bps=sample.goodput_bps,
                raw_playback_bps=sample.playback_bps,
            )
            return sig, False
        except InvalidSample:
            self._invalid += 1
            return self.estimator.snapshot(), True

    def step(self, step_idx: int, sample: SignalSample) -> Dict[str, Any]:
        signals, invalid = self._observe(sample)
        try:
            decision = self.controller.decide(step_idx, signals)
        except NoFeasibleCandidate as e:
            logger.warning(f"step={step_idx} {e}; active config retained")
            decision = None

        if decision is not None and decision.switched:
            self._switches += 1
        return self._make_log_record(step_idx, sample, signals, decision, invalid)

    def run(self) -> List[Dict[str, Any]]:
        logs: List[Dict[str, Any]] = []
        try:
            for step_idx, sample in enumerate(self.trace):
                rec = self.step(step_idx, sample)
                logs.append(rec)
                if self.sink is not None:
                    self.sink.write(rec)

                every = int(self.cfg.print_every_steps)
                if every > 0 and step_idx % every == 0:
                    self._print_status(rec)

            if self._csv_path:
                try:
                    _write_csv(self._csv_path, logs)
                except OSError as e:
                    logger.warning(f"failed to write csv to {self._csv_path}: {e}")

            logger.info(f"replay done: steps={len(logs)} switches={self._switches} invalid_samples={self._invalid}")
            return logs
        finally:
            if self.sink is not None:
                self.sink.close()

    def _make_log_record(
        self,
        step_idx: int,
        sample: SignalSample,
        signals: Optional[RuntimeSignals],
        decision: Optional[FecDecision],
        invalid: bool,
    ) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "t_s": sample.start_ms / 1000.0,
            "step_idx": step_idx,
            "invalid_sample": invalid,

            "raw_loss": sample.loss_rate,
            "p": signals.p if signals else None,
            "buffer_s": signals.buffer_s if signals else None,
            "b_eff": signals.b_eff if signals else None,
            "goodput_mbps": signals.goodput_bps / 1e6 if signals else None,
            "playback_mbps": signals.playback_bps / 1e6 if signals else None,
            "headroom": signals.headroom if signals else None,
        }

        if decision is None:
            # 没有可行候选：控制器保留上一个 active，照样记录下来
            cfg = self.controller.active
            record.update({
                "switched": False,
                "reason": "no_feasible",
                "n": cfg.n,
                "s": cfg.s,
                "r": cfg.r,
                "overhead": cfg.overhead,
                "block_bytes": cfg.block_bytes,
                "score": None,
                "feasible": False,
            })
            return record

        cfg = decision.config
        active_eval = next((e for e in decision.evaluations if e.candidate.key() == cfg.key()), None)
        extra = decision.extra
        record.update({
            "switched": decision.switched,
            "reason": extra.get("reason", "switch" if decision.switched else "hold"),
            "n": cfg.n,
            "s": cfg.s,
            "r": cfg.r,
            "overhead": cfg.overhead,
            "block_bytes": cfg.block_bytes,
            "score": active_eval.score if active_eval else None,
            "feasible": active_eval.feasible if active_eval else None,
            "num_candidates": len(decision.evaluations),
            "num_feasible": sum(1 for e in decision.evaluations if e.feasible),
            "breakdown": active_eval.breakdown.as_dict() if active_eval else None,
        })
        return record

    def _print_status(self, rec: Dict[str, Any]) -> None:
        def _f(key: str, fmt: str) -> str:
            v = rec.get(key)
            return "   -" if v is None else format(v, fmt)

        logger.info(
            f"t={rec['t_s']:6.1f}s step={rec['step_idx']:4d}  "
            f"N={rec.get('n', '-')} S={rec.get('s', '-')} R={rec.get('r', '-')}  "
            f"o={_f('overhead', '.3f')} score={_f('score', '.4g')}  "
            f"p={_f('p', '.4f')} buf={_f('buffer_s', '.2f')}s h={_f('headroom', '.2f')}  "
            f"reason={rec.get('reason')} switches={self._switches}"
        )


def _write_csv(path: str, logs: List[Dict[str, Any]]) -> None:
    if not logs:
        return
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    keys: List[str] = []
    seen = set()
    for rec in logs:
        for k in rec.keys():
            # 嵌套的 breakdown 只进 jsonl
            if k not in seen and k != "breakdown":
                seen.add(k)
                keys.append(k)

    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=keys, extrasaction="ignore")
        w.writeheader()
        for rec in logs:
            w.writerow(rec)
