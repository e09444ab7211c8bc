# fec_transport_lab/src/fec_lab/controller/adaptive.py
from __future__ import annotations

import time
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from loguru import logger

from fec_lab.candidates.grid import CandidateGrid, generate
from fec_lab.codec.cost import CodecCost
from fec_lab.controller.base import FecDecision, Hold, Outcome, Switch
from fec_lab.controller.selector import Selector
from fec_lab.errors import NoFeasibleCandidate
from fec_lab.model.config import FecConfig
from fec_lab.model.types import CandidateConfig, ControllerState, Evaluation, RuntimeSignals
from fec_lab.scoring.constraints import within_codec_budget
from fec_lab.scoring.scorer import score_candidate


class NoFeasiblePolicy(str, Enum):
    """
    所有候选都不可行时的处理策略（由调用方选择）。两种策略都保留上一个 active：
      - RAISE：把 NoFeasibleCandidate 抛给调用方
      - HOLD：返回 Hold(reason="no_feasible")
    """
    RAISE = "raise"
    HOLD = "hold"


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class AdaptiveFecController:
    """
    每个决策步：
      候选枚举（active 在内）-> 打分 -> 约束过滤 -> Selector -> 状态转移

    ControllerState 由本对象独占；一次 decide 是纯计算，不做 I/O。
    同一会话内不要并发调用 decide。
    """

    def __init__(
        self,
        cfg: Optional[FecConfig] = None,
        *,
        initial: Optional[CandidateConfig] = None,
        no_feasible_policy: NoFeasiblePolicy = NoFeasiblePolicy.HOLD,
        clock: Optional[Callable[[], int]] = None,
        codec_cost: Optional[CodecCost] = None,
        codec_budget_s: Optional[float] = None,
    ):
        self.cfg = cfg or FecConfig()
        self.grid = CandidateGrid(self.cfg.grid)
        self.selector = Selector(self.cfg.selector)
        self.no_feasible_policy = NoFeasiblePolicy(no_feasible_policy)
        self.codec_cost = codec_cost
        self.codec_budget_s = codec_budget_s
        self._clock = clock or _monotonic_ms

        if codec_budget_s is not None and codec_budget_s <= 0:
            raise ValueError(f"codec_budget_s 必须 > 0：{codec_budget_s}")

        init = initial or self.cfg.initial or self.grid.first()
        # 会话开始时视为已驻留足够久，第一步就可以切走初始配置
        self.state = ControllerState(
            active=init,
            last_switch_ms=None,
            segments_since_switch=int(self.cfg.selector.min_dwell_segments),
        )

    @property
    def active(self) -> CandidateConfig:
        return self.state.active

    def evaluate(self, signals: RuntimeSignals) -> Tuple[Evaluation, ...]:
        constants = self.cfg.constants
        out = []
        for cand in generate(self.grid, self.state.active):
            bd = score_candidate(cand, signals, constants)
            if bd.feasible and not within_codec_budget(cand, self.codec_cost, self.codec_budget_s):
                bd = replace(bd, feasible=False)
            out.append(Evaluation(candidate=cand, breakdown=bd))
        return tuple(out)

    def decide(self, step_idx: int, signals: Optional[RuntimeSignals]) -> FecDecision:
        if signals is None:
            return FecDecision(
                config=self.state.active,
                outcome=Hold(reason="no_signals"),
                extra={"mode": "adaptive", "step_idx": step_idx, "reason": "no_signals"},
            )

        evaluations = self.evaluate(signals)
        now_ms = int(self._clock())
        old = self.state.active

        outcome: Outcome
        try:
            outcome = self.selector.select(evaluations, self.state, signals, self.cfg.constants)
        except NoFeasibleCandidate as e:
            outcome = Hold(reason="no_feasible")
            self.selector.apply(outcome, self.state, now_ms)
            logger.warning(
                f"step={step_idx} no feasible candidate among {e.evaluated}; "
                f"keeping n={old.n} s={old.s} r={old.r} (policy={self.no_feasible_policy.value})"
            )
            if self.no_feasible_policy is NoFeasiblePolicy.RAISE:
                raise
        else:
            self.selector.apply(outcome, self.state, now_ms)

        if isinstance(outcome, Switch):
            logger.info(
                f"step={step_idx} switch n={old.n} s={old.s} r={old.r} -> "
                f"n={outcome.config.n} s={outcome.config.s} r={outcome.config.r} "
                f"score={outcome.breakdown.score:.6g}"
            )
        else:
            logger.debug(f"step={step_idx} hold n={old.n} s={old.s} r={old.r} reason={outcome.reason}")

        return FecDecision(
            config=self.state.active,
            outcome=outcome,
            evaluations=evaluations,
            extra=self._make_extra(step_idx, old, outcome, evaluations, signals),
        )

    def _make_extra(
        self,
        step_idx: int,
        old: CandidateConfig,
        outcome: Outcome,
        evaluations: Tuple[Evaluation, ...],
        signals: RuntimeSignals,
    ) -> Dict[str, Any]:
        active_eval = next((e for e in evaluations if e.candidate.key() == old.key()), None)
        best = outcome.best if isinstance(outcome, Hold) else None
        extra: Dict[str, Any] = {
            "mode": "adaptive",
            "step_idx": step_idx,
            "old": old.as_dict(),
            "active": self.state.active.as_dict(),
            "switched": isinstance(outcome, Switch),
            "reason": outcome.reason if isinstance(outcome, Hold) else "switch",
            "num_candidates": len(evaluations),
            "num_feasible": sum(1 for e in evaluations if e.feasible),
            "old_score": active_eval.score if active_eval is not None else None,
            "old_feasible": active_eval.feasible if active_eval is not None else None,
            "segments_since_switch": self.state.segments_since_switch,
            "signals": signals.as_dict(),
        }
        if isinstance(outcome, Switch):
            extra["chosen_score"] = outcome.breakdown.score
            extra["chosen_overhead"] = outcome.breakdown.o
        elif best is not None:
            extra["best"] = best.candidate.as_dict()
            extra["best_score"] = best.score

        if self.codec_cost is not None:
            extra["codec"] = {
                "algo": self.codec_cost.algo,
                "encode_s": self.codec_cost.encode_s(self.state.active),
                "decode_s": self.codec_cost.decode_s(self.state.active),
            }
        return extra
