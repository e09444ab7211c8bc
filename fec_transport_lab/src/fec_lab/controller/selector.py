# fec_transport_lab/src/fec_lab/controller/selector.py
from __future__ import annotations

from typing import Optional, Sequence

from fec_lab.errors import NoFeasibleCandidate
from fec_lab.controller.base import Hold, Outcome, Switch
from fec_lab.model.config import ScoringConstants, SelectorConfig
from fec_lab.model.types import ControllerState, Evaluation, RuntimeSignals


class Selector:
    """
    stay / switch 选择：

    1. best = 分数最低的可行候选；没有可行候选 -> NoFeasibleCandidate
    2. 分数在 eps_tie 以内视为平局：优先 o 小、S 大、N 大；
       B_eff < B_crit 时优先 pen_loss 最小
    3. 切换门限：best.score < active.score * (1 - delta) 且
       segments_since_switch >= min_dwell_segments
       （active 本身不可行时不要求迟滞裕量，驻留仍然生效）
    """

    def __init__(self, cfg: Optional[SelectorConfig] = None):
        self.cfg = cfg or SelectorConfig()

    def best(
        self,
        evaluations: Sequence[Evaluation],
        signals: RuntimeSignals,
        constants: ScoringConstants,
    ) -> Evaluation:
        cands = [e for e in evaluations if e.feasible]
        if not cands:
            raise NoFeasibleCandidate(evaluated=len(evaluations))

        best_score = min(e.score for e in cands)
        band = [e for e in cands if e.score <= best_score + self.cfg.eps_tie]
        if len(band) == 1:
            return band[0]

        low_buffer = signals.b_eff < constants.b_crit

        def _tie_key(e: Evaluation) -> tuple:
            base = (e.breakdown.o, -e.candidate.s, -e.candidate.n)
            if low_buffer:
                return (e.breakdown.pen_loss,) + base
            return base

        # min 是稳定的：完全相同的 key 保留枚举顺序里靠前的那个
        return min(band, key=_tie_key)

    def gate(self, active: Evaluation, best: Evaluation, state: ControllerState) -> Optional[str]:
        """返回阻止切换的原因；None 表示允许切换。"""
        if state.segments_since_switch < int(self.cfg.min_dwell_segments):
            return "dwell"
        if active.feasible and not (best.score < active.score * (1.0 - self.cfg.delta)):
            return "hysteresis"
        return None

    def select(
        self,
        evaluations: Sequence[Evaluation],
        state: ControllerState,
        signals: RuntimeSignals,
        constants: ScoringConstants,
    ) -> Outcome:
        active_key = state.active.key()
        active = next((e for e in evaluations if e.candidate.key() == active_key), None)
        if active is None:
            raise ValueError(f"active 配置 {state.active} 必须参与本步打分")

        best = self.best(evaluations, signals, constants)
        if best.candidate.key() == active_key:
            return Hold(reason="active_is_best", best=best)

        reason = self.gate(active, best, state)
        if reason is not None:
            return Hold(reason=reason, best=best)
        return Switch(config=best.candidate, breakdown=best.breakdown)

    @staticmethod
    def apply(outcome: Outcome, state: ControllerState, now_ms: Optional[int]) -> None:
        """ControllerState 唯一的状态转移入口。"""
        if isinstance(outcome, Switch):
            state.active = outcome.config
            state.last_switch_ms = now_ms
            state.segments_since_switch = 0
        else:
            state.segments_since_switch += 1
