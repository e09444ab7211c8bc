from __future__ import annotations

from typing import Optional

from fec_lab.controller.base import FecDecision, Hold
from fec_lab.model.config import ScoringConstants
from fec_lab.model.types import CandidateConfig, Evaluation, RuntimeSignals
from fec_lab.scoring.scorer import score_candidate


class FixedFecController:
    """基线：始终使用同一个 (N, S, R)，只打分用于对比。"""

    def __init__(self, config: CandidateConfig, constants: Optional[ScoringConstants] = None):
        self.config = config
        self.constants = constants or ScoringConstants()

    @property
    def active(self) -> CandidateConfig:
        return self.config

    def decide(self, step_idx: int, signals: Optional[RuntimeSignals]) -> FecDecision:
        if signals is None:
            return FecDecision(config=self.config, outcome=Hold(reason="fixed"), extra={"mode": "fixed"})

        bd = score_candidate(self.config, signals, self.constants)
        ev = Evaluation(candidate=self.config, breakdown=bd)
        return FecDecision(
            config=self.config,
            outcome=Hold(reason="fixed", best=ev),
            evaluations=(ev,),
            extra={
                "mode": "fixed",
                "step_idx": step_idx,
                "active": self.config.as_dict(),
                "old_score": bd.score,
                "old_feasible": bd.feasible,
            },
        )
