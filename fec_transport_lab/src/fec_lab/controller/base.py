# fec_transport_lab/src/fec_lab/controller/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Tuple, Union

from fec_lab.model.types import CandidateConfig, Evaluation, RuntimeSignals, ScoreBreakdown


@dataclass(frozen=True)
class Switch:
    """切换到新配置。"""
    config: CandidateConfig
    breakdown: ScoreBreakdown


@dataclass(frozen=True)
class Hold:
    """
    保持当前 active。reason 取值：
      active_is_best / hysteresis / dwell / no_feasible / no_signals / fixed
    """
    reason: str
    best: Optional[Evaluation] = None


Outcome = Union[Switch, Hold]


@dataclass(frozen=True)
class FecDecision:
    """
    决策输出：本步之后的 active 配置（交给外部 codec）。
    evaluations 是本步所有候选的打分明细，只用于观测。
    """
    config: CandidateConfig
    outcome: Outcome
    evaluations: Tuple[Evaluation, ...] = ()
    extra: Dict[str, Any] = field(default_factory=dict)  # 调试信息、分数明细等

    @property
    def switched(self) -> bool:
        return isinstance(self.outcome, Switch)


class FecController(Protocol):
    """
    上层控制器统一接口：每个决策步（segment 边界）调用一次。
    active 是当前生效的配置，decide 抛异常时也保持有效。
    """
    @property
    def active(self) -> CandidateConfig:
        ...

    def decide(self, step_idx: int, signals: Optional[RuntimeSignals]) -> FecDecision:
        ...
