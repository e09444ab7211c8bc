# fec_transport_lab/src/fec_lab/scoring/constraints.py
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from fec_lab.model.config import ScoringConstants
from fec_lab.model.types import CandidateConfig, RuntimeSignals, ScoreBreakdown

if TYPE_CHECKING:
    from fec_lab.codec.cost import CodecCost


def rejection_reasons(
    candidate: CandidateConfig,
    breakdown: ScoreBreakdown,
    signals: RuntimeSignals,
    constants: ScoringConstants,
) -> List[str]:
    """
    硬约束（与分数大小无关）：
      - o > o_cap
      - t_blk > 1.5 * B_eff
      - z < 0 且 B_eff < 1s
    返回触发的规则名，空列表表示可行。
    """
    reasons: List[str] = []
    if breakdown.o > constants.o_cap:
        reasons.append("overhead_cap")
    if breakdown.t_blk > constants.t_blk_factor * signals.b_eff:
        reasons.append("block_time")
    if breakdown.z < 0.0 and signals.b_eff < constants.feasibility_min_buffer_s:
        reasons.append("loss_at_low_buffer")
    return reasons


def feasible(
    candidate: CandidateConfig,
    breakdown: ScoreBreakdown,
    signals: RuntimeSignals,
    constants: ScoringConstants,
) -> bool:
    return not rejection_reasons(candidate, breakdown, signals, constants)


def within_codec_budget(candidate: CandidateConfig, cost: Optional["CodecCost"], budget_s: Optional[float]) -> bool:
    """可选的编解码耗时否决；未配置 cost 或 budget 时总是通过。"""
    if cost is None or budget_s is None:
        return True
    return cost.total_s(candidate) <= budget_s
