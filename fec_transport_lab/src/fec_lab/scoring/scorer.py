# fec_transport_lab/src/fec_lab/scoring/scorer.py
"""
候选打分。对一个 (candidate, signals) 计算三项惩罚与加权分数，分数越低越好：

    score = w_loss * pen_loss + w_over * pen_over + w_blk * pen_blk

loss：正态近似 + 连续性修正
    z     = (P + 0.5 - T*p) / sqrt(max(T*p*(1-p), eps_var))
    z_tgt = z_min + alpha_B * max(0, B_crit - B_eff) - alpha_h * min(h, h_cap)
    pen_loss = max(0, z_tgt - z) ** beta

overhead：
    o_free = min(o_cap, o0 + k_B * B_eff + k_h * min(h, h_cap))
    pen_over = max(0, o - o_free) ** alpha

block / latency：
    t_blk   = 8 * T * S / max(G, eps)
    pen_blk = clamp(t_blk / (eta * B_eff) - 1, 0, 1)，B_eff == 0 时取 1

数值稳定规则：p ∈ {0,1} 时 T*p*(1-p) = 0，方差取下限 eps_var，
z 变为一个很大的有限值而不是除零；这是定义行为，不算错误。
"""
from __future__ import annotations

import math
from dataclasses import replace

from fec_lab.model.config import ScoringConstants
from fec_lab.model.types import CandidateConfig, RuntimeSignals, ScoreBreakdown
from fec_lab.scoring.constraints import feasible


def loss_z(p_sym: int, t_sym: int, p: float, eps_var: float) -> float:
    var = t_sym * p * (1.0 - p)
    return (p_sym + 0.5 - t_sym * p) / math.sqrt(max(var, eps_var))


def score(candidate: CandidateConfig, signals: RuntimeSignals, constants: ScoringConstants) -> ScoreBreakdown:
    c = constants
    p = signals.p
    b_eff = signals.b_eff
    h_capped = min(signals.headroom, c.h_cap)

    # 1) 派生量
    p_sym = candidate.repair_symbols
    t_sym = candidate.total_symbols
    o = p_sym / t_sym
    b_blk = t_sym * candidate.s

    # 2) loss
    z = loss_z(p_sym, t_sym, p, c.eps_var)
    z_tgt = c.z_min + c.alpha_b * max(0.0, c.b_crit - b_eff) - c.alpha_h * h_capped
    pen_loss = max(0.0, z_tgt - z) ** c.beta

    # 3) overhead
    o_free = min(c.o_cap, c.o0 + c.k_b * b_eff + c.k_h * h_capped)
    o_ex = max(0.0, o - o_free)
    pen_over = o_ex ** c.alpha

    # 4) block / latency
    t_blk = 8.0 * t_sym * candidate.s / max(signals.goodput_bps, c.eps)
    if b_eff <= 0.0:
        pen_blk = 1.0
    else:
        pen_blk = min(1.0, max(0.0, t_blk / (c.eta * b_eff) - 1.0))

    # 5) weights
    w_loss = c.w_loss_min + c.lambda_p * min(p, c.p_cap)
    w_over = c.w_over_min + c.lambda_b * (b_eff / c.b_sat) + c.lambda_h * h_capped
    w_blk = (
        c.w_blk_min
        + c.lambda_risk * max(0.0, 1.0 - b_eff / c.b_crit)
        + c.lambda_h_neg * max(0.0, -min(signals.headroom, 0.0))
    )

    # 6) score
    total = w_loss * pen_loss + w_over * pen_over + w_blk * pen_blk

    return ScoreBreakdown(
        p_sym=p_sym,
        t_sym=t_sym,
        o=o,
        b_blk=b_blk,
        z=z,
        z_tgt=z_tgt,
        pen_loss=pen_loss,
        o_free=o_free,
        o_ex=o_ex,
        pen_over=pen_over,
        t_blk=t_blk,
        pen_blk=pen_blk,
        w_loss=w_loss,
        w_over=w_over,
        w_blk=w_blk,
        score=total,
    )


def score_candidate(candidate: CandidateConfig, signals: RuntimeSignals, constants: ScoringConstants) -> ScoreBreakdown:
    """打分 + 约束过滤，返回 feasible 已填好的 breakdown。"""
    bd = score(candidate, signals, constants)
    return replace(bd, feasible=feasible(candidate, bd, signals, constants))
