# fec_transport_lab/src/fec_lab/model/types.py
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from fec_lab.errors import InvalidSample

if TYPE_CHECKING:
    from fec_lab.model.config import ScoringConstants


# N*R 先量化到 1e-9 再取 ceil：20 * 0.3 这类浮点积必须得到 6 而不是 7
_REPAIR_QUANTUM_DIGITS = 9


@dataclass(frozen=True)
class CandidateConfig:
    """
    一个 FEC 候选配置 (N, S, R)。

    - n: 源符号数 N (>= 1)
    - s: 符号大小 S，字节 (>= 1)
    - r: 冗余比 R (>= 0)，P = ceil(N*R)

    派生量每次访问都重新计算，不做缓存。
    """
    n: int
    s: int
    r: float

    def __post_init__(self) -> None:
        if int(self.n) < 1:
            raise ValueError(f"N 必须 >= 1：{self.n}")
        if int(self.s) < 1:
            raise ValueError(f"S 必须 >= 1：{self.s}")
        if not (self.r >= 0.0) or math.isinf(self.r):
            raise ValueError(f"R 必须是非负有限数：{self.r}")

    @property
    def repair_symbols(self) -> int:
        return int(math.ceil(round(self.n * self.r, _REPAIR_QUANTUM_DIGITS)))

    @property
    def total_symbols(self) -> int:
        return self.n + self.repair_symbols

    @property
    def overhead(self) -> float:
        return self.repair_symbols / self.total_symbols

    @property
    def block_bytes(self) -> int:
        return self.total_symbols * self.s

    def key(self) -> tuple:
        return (self.n, self.s, self.r)

    def as_dict(self) -> Dict[str, Any]:
        return {"n": self.n, "s": self.s, "r": self.r}


@dataclass(frozen=True)
class RuntimeSignals:
    """
    决策时刻的运行时信号快照。

    - p: 平滑丢包率 [0,1]
    - buffer_s: 播放缓冲（秒）
    - goodput_bps / playback_bps: 有效吞吐与播放码率（bit/s）
    - headroom: h = (G - R_play) / max(R_play, eps)，可以为负
    - b_eff: min(B, B_sat)
    """
    p: float
    buffer_s: float
    goodput_bps: float
    playback_bps: float
    headroom: float
    b_eff: float

    def __post_init__(self) -> None:
        for name in ("p", "buffer_s", "goodput_bps", "playback_bps", "headroom", "b_eff"):
            v = getattr(self, name)
            if not math.isfinite(v):
                raise InvalidSample(f"{name} 必须是有限数值：{v}")
        if not (0.0 <= self.p <= 1.0):
            raise InvalidSample(f"p 必须在 [0,1]：{self.p}")
        if self.buffer_s < 0 or self.b_eff < 0:
            raise InvalidSample(f"buffer 不能为负：buffer_s={self.buffer_s} b_eff={self.b_eff}")
        if self.goodput_bps < 0:
            raise InvalidSample(f"goodput 不能为负：{self.goodput_bps}")
        if self.playback_bps <= 0:
            raise InvalidSample(f"playback 码率必须 > 0：{self.playback_bps}")

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def derive_signals(
    p: float,
    buffer_s: float,
    goodput_bps: float,
    playback_bps: float,
    constants: "ScoringConstants",
) -> RuntimeSignals:
    """取值域由 RuntimeSignals 校验，非法输入抛 InvalidSample。"""
    p = float(p)
    buffer_s = float(buffer_s)
    goodput_bps = float(goodput_bps)
    playback_bps = float(playback_bps)

    headroom = (goodput_bps - playback_bps) / max(playback_bps, constants.eps)
    b_eff = min(buffer_s, constants.b_sat)
    return RuntimeSignals(
        p=p,
        buffer_s=buffer_s,
        goodput_bps=goodput_bps,
        playback_bps=playback_bps,
        headroom=float(headroom),
        b_eff=float(b_eff),
    )


@dataclass(frozen=True)
class ScoreBreakdown:
    """
    单个 (candidate, signals) 的打分明细，每个中间量都保留下来用于观测/测试。
    只在一次决策内有效，不跨步保存。
    """
    # 派生量
    p_sym: int
    t_sym: int
    o: float
    b_blk: int

    # loss
    z: float
    z_tgt: float
    pen_loss: float

    # overhead
    o_free: float
    o_ex: float
    pen_over: float

    # block / latency
    t_blk: float
    pen_blk: float

    # weights
    w_loss: float
    w_over: float
    w_blk: float

    score: float
    feasible: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Evaluation:
    candidate: CandidateConfig
    breakdown: ScoreBreakdown

    @property
    def score(self) -> float:
        return self.breakdown.score

    @property
    def feasible(self) -> bool:
        return self.breakdown.feasible


@dataclass
class ControllerState:
    """
    会话级控制器状态。只由控制器在 Selector 给出结果后修改。
    """
    active: CandidateConfig
    last_switch_ms: Optional[int] = None
    segments_since_switch: int = 0
