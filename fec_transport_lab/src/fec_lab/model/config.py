# fec_transport_lab/src/fec_lab/model/config.py
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

from fec_lab.errors import InvalidConfiguration
from fec_lab.model.types import CandidateConfig


def _finite(name: str, v: float) -> None:
    if not isinstance(v, (int, float)) or isinstance(v, bool) or not math.isfinite(v):
        raise InvalidConfiguration(f"{name} 必须是有限数值：{v!r}")


def _gamma(name: str, v: Optional[float], *, optional: bool) -> None:
    if v is None:
        if optional:
            return
        raise InvalidConfiguration(f"{name} 不能为空")
    _finite(name, v)
    if not (0.0 < v <= 1.0):
        raise InvalidConfiguration(f"{name} 必须在 (0,1]：{v}")


@dataclass(frozen=True)
class ScoringConstants:
    """
    打分公式里的全部可调参数。加载一次，会话期间不可变。
    Scorer 内部不允许有隐藏默认值：所有常量都从这里取。
    """
    # buffer
    b_sat: float = 6.0
    b_crit: float = 3.0
    # headroom
    h_cap: float = 1.0

    # loss penalty
    z_min: float = 1.5
    alpha_b: float = 0.5
    alpha_h: float = 0.25
    beta: float = 2.0

    # overhead penalty
    o0: float = 0.1
    k_b: float = 0.02
    k_h: float = 0.05
    o_cap: float = 0.5
    alpha: float = 2.0

    # block penalty
    eta: float = 0.5

    # weights
    p_cap: float = 0.2
    w_loss_min: float = 1.0
    lambda_p: float = 10.0
    w_over_min: float = 0.5
    lambda_b: float = 0.5
    lambda_h: float = 0.25
    w_blk_min: float = 0.5
    lambda_risk: float = 1.0
    lambda_h_neg: float = 1.0

    # 约束过滤器
    t_blk_factor: float = 1.5
    feasibility_min_buffer_s: float = 1.0

    # 数值稳定下限：max(R_play, eps) / max(G, eps)，以及 z 的方差下限
    eps: float = 1e-9
    eps_var: float = 1e-6

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        for f in fields(self):
            _finite(f.name, getattr(self, f.name))

        positive = ("b_sat", "b_crit", "h_cap", "beta", "alpha", "eta", "eps", "eps_var", "t_blk_factor")
        for name in positive:
            if getattr(self, name) <= 0:
                raise InvalidConfiguration(f"{name} 必须 > 0：{getattr(self, name)}")

        non_negative = (
            "z_min", "alpha_b", "alpha_h", "o0", "k_b", "k_h", "feasibility_min_buffer_s",
            "w_loss_min", "lambda_p", "w_over_min", "lambda_b", "lambda_h",
            "w_blk_min", "lambda_risk", "lambda_h_neg",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                raise InvalidConfiguration(f"{name} 不能为负：{getattr(self, name)}")

        if not (0.0 < self.o_cap < 1.0):
            raise InvalidConfiguration(f"o_cap 必须在 (0,1)：{self.o_cap}")
        if not (0.0 <= self.p_cap <= 1.0):
            raise InvalidConfiguration(f"p_cap 必须在 [0,1]：{self.p_cap}")
        # G >= 0 时 h >= -1，w_over 的下界是 w_over_min - lambda_h
        if self.lambda_h > self.w_over_min:
            raise InvalidConfiguration(
                f"lambda_h={self.lambda_h} 大于 w_over_min={self.w_over_min}：h < 0 时 w_over 会变负"
            )


@dataclass(frozen=True)
class AxisSpec:
    """
    候选网格的一个维度：要么给离散 values，要么给 min/max/step。
    """
    values: Optional[Tuple[float, ...]] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None

    @classmethod
    def of(cls, *values: float) -> "AxisSpec":
        return cls(values=tuple(values))

    @classmethod
    def sweep(cls, lo: float, hi: float, step: float) -> "AxisSpec":
        return cls(min=lo, max=hi, step=step)

    def validate(self, name: str, *, lower: float) -> None:
        if self.values is not None:
            if self.min is not None or self.max is not None or self.step is not None:
                raise InvalidConfiguration(f"{name}: values 与 min/max/step 不能同时给出")
            if len(self.values) == 0:
                raise InvalidConfiguration(f"{name}: values 不能为空")
            for v in self.values:
                _finite(f"{name}.values", v)
                if v < lower:
                    raise InvalidConfiguration(f"{name}: 取值 {v} 小于下限 {lower}")
            return

        if self.min is None or self.max is None or self.step is None:
            raise InvalidConfiguration(f"{name}: 需要 values 或完整的 min/max/step")
        for k in ("min", "max", "step"):
            _finite(f"{name}.{k}", getattr(self, k))
        if self.step <= 0:
            raise InvalidConfiguration(f"{name}: step 必须 > 0：{self.step}")
        if self.min < lower:
            raise InvalidConfiguration(f"{name}: min={self.min} 小于下限 {lower}")
        if self.max < self.min:
            raise InvalidConfiguration(f"{name}: max={self.max} < min={self.min}")


def _default_n() -> AxisSpec:
    return AxisSpec.of(10, 20, 30, 40, 50)


def _default_s() -> AxisSpec:
    return AxisSpec.of(64, 92, 120, 250, 512)


def _default_r() -> AxisSpec:
    return AxisSpec.of(0.1, 0.2, 0.3, 0.4, 0.5)


@dataclass(frozen=True)
class GridBounds:
    n: AxisSpec = field(default_factory=_default_n)
    s: AxisSpec = field(default_factory=_default_s)
    r: AxisSpec = field(default_factory=_default_r)
    # R 轴的量化精度（小数位）
    r_decimals: int = 6

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        self.n.validate("n", lower=1)
        self.s.validate("s", lower=1)
        self.r.validate("r", lower=0.0)
        for name, axis in (("n", self.n), ("s", self.s)):
            vals = axis.values if axis.values is not None else (axis.min, axis.max, axis.step)
            if any(float(v) != int(v) for v in vals):
                raise InvalidConfiguration(f"{name} 轴必须是整数：{vals}")
        if not (0 <= int(self.r_decimals) <= 12):
            raise InvalidConfiguration(f"r_decimals 必须在 [0,12]：{self.r_decimals}")


@dataclass(frozen=True)
class SelectorConfig:
    # 迟滞：best.score < active.score * (1 - delta) 才允许切换
    delta: float = 0.1
    # 分数差在 eps_tie 以内视为平局
    eps_tie: float = 1e-9
    # 最小驻留：距离上次切换至少这么多个决策步
    min_dwell_segments: int = 1

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _finite("delta", self.delta)
        _finite("eps_tie", self.eps_tie)
        if not (0.05 <= self.delta <= 0.15):
            raise InvalidConfiguration(f"delta 必须在 [0.05,0.15]：{self.delta}")
        if self.eps_tie < 0:
            raise InvalidConfiguration(f"eps_tie 不能为负：{self.eps_tie}")
        if int(self.min_dwell_segments) < 1:
            raise InvalidConfiguration(f"min_dwell_segments 必须 >= 1：{self.min_dwell_segments}")


@dataclass(frozen=True)
class EstimatorConfig:
    """
    丢包率 EWMA 系数与 buffer/goodput/播放码率的平滑系数互相独立；
    后三者为 None 时直接透传瞬时值。
    """
    loss_gamma: float = 0.3
    buffer_gamma: Optional[float] = None
    goodput_gamma: Optional[float] = None
    playback_gamma: Optional[float] = None
    # None：用第一个样本初始化平滑丢包率
    initial_loss: Optional[float] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        _gamma("loss_gamma", self.loss_gamma, optional=False)
        _gamma("buffer_gamma", self.buffer_gamma, optional=True)
        _gamma("goodput_gamma", self.goodput_gamma, optional=True)
        _gamma("playback_gamma", self.playback_gamma, optional=True)
        if self.initial_loss is not None:
            _finite("initial_loss", self.initial_loss)
            if not (0.0 <= self.initial_loss <= 1.0):
                raise InvalidConfiguration(f"initial_loss 必须在 [0,1]：{self.initial_loss}")


@dataclass(frozen=True)
class FecConfig:
    constants: ScoringConstants = field(default_factory=ScoringConstants)
    grid: GridBounds = field(default_factory=GridBounds)
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    estimator: EstimatorConfig = field(default_factory=EstimatorConfig)
    # 会话初始 active 配置；None 表示使用网格里的第一个候选
    initial: Optional[CandidateConfig] = None

    def as_dict(self) -> Dict[str, Any]:
        def _axis(a: AxisSpec) -> Dict[str, Any]:
            if a.values is not None:
                return {"values": list(a.values)}
            return {"min": a.min, "max": a.max, "step": a.step}

        return {
            "constants": {f.name: getattr(self.constants, f.name) for f in fields(self.constants)},
            "grid": {
                "n": _axis(self.grid.n),
                "s": _axis(self.grid.s),
                "r": _axis(self.grid.r),
                "r_decimals": self.grid.r_decimals,
            },
            "selector": {f.name: getattr(self.selector, f.name) for f in fields(self.selector)},
            "estimator": {f.name: getattr(self.estimator, f.name) for f in fields(self.estimator)},
            "initial": self.initial.as_dict() if self.initial is not None else None,
        }


# ---------------------- JSON 加载 ----------------------
def _filtered(cls, section: str, raw: Any) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise InvalidConfiguration(f"{section} 必须是一个 JSON object（字典）")
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise InvalidConfiguration(f"{section} 存在未知字段：{unknown}，允许的字段={sorted(allowed)}")
    return dict(raw)


def _axis_from(name: str, raw: Any) -> AxisSpec:
    kw = _filtered(AxisSpec, f"grid.{name}", raw)
    if "values" in kw and kw["values"] is not None:
        if not isinstance(kw["values"], list):
            raise InvalidConfiguration(f"grid.{name}.values 必须是数组")
        kw["values"] = tuple(kw["values"])
    return AxisSpec(**kw)


def config_from_dict(doc: Dict[str, Any]) -> FecConfig:
    if not isinstance(doc, dict):
        raise InvalidConfiguration("配置根节点必须是 JSON object")
    unknown = sorted(set(doc) - {"constants", "grid", "selector", "estimator", "initial"})
    if unknown:
        raise InvalidConfiguration(f"配置存在未知字段：{unknown}")

    try:
        constants = ScoringConstants(**_filtered(ScoringConstants, "constants", doc.get("constants")))
        selector = SelectorConfig(**_filtered(SelectorConfig, "selector", doc.get("selector")))
        estimator = EstimatorConfig(**_filtered(EstimatorConfig, "estimator", doc.get("estimator")))

        grid_raw = _filtered(GridBounds, "grid", doc.get("grid"))
        grid_kw: Dict[str, Any] = {}
        for axis in ("n", "s", "r"):
            if axis in grid_raw:
                grid_kw[axis] = _axis_from(axis, grid_raw[axis])
        if "r_decimals" in grid_raw:
            grid_kw["r_decimals"] = int(grid_raw["r_decimals"])
        grid = GridBounds(**grid_kw)

        initial = None
        if doc.get("initial") is not None:
            init_raw = _filtered(CandidateConfig, "initial", doc["initial"])
            initial = CandidateConfig(n=int(init_raw["n"]), s=int(init_raw["s"]), r=float(init_raw["r"]))
    except InvalidConfiguration:
        raise
    except (TypeError, ValueError, KeyError) as e:
        raise InvalidConfiguration(f"配置不合法：{e}") from e

    return FecConfig(constants=constants, grid=grid, selector=selector, estimator=estimator, initial=initial)


def load_config_json(path: str) -> FecConfig:
    with open(path, "r", encoding="utf-8") as f:
        try:
            doc = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidConfiguration(f"配置文件不是合法 JSON：{path}: {e}") from e
    return config_from_dict(doc)
