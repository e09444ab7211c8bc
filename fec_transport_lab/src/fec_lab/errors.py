# fec_transport_lab/src/fec_lab/errors.py
from __future__ import annotations


class FecControlError(Exception):
    """fec_lab 所有错误的基类。"""


class InvalidSample(FecControlError, ValueError):
    """
    原始测量样本越界（播放码率 <= 0、goodput < 0 等）。
    Estimator 拒绝该样本，平滑状态保持不变；调用方下一步提供新样本即可。
    """


class InvalidConfiguration(FecControlError, ValueError):
    """候选网格 / 常量表不满足不变量。只在加载时出现，会话无法启动。"""


class NoFeasibleCandidate(FecControlError):
    """
    本决策步所有候选都被约束过滤器否决。
    控制器保留上一个 active 配置；是否放宽约束/扩大网格由调用方决定。
    """

    def __init__(self, evaluated: int, message: str | None = None):
        self.evaluated = int(evaluated)
        super().__init__(message or f"no feasible candidate among {self.evaluated} evaluated")
