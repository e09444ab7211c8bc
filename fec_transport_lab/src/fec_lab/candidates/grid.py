# fec_transport_lab/src/fec_lab/candidates/grid.py
from __future__ import annotations

import math
from typing import Iterator, List, Optional

import numpy as np

from fec_lab.model.config import AxisSpec, GridBounds
from fec_lab.model.types import CandidateConfig


def _axis_values(axis: AxisSpec, *, integer: bool, decimals: int) -> List[float]:
    """
    把一个维度展开成有序、去重的取值列表。
    sweep 的点数用整数计数得到，避免 min + k*step 的浮点累积把 max 挤掉。
    """
    if axis.values is not None:
        raw = np.asarray(axis.values, dtype=float)
    else:
        count = int(math.floor((axis.max - axis.min) / axis.step + 1e-9)) + 1
        raw = axis.min + np.arange(count, dtype=float) * axis.step

    if integer:
        vals = np.unique(np.rint(raw).astype(int))
        return [int(v) for v in vals]
    vals = np.unique(np.round(raw, decimals))
    return [float(v) for v in vals]


class CandidateGrid:
    """
    有限、可重复迭代、顺序确定的 (N, S, R) 候选网格。
    迭代顺序：N（外层）-> S -> R（内层），均为升序。
    """

    def __init__(self, bounds: GridBounds):
        self.bounds = bounds
        self.n_values = _axis_values(bounds.n, integer=True, decimals=0)
        self.s_values = _axis_values(bounds.s, integer=True, decimals=0)
        self.r_values = _axis_values(bounds.r, integer=False, decimals=int(bounds.r_decimals))

    def __len__(self) -> int:
        return len(self.n_values) * len(self.s_values) * len(self.r_values)

    def __iter__(self) -> Iterator[CandidateConfig]:
        for n in self.n_values:
            for s in self.s_values:
                for r in self.r_values:
                    yield CandidateConfig(n=n, s=s, r=r)

    def first(self) -> CandidateConfig:
        return next(iter(self))


def generate(bounds: GridBounds | CandidateGrid, active: Optional[CandidateConfig] = None) -> Iterator[CandidateConfig]:
    """
    本决策步的候选序列（惰性）。active 总是第一个出现，
    网格中与 active 相同的点被跳过，保证 "stay" 与 "switch" 同等参与打分。
    """
    grid = bounds if isinstance(bounds, CandidateGrid) else CandidateGrid(bounds)
    if active is not None:
        yield active
    for cand in grid:
        if active is not None and cand.key() == active.key():
            continue
        yield cand
