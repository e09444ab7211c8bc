# fec_transport_lab/src/fec_lab/signals/estimator.py
from __future__ import annotations

import math
import threading
from typing import Optional

from loguru import logger

from fec_lab.errors import InvalidSample
from fec_lab.model.config import EstimatorConfig, ScoringConstants
from fec_lab.model.types import RuntimeSignals, derive_signals


def _ewma(gamma: Optional[float], raw: float, old: Optional[float]) -> float:
    if gamma is None or old is None:
        return raw
    return gamma * raw + (1.0 - gamma) * old


class SignalEstimator:
    """
    运行时信号估计：
      - 丢包率做 EWMA：p = gamma * raw + (1 - gamma) * p_old
      - buffer / goodput / 播放码率默认透传瞬时值（各自的 gamma 配置后才平滑）
      - h 与 B_eff 用 ScoringConstants 计算

    丢包观测可能来自另一个线程（observe_loss），所有状态读写都在同一把锁里完成，
    决策步调用 update/snapshot 时总能拿到一致的快照。
    """

    def __init__(self, constants: ScoringConstants, cfg: Optional[EstimatorConfig] = None):
        self.constants = constants
        self.cfg = cfg or EstimatorConfig()
        self._lock = threading.Lock()

        self._p: Optional[float] = self.cfg.initial_loss
        self._buffer_s: Optional[float] = None
        self._goodput_bps: Optional[float] = None
        self._playback_bps: Optional[float] = None

    @property
    def smoothed_loss(self) -> Optional[float]:
        with self._lock:
            return self._p

    # ---------------------- 校验 ----------------------
    @staticmethod
    def _check_loss(raw_loss: float) -> float:
        x = float(raw_loss)
        if not math.isfinite(x) or not (0.0 <= x <= 1.0):
            raise InvalidSample(f"loss 必须在 [0,1]：{raw_loss}")
        return x

    @staticmethod
    def _check_sample(raw_buffer_s: float, raw_goodput_bps: float, raw_playback_bps: float) -> tuple:
        b = float(raw_buffer_s)
        g = float(raw_goodput_bps)
        r = float(raw_playback_bps)
        if not (math.isfinite(b) and math.isfinite(g) and math.isfinite(r)):
            raise InvalidSample(f"样本存在非有限值：buffer={b} goodput={g} playback={r}")
        if r <= 0:
            raise InvalidSample(f"playback 码率必须 > 0：{r}")
        if g < 0:
            raise InvalidSample(f"goodput 不能为负：{g}")
        if b < 0:
            raise InvalidSample(f"buffer 不能为负：{b}")
        return b, g, r

    # ---------------------- 更新 ----------------------
    def observe_loss(self, raw_loss: float) -> float:
        """异步丢包上报路径：只更新平滑丢包率，返回新的 p。"""
        x = self._check_loss(raw_loss)
        with self._lock:
            self._p = _ewma(self.cfg.loss_gamma, x, self._p)
            return self._p

    def update(
        self,
        raw_loss: float,
        raw_buffer_s: float,
        raw_goodput_bps: float,
        raw_playback_bps: float,
    ) -> RuntimeSignals:
        try:
            x = self._check_loss(raw_loss)
            b, g, r = self._check_sample(raw_buffer_s, raw_goodput_bps, raw_playback_bps)
        except InvalidSample as e:
            logger.warning(f"sample rejected: {e}")
            raise

        with self._lock:
            self._p = _ewma(self.cfg.loss_gamma, x, self._p)
            self._buffer_s = _ewma(self.cfg.buffer_gamma, b, self._buffer_s)
            self._goodput_bps = _ewma(self.cfg.goodput_gamma, g, self._goodput_bps)
            self._playback_bps = _ewma(self.cfg.playback_gamma, r, self._playback_bps)
            return self._derive_locked()

    def snapshot(self) -> Optional[RuntimeSignals]:
        """
        最新信号快照；若 update 之后又有 observe_loss，使用最新的平滑丢包率。
        尚未收到完整样本时返回 None。
        """
        with self._lock:
            if self._playback_bps is None:
                return None
            return self._derive_locked()

    def reset(self) -> None:
        with self._lock:
            self._p = self.cfg.initial_loss
            self._buffer_s = None
            self._goodput_bps = None
            self._playback_bps = None

    def _derive_locked(self) -> RuntimeSignals:
        p = self._p if self._p is not None else 0.0  # 只在 update 之前为 None
        return derive_signals(
            p=min(1.0, max(0.0, p)),
            buffer_s=self._buffer_s,
            goodput_bps=self._goodput_bps,
            playback_bps=self._playback_bps,
            constants=self.constants,
        )
