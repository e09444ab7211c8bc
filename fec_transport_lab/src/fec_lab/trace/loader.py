# fec_transport_lab/src/fec_lab/trace/loader.py
from __future__ import annotations

import csv
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class SignalSample:
    start_ms: int
    loss_rate: float     # 0~1
    buffer_s: float
    goodput_bps: float
    playback_bps: float


def load_signal_trace_csv(path: str) -> List[SignalSample]:
    """
    读取分段常量的测量 trace，每行对应一个决策步。

    CSV columns (required):
      - start_ms
      - loss_rate
      - buffer_s
      - goodput_bps
      - playback_bps

    这里只做结构性检查（列、数值格式、start_ms >= 0）；
    取值域（播放码率 <= 0、goodput < 0 ...）交给 SignalEstimator 判定为 InvalidSample。
    """
    pts: List[SignalSample] = []
    with open(path, "r", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        required = {"start_ms", "loss_rate", "buffer_s", "goodput_bps", "playback_bps"}
        if reader.fieldnames is None or not required.issubset(set(reader.fieldnames)):
            raise ValueError(f"trace csv 缺少必要列 {required}，实际列={reader.fieldnames}")

        for lineno, row in enumerate(reader, start=2):
            try:
                sample = SignalSample(
                    start_ms=int(float(row["start_ms"])),
                    loss_rate=float(row["loss_rate"]),
                    buffer_s=float(row["buffer_s"]),
                    goodput_bps=float(row["goodput_bps"]),
                    playback_bps=float(row["playback_bps"]),
                )
            except (TypeError, ValueError) as e:
                raise ValueError(f"trace csv 第 {lineno} 行格式错误：{e}") from e

            if sample.start_ms < 0:
                raise ValueError(f"start_ms 不能为负：{sample.start_ms}")
            pts.append(sample)

    if not pts:
        raise ValueError("trace csv 为空")

    pts = sorted(pts, key=lambda p: p.start_ms)

    # 合并重复 start_ms（后者覆盖前者）
    merged: List[SignalSample] = []
    for p in pts:
        if merged and p.start_ms == merged[-1].start_ms:
            merged[-1] = p
        else:
            merged.append(p)

    return merged
