# fec_transport_lab/src/fec_lab/logging/sinks.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class RunPaths:
    """
    一次回放的输出目录布局：
      meta.json      运行参数 + FecConfig
      metrics.jsonl  每个决策步一条记录（含 breakdown）
      metrics.csv    同上，去掉嵌套字段
      summary.json   ReplaySummary
    """
    out_dir: str

    def _file(self, name: str) -> str:
        return os.path.join(self.out_dir, name)

    @property
    def meta_path(self) -> str:
        return self._file("meta.json")

    @property
    def metrics_path(self) -> str:
        return self._file("metrics.jsonl")

    @property
    def csv_path(self) -> str:
        return self._file("metrics.csv")

    @property
    def summary_path(self) -> str:
        return self._file("summary.json")


def _unused_dir(base: str) -> str:
    if not os.path.exists(base):
        return base
    k = 1
    while os.path.exists(f"{base}_{k}"):
        k += 1
    return f"{base}_{k}"


def make_run_dir(root: str, run_name: str) -> RunPaths:
    """同名 run 已存在时追加 _1, _2 ...，不覆盖旧结果。"""
    out_dir = _unused_dir(os.path.join(root, run_name))
    os.makedirs(out_dir)
    return RunPaths(out_dir=out_dir)


class JsonlSink:
    """决策记录 -> jsonl，一行一步；key 排序便于 diff 两次回放。"""

    def __init__(self, metrics_path: str):
        self.metrics_path = metrics_path
        self.count = 0
        self._f = open(metrics_path, "w", encoding="utf-8")

    def write(self, record: Dict[str, Any]) -> None:
        self._f.write(json.dumps(record, ensure_ascii=False, sort_keys=True))
        self._f.write("\n")
        self.count += 1

    def close(self) -> None:
        if self._f.closed:
            return
        try:
            self._f.flush()
        finally:
            self._f.close()

    def __enter__(self) -> "JsonlSink":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def write_json(path: str, obj: Dict[str, Any]) -> None:
    """meta.json / summary.json。"""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)
