# fec_transport_lab/src/fec_lab/codec/cost.py
from __future__ import annotations

import csv
from dataclasses import dataclass
from typing import Dict, List

from fec_lab.model.types import CandidateConfig


@dataclass(frozen=True)
class CodecCost:
    """
    编解码器的资源代价模型：每字节编码/解码耗时（秒/字节），按 N*S 的 payload 线性估算。
    """
    algo: str
    enc_s_per_byte: float
    dec_s_per_byte: float

    def __post_init__(self) -> None:
        if self.enc_s_per_byte < 0 or self.dec_s_per_byte < 0:
            raise ValueError(f"{self.algo}: 每字节耗时不能为负")

    def encode_s(self, candidate: CandidateConfig) -> float:
        return self.enc_s_per_byte * candidate.n * candidate.s

    def decode_s(self, candidate: CandidateConfig) -> float:
        return self.dec_s_per_byte * candidate.n * candidate.s

    def total_s(self, candidate: CandidateConfig) -> float:
        return self.encode_s(candidate) + self.decode_s(candidate)


# 单核 benchmark 的量级（ns/B），只用于没有实测表时的粗估
DEFAULT_CODEC_COSTS: Dict[str, CodecCost] = {
    "XOR": CodecCost("XOR", enc_s_per_byte=0.5e-9, dec_s_per_byte=0.5e-9),
    "ReedSolomon": CodecCost("ReedSolomon", enc_s_per_byte=2.0e-9, dec_s_per_byte=3.0e-9),
    "RaptorQ": CodecCost("RaptorQ", enc_s_per_byte=25.0e-9, dec_s_per_byte=40.0e-9),
}


def load_benchmark_csv(path: str) -> Dict[str, CodecCost]:
    """
    读取 (N, S, R) 网格 benchmark 结果表，按算法对每字节耗时取平均。

    CSV columns (required): Algorithm, EncPerByte(s), DecPerByte(s)
    其余列（N, S, R%, Parity, PayloadBytes, MeanEncSec, MeanDecSec）忽略。
    编码失败的行（Algorithm 为空）跳过。
    """
    enc: Dict[str, List[float]] = {}
    dec: Dict[str, List[float]] = {}
    with open(path, "r", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        required = {"Algorithm", "EncPerByte(s)", "DecPerByte(s)"}
        if reader.fieldnames is None or not required.issubset(set(reader.fieldnames)):
            raise ValueError(f"benchmark csv 缺少必要列 {required}，实际列={reader.fieldnames}")

        for row in reader:
            algo = (row["Algorithm"] or "").strip()
            if not algo:
                continue
            enc.setdefault(algo, []).append(float(row["EncPerByte(s)"]))
            dec.setdefault(algo, []).append(float(row["DecPerByte(s)"]))

    if not enc:
        raise ValueError("benchmark csv 为空")

    return {
        algo: CodecCost(
            algo=algo,
            enc_s_per_byte=sum(enc[algo]) / len(enc[algo]),
            dec_s_per_byte=sum(dec[algo]) / len(dec[algo]),
        )
        for algo in sorted(enc)
    }
