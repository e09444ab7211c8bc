# fec_transport_lab/src/fec_lab/codec/base.py
from __future__ import annotations

from typing import Optional, Protocol, Sequence

from fec_lab.model.types import CandidateConfig


class FecCodec(Protocol):
    """
    外部 FEC 编解码器接口（XOR / Reed-Solomon / RaptorQ 实现不在本项目内）。

    encode：把 payload 切成 N 个 S 字节的源符号，再补 P 个修复符号，共 T = N + P 个 shard。
    decode：任意 N 个 shard（缺失位置为 None，最多缺 P 个）恢复原始 payload。
    """

    name: str

    def encode(self, payload: bytes, n: int, s: int, p: int) -> list[bytes]:
        ...

    def decode(self, shards: Sequence[Optional[bytes]], n: int, s: int, p: int) -> bytes:
        ...


def encode_block(codec: FecCodec, config: CandidateConfig, payload: bytes) -> list[bytes]:
    """
    按当前 active 配置编码一个块：payload 不足 N*S 时补零，超出则报错。
    返回的 shard 数必须等于 T。
    """
    capacity = config.n * config.s
    if len(payload) > capacity:
        raise ValueError(f"payload {len(payload)}B 超过块容量 N*S={capacity}B")
    padded = bytes(payload) + b"\x00" * (capacity - len(payload))

    shards = codec.encode(padded, config.n, config.s, config.repair_symbols)
    if len(shards) != config.total_symbols:
        raise ValueError(f"{codec.name}: 期望 {config.total_symbols} 个 shard，实际 {len(shards)}")
    return shards
