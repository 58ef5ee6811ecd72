"""Binary delta encoding: copy ranges from a base plus literal inserts."""

from __future__ import annotations

import struct
from dataclasses import dataclass

MIN_MATCH = 4
MAX_INSERT = 127
_HEADER = struct.Struct("<II")


class DeltaError(Exception):
    """Raised when a delta cannot be applied to a base."""


@dataclass
class DeltaOperation:
    """Either a copy of ``size`` bytes from ``offset`` in the base, or an insert of ``data``."""

    is_copy: bool
    offset: int = 0
    size: int = 0
    data: bytes = b""


def _match_length(base: bytes, pos: int, target: bytes, start: int) -> int:
    limit = min(len(base) - pos, len(target) - start)
    length = 0
    while length < limit and base[pos + length] == target[start + length]:
        length += 1
    return length


def _longest_match(base: bytes, target: bytes, start: int) -> tuple[int, int]:
    """Earliest offset in ``base`` with the longest match of ``target[start:]``."""
    best_len, best_offset = 0, 0
    first = target[start : start + 1]
    pos = base.find(first)
    while pos != -1:
        length = _match_length(base, pos, target, start)
        if length > best_len:
            best_len, best_offset = length, pos
        pos = base.find(first, pos + 1)
    return best_len, best_offset


def compute_delta_operations(base: bytes, target: bytes) -> list[DeltaOperation]:
    """Greedy list of copy and insert operations that turn ``base`` into ``target``."""
    base, target = bytes(base), bytes(target)
    operations: list[DeltaOperation] = []
    index = 0

    while index < len(target):
        best_len, best_offset = 0, 0
        if len(target) - index >= MIN_MATCH:
            best_len, best_offset = _longest_match(base, target, index)

        if best_len >= MIN_MATCH:
            operations.append(DeltaOperation(is_copy=True, offset=best_offset, size=best_len))
            index += best_len
            continue

        start = index
        while index < len(target):
            if index + MIN_MATCH <= len(target) and target[index : index + MIN_MATCH] in base:
                break
            index += 1
            if index - start >= MAX_INSERT:
                break
        operations.append(DeltaOperation(is_copy=False, data=target[start:index]))

    return operations


def _encode_copy(op: DeltaOperation) -> bytes:
    cmd = 0x80
    fields = bytearray()
    value = op.offset
    for bit in range(4):
        if value > 0 or bit == 0:
            fields.append(value & 0xFF)
            value >>= 8
            cmd |= 1 << bit
    value = op.size
    for bit in range(3):
        if value > 0 or bit == 0:
            fields.append(value & 0xFF)
            value >>= 8
            cmd |= 1 << (bit + 4)
    return bytes([cmd]) + bytes(fields)


def _encode_insert(data: bytes) -> bytes:
    out = bytearray()
    for start in range(0, len(data), MAX_INSERT):
        chunk = data[start : start + MAX_INSERT]
        out.append(len(chunk))
        out += chunk
    return bytes(out)


def compute_delta(base: bytes, target: bytes) -> bytes:
    """Encode the delta: base and target sizes (little-endian u32) then instructions."""
    out = bytearray(_HEADER.pack(len(base), len(target)))
    for op in compute_delta_operations(base, target):
        out += _encode_copy(op) if op.is_copy else _encode_insert(op.data)
    return bytes(out)


def apply_delta(base: bytes, delta: bytes) -> bytes:
    """Rebuild the target from ``base`` and an encoded ``delta``."""
    base, delta = bytes(base), bytes(delta)
    if len(delta) < _HEADER.size:
        raise DeltaError("delta too short")
    source_size, target_size = _HEADER.unpack_from(delta)
    if source_size != len(base):
        raise DeltaError(f"base size mismatch: expected {source_size}, got {len(base)}")

    result = bytearray()
    i = _HEADER.size

    def read_byte() -> int:
        nonlocal i
        if i >= len(delta):
            raise DeltaError("truncated copy instruction")
        value = delta[i]
        i += 1
        return value

    while i < len(delta):
        cmd = delta[i]
        i += 1
        if cmd == 0:
            raise DeltaError("unexpected delta command 0")
        if cmd & 0x80:
            offset = 0
            size = 0
            for bit in range(4):
                if cmd & (1 << bit):
                    offset |= read_byte() << (bit * 8)
            for bit in range(3):
                if cmd & (1 << (bit + 4)):
                    size |= read_byte() << (bit * 8)
            if size == 0:
                size = 0x10000
            if offset + size > len(base):
                raise DeltaError(
                    f"invalid copy operation: offset={offset}, size={size}, base_len={len(base)}"
                )
            result += base[offset : offset + size]
        else:
            size = cmd
            if i + size > len(delta):
                raise DeltaError(
                    f"invalid insert operation: size={size}, remaining={len(delta) - i}"
                )
            result += delta[i : i + size]
            i += size

    if len(result) != target_size:
        raise DeltaError(f"result size mismatch: expected {target_size}, got {len(result)}")
    return bytes(result)