#!/usr/bin/env python3
"""
Block-wise read -> decode -> tally, and sample -> encode -> write.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List

from codec_bridge import BOM_HEADROOM, CodecBridge, ConversionStatus, max_char_width
from distribution import DiscreteSampler, OccurrenceTable
from errors import CodecError, FileIOError

BLOCK_SIZE = 8 * 1024 * 1024  # 2^23 a.k.a. 8 Mi codepoints per block
OUTPUT_MODE = 0o666


def read_occurrences(path: str | Path, bridge: CodecBridge, table: OccurrenceTable,
                     block_size: int = BLOCK_SIZE, verbose: bool = False) -> OccurrenceTable:
    """Tally every codepoint of `path` (in the bridge's encoding) into `table`."""
    buf = bytearray(block_size)
    view = memoryview(buf)
    carry = 0
    blocks = 0
    try:
        f = open(path, "rb")
    except OSError as e:
        raise FileIOError(f"{path}: open: {e}") from e

    with f:
        while True:
            if carry >= len(buf):
                # a single sequence outgrew the block; widen it
                view.release()
                buf.extend(bytes(len(buf)))
                view = memoryview(buf)
            try:
                n = f.readinto(view[carry:])
            except OSError as e:
                raise FileIOError(f"{path}: read: {e}") from e
            if not n:
                break

            span = bytes(view[:carry + n])
            leftover = b""
            while True:
                res = bridge.decode(span, leftover, max_codepoints=block_size)
                table.accumulate(res.codepoints)
                if res.status is not ConversionStatus.PARTIAL:
                    break
                if res.consumed == 0:
                    raise CodecError(f"{path}: decode made no progress")
                span, leftover = res.leftover, b""

            carry = len(res.leftover)
            buf[:carry] = res.leftover
            blocks += 1
            if verbose:
                print(f"[read] {path}: block {blocks}, {table.total} codepoint(s) so far")

    if carry:
        raise CodecError(f"{path}: malformed trailing sequence ({carry} unconverted byte(s))")
    table.accumulate(bridge.finish_decode())
    return table


def block_plan(output_length: int, block_size: int = BLOCK_SIZE) -> List[int]:
    full_blocks, remainder = divmod(output_length, block_size)
    plan = [block_size] * full_blocks
    if remainder:
        plan.append(remainder)
    return plan


def write_samples(path: str | Path, sampler: DiscreteSampler, bridge: CodecBridge,
                  output_length: int, block_size: int = BLOCK_SIZE, verbose: bool = False) -> int:
    """Write `output_length` sampled characters to `path`; return bytes written."""
    width = max_char_width(bridge.encoding)
    written = 0
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, OUTPUT_MODE)
        f = os.fdopen(fd, "wb")
    except OSError as e:
        raise FileIOError(f"{path}: open: {e}") from e

    try:
        with f:
            for i, n in enumerate(block_plan(output_length, block_size), 1):
                codepoints = sampler.sample_block(n)
                while len(codepoints):
                    res = bridge.encode(codepoints, max_bytes=n * width + BOM_HEADROOM)
                    if res.consumed == 0:
                        raise CodecError(f"{bridge.encoding}: a single character exceeds the encode buffer")
                    written += _write(f, path, res.data)
                    codepoints = codepoints[res.consumed:]
                if verbose:
                    print(f"[write] {path}: block {i} ({n} codepoints), {written} bytes so far")
            written += _write(f, path, bridge.finish_encode())
    except OSError as e:
        raise FileIOError(f"{path}: close: {e}") from e
    return written


def _write(f, path, data: bytes) -> int:
    try:
        f.write(data)
    except OSError as e:
        raise FileIOError(f"{path}: write: {e}") from e
    return len(data)
