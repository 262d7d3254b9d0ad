#!/usr/bin/env python3
"""
Occurrence tables, cumulative distributions and inverse-CDF sampling.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple

import numpy as np

from draw_source import UINT32_MAX, DrawSource
from errors import ArgumentError, SamplerError

SURROGATES = range(0xD800, 0xE000)
# exclusive codepoint limit per internal width
_WIDTH_LIMITS = {1: 0x80, 2: 0x10000, 4: 0x110000}


class OccurrenceTable:
    """Codepoint -> occurrence count, plus the number of codepoints seen."""

    def __init__(self):
        self.counts: Counter = Counter()
        self.total = 0

    def accumulate(self, codepoints) -> None:
        cps = np.asarray(codepoints)
        if cps.size == 0:
            return
        values, counts = np.unique(cps, return_counts=True)
        for cp, c in zip(values.tolist(), counts.tolist()):
            self.counts[cp] += c
        self.total += int(cps.size)

    def add_uniform(self, codepoints: Iterable[int]) -> None:
        """Give each distinct codepoint a count of exactly 1."""
        for cp in codepoints:
            cp = int(cp)
            if cp not in self.counts:
                self.counts[cp] = 1
                self.total += 1

    def __len__(self) -> int:
        return len(self.counts)

    def __getitem__(self, cp: int) -> int:
        return self.counts[cp]

    def items(self) -> Iterator[Tuple[int, int]]:
        return iter(sorted(self.counts.items()))


@dataclass
class CumulativeDistribution:
    keys: np.ndarray        # strictly increasing running sums
    codepoints: np.ndarray  # codepoint for each key

    @property
    def total(self) -> int:
        return int(self.keys[-1]) if len(self.keys) else 0

    def __len__(self) -> int:
        return len(self.keys)

    def items(self) -> Iterator[Tuple[int, int]]:
        return zip(self.keys.tolist(), self.codepoints.tolist())

    def lookup(self, value: int) -> int:
        """Codepoint of the first entry whose key is >= value."""
        idx = int(np.searchsorted(self.keys, value, side="left"))
        if idx >= len(self.keys):
            raise SamplerError(f"lower bound of {value} is past the end of the distribution (max key {self.total})")
        return int(self.codepoints[idx])


def build_distribution(table: OccurrenceTable) -> CumulativeDistribution:
    if not len(table):
        raise SamplerError("Cannot build a distribution from an empty occurrence table.")
    pairs = list(table.items())
    cps = np.array([cp for cp, _ in pairs], dtype=np.uint32)
    keys = np.cumsum(np.array([c for _, c in pairs], dtype=np.uint64))
    if int(keys[-1]) != table.total:
        raise SamplerError(f"Cumulative count {int(keys[-1])} does not match the {table.total} codepoints tallied.")
    return CumulativeDistribution(keys=keys, codepoints=cps)


def range_codepoints(size: int, start: int, width: int) -> range:
    if size < 1:
        raise ArgumentError(f"range size must be at least 1 (got {size})")
    if start < 0:
        raise ArgumentError(f"range start must be non-negative (got {start})")
    cps = range(start, start + size)
    limit = _WIDTH_LIMITS[width]
    if cps[-1] >= limit:
        raise ArgumentError(
            f"range [{start:#x}, {cps[-1]:#x}] exceeds the {width}-byte internal representation (limit {limit:#x})")
    if cps.start < SURROGATES.stop and SURROGATES.start < cps.stop:
        raise ArgumentError(f"range [{start:#x}, {cps[-1]:#x}] overlaps the surrogate block")
    return cps


class DiscreteSampler:
    """Inverse-transform sampling over a cumulative distribution."""

    def __init__(self, distribution: CumulativeDistribution, draw_source: DrawSource):
        self.distribution = distribution
        self.draw_source = draw_source
        self.total_weight = distribution.total
        # a single-entry table scales by zero, every draw maps to key 1
        self.scale_factor = float(self.total_weight - 1) / float(UINT32_MAX)

    def scale(self, r: int) -> int:
        # rounding and enforcing strictly positive values
        return int(float(r) * self.scale_factor + 1.5)

    def sample(self) -> int:
        return self.distribution.lookup(self.scale(self.draw_source.next()))

    def sample_block(self, n: int) -> np.ndarray:
        r = self.draw_source.next_block(n)
        scaled = (r.astype(np.float64) * self.scale_factor + 1.5).astype(np.uint64)
        idx = np.searchsorted(self.distribution.keys, scaled, side="left")
        if idx.size and int(idx.max()) >= len(self.distribution):
            raise SamplerError(
                f"lower bound of {int(scaled.max())} is past the end of the distribution "
                f"(max key {self.total_weight})")
        return self.distribution.codepoints[idx]
