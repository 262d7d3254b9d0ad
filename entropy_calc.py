#!/usr/bin/env python3
"""
Zero-order entropy of an occurrence table, reported alongside each run.

Definitions
- entropy_bpc: H over the character distribution, in bits per character.
- max_bits_chars: log2 of the number of distinct characters.
- eff_vs_max_chars: entropy_bpc / max_bits_chars (1.0 for a uniform alphabet).
"""
from __future__ import annotations

import math
from typing import Dict, Iterable

from distribution import OccurrenceTable


def H0_of_hist(counts: Iterable[int]) -> float:
    """Zero-order entropy (bits/symbol) for integer counts."""
    counts = list(counts)
    n = sum(counts)
    if n == 0:
        return 0.0
    inv_n = 1.0 / n
    H = 0.0
    for c in counts:
        if c:
            p = c * inv_n
            H -= p * math.log2(p)
    return H


def entropy_report(table: OccurrenceTable) -> Dict[str, float]:
    unique_chars = len(table)
    H_bpc = H0_of_hist(c for _, c in table.items())
    max_bits_chars = math.log2(unique_chars) if unique_chars > 0 else 0.0
    return {
        "unique_chars": unique_chars,
        "n_chars": table.total,
        "entropy_bpc": H_bpc,
        "max_bits_chars": max_bits_chars,
        "eff_vs_max_chars": (H_bpc / max_bits_chars) if max_bits_chars > 0 else 0.0,
    }
