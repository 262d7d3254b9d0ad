#!/usr/bin/env python3
"""
Uniform 32-bit draws behind one interface.

Backends:
  - mt19937 : numpy Generator(MT19937), seeded once from wall-clock time
  - libc    : the process-global generator of the `random` module
  - urandom : raw reads from the OS entropy device

One instance per process (get_draw_source); the sampler receives it explicitly.
"""
from __future__ import annotations

import atexit
import random
import sys
import time
from typing import Optional

import numpy as np

from errors import DrawSourceError

UINT32_MAX = 0xFFFFFFFF
BACKENDS = ("mt19937", "libc", "urandom")
DEFAULT_ENTROPY_DEVICE = "/dev/urandom"

_UINT32 = np.dtype("=u4")


class DrawSource:
    def __init__(self, backend: str = "mt19937",
                 seed: Optional[int] = None,
                 device: str = DEFAULT_ENTROPY_DEVICE):
        backend = str(backend).lower()
        if backend not in BACKENDS:
            raise DrawSourceError(f"Unknown draw source backend: {backend!r} (expected one of {BACKENDS})")
        self.backend = backend
        self.device = device
        self._gen = None
        self._fh = None

        seed = int(time.time()) if seed is None else int(seed)
        if backend == "mt19937":
            self._gen = np.random.Generator(np.random.MT19937(seed))
        elif backend == "libc":
            random.seed(seed)
        else:
            try:
                self._fh = open(device, "rb", buffering=0)
            except OSError as e:
                raise DrawSourceError(f"{device}: open: {e}") from e

    # copies would share the device handle and the global generator
    def __copy__(self):
        raise TypeError("DrawSource cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("DrawSource cannot be copied")

    def __enter__(self) -> "DrawSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def next(self) -> int:
        """Return one uniformly distributed value in [0, 2**32 - 1]."""
        if self._gen is not None:
            return int(self._gen.integers(0, UINT32_MAX, dtype=np.uint32, endpoint=True))
        if self.backend == "libc":
            return _libc_draw()
        return int(np.frombuffer(self._read_device(_UINT32.itemsize), dtype=_UINT32)[0])

    def next_block(self, n: int) -> np.ndarray:
        """`n` successive draws as a uint32 array."""
        if n <= 0:
            return np.empty(0, dtype=np.uint32)
        if self._gen is not None:
            return self._gen.integers(0, UINT32_MAX, size=n, dtype=np.uint32, endpoint=True)
        if self.backend == "libc":
            return np.fromiter((_libc_draw() for _ in range(n)), dtype=np.uint32, count=n)
        raw = self._read_device(n * _UINT32.itemsize)
        return np.frombuffer(raw, dtype=_UINT32).astype(np.uint32)

    def _read_device(self, size: int) -> bytes:
        if self._fh is None:
            raise DrawSourceError(f"{self.device}: read on a closed entropy device")
        try:
            data = self._fh.read(size)
        except OSError as e:
            raise DrawSourceError(f"{self.device}: read: {e}") from e
        if not data:
            raise DrawSourceError(f"{self.device}: read: unexpected end of file")
        if len(data) < size:
            raise DrawSourceError(f"{self.device}: read: short read ({len(data)} of {size} bytes)")
        return data

    def close(self) -> None:
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            fh.close()
        except OSError as e:
            print(f"[warn] {self.device}: close: {e}", file=sys.stderr)


def _libc_draw() -> int:
    # the generator yields 31 bits; a parity draw supplies the top bit
    if random.getrandbits(31) % 2 == 0:
        return random.getrandbits(31)
    return random.getrandbits(31) + (1 << 31)


_instance: Optional[DrawSource] = None


def get_draw_source(backend: str = "mt19937",
                    seed: Optional[int] = None,
                    device: str = DEFAULT_ENTROPY_DEVICE) -> DrawSource:
    """
    Process-wide draw source. The first call constructs it; later calls
    return the same instance whatever arguments they pass.
    """
    global _instance
    if _instance is None:
        _instance = DrawSource(backend, seed=seed, device=device)
        atexit.register(_instance.close)
    return _instance
