#!/usr/bin/env python3
"""
Byte buffers <-> fixed-width codepoint buffers.

The internal representation follows the platform wide character:
  width 1 -> ascii, width 2 -> utf-16-le (UCS-2LE), width 4 -> utf-32-le (UCS-4LE)
Never a BOM, always little-endian. Codepoint buffers are numpy arrays.

Leftover bytes (a trailing incomplete multi-byte sequence) are handed back to
the caller, which prepends them to the next chunk. The bridge keeps only the
converter's mode flags between calls (e.g. the byte order a UTF-16 BOM chose).
"""
from __future__ import annotations

import codecs
import ctypes
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from errors import CodecError

INTERNAL_ENCODINGS = {1: "ascii", 2: "utf-16-le", 4: "utf-32-le"}
_CODEPOINT_DTYPES = {1: "u1", 2: "<u2", 4: "<u4"}

# worst-case bytes per character; anything unlisted gets the multibyte default
_MAX_CHAR_WIDTH = {
    "ascii": 1,
    "iso8859-1": 1,
    "utf-8": 4,
    "utf-8-sig": 4,
    "utf-16": 4,
    "utf-16-le": 4,
    "utf-16-be": 4,
    "utf-32": 4,
    "utf-32-le": 4,
    "utf-32-be": 4,
}
_MULTIBYTE_DEFAULT_WIDTH = 8
# room for a BOM the first encode call may emit
BOM_HEADROOM = 4

# encodings whose byte stream depends on earlier output (BOMs, shift states)
_STATEFUL = {"utf-8-sig", "utf-16", "utf-32"}


class ConversionStatus(Enum):
    OK = "ok"
    PARTIAL = "partial"              # destination too small, resume from `consumed`
    NONREVERSIBLE = "nonreversible"  # converted, but not round-trip exact


@dataclass
class DecodeResult:
    codepoints: np.ndarray
    consumed: int       # bytes of (leftover + raw) converted
    leftover: bytes     # (leftover + raw)[consumed:], to prepend to the next chunk
    status: ConversionStatus


@dataclass
class EncodeResult:
    data: bytes
    consumed: int       # codepoints converted
    status: ConversionStatus


def wchar_width() -> int:
    return ctypes.sizeof(ctypes.c_wchar)


def internal_encoding(width: Optional[int] = None) -> str:
    width = wchar_width() if width is None else width
    if width not in INTERNAL_ENCODINGS:
        raise CodecError(f"Unsupported wide character width: {width}")
    return INTERNAL_ENCODINGS[width]


def normalize_encoding(name: str) -> str:
    try:
        info = codecs.lookup(name)
    except LookupError as e:
        raise CodecError(f"Unknown encoding: {name!r}") from e
    # bytes-to-bytes and str-to-str codecs (hex, base64, rot13) are not text encodings
    if not info._is_text_encoding:
        raise CodecError(f"Not a text encoding: {name!r}")
    return info.name


def max_char_width(encoding: str) -> int:
    """Worst-case number of bytes one character may take in `encoding`."""
    name = normalize_encoding(encoding)
    if name in _MAX_CHAR_WIDTH:
        return _MAX_CHAR_WIDTH[name]
    if name.startswith("iso8859-"):
        return 1
    return _MULTIBYTE_DEFAULT_WIDTH


class CodecBridge:
    def __init__(self, encoding: str, width: Optional[int] = None):
        self.encoding = normalize_encoding(encoding)
        self.width = wchar_width() if width is None else width
        self.internal = internal_encoding(self.width)
        self.dtype = np.dtype(_CODEPOINT_DTYPES[self.width])
        # lone surrogates stay representable in the 2- and 4-byte forms
        self._internal_errors = "strict" if self.width == 1 else "surrogatepass"
        self._stateful = self.encoding in _STATEFUL or self.encoding.startswith("iso2022")
        self.reset()

    def reset(self) -> None:
        self._decoder = codecs.getincrementaldecoder(self.encoding)(errors="strict")
        self._encoder = codecs.getincrementalencoder(self.encoding)(errors="strict")

    # ---------- decode direction ----------

    def decode(self, raw: bytes, leftover: bytes = b"",
               max_codepoints: Optional[int] = None) -> DecodeResult:
        if max_codepoints is not None and max_codepoints < 1:
            raise ValueError("max_codepoints must be >= 1")
        span = bytes(leftover) + bytes(raw)
        state = self._decoder.getstate()

        text = self._decode_span(span)
        pending = self._take_pending()
        consumed = len(span) - len(pending)
        status = ConversionStatus.OK

        if max_codepoints is not None and self._unit_count(text) > max_codepoints:
            text, consumed = self._decode_prefix(span, state, max_codepoints)
            status = ConversionStatus.PARTIAL
        elif not self._stateful and not self._reversible(text, span[:consumed]):
            print(f"[warn] {self.encoding}: converted {consumed} byte(s) in a nonreversible way",
                  file=sys.stderr)
            status = ConversionStatus.NONREVERSIBLE

        return DecodeResult(self._to_codepoints(text), consumed, span[consumed:], status)

    def finish_decode(self) -> np.ndarray:
        """Flush whatever the converter still holds once the input is exhausted."""
        return self._to_codepoints(self._decode_span(b"", final=True))

    def _decode_span(self, span: bytes, final: bool = False) -> str:
        try:
            return self._decoder.decode(span, final)
        except UnicodeDecodeError as e:
            raise CodecError(
                f"{self.encoding}: malformed input at byte {e.start}: {e.reason}") from e
        except UnicodeError as e:
            raise CodecError(f"{self.encoding}: {e}") from e

    def _reversible(self, text: str, raw: bytes) -> bool:
        try:
            return text.encode(self.encoding) == raw
        except UnicodeError:
            return False

    def _take_pending(self) -> bytes:
        pending, flag = self._decoder.getstate()
        self._decoder.setstate((b"", flag))
        return pending

    def _decode_prefix(self, span: bytes, state, limit: int):
        # longest byte prefix whose codepoints fit in `limit`
        lo, hi, best = 0, len(span), 0
        while lo <= hi:
            mid = (lo + hi) // 2
            self._decoder.setstate(state)
            if self._unit_count(self._decode_span(span[:mid])) <= limit:
                best, lo = mid, mid + 1
            else:
                hi = mid - 1
        self._decoder.setstate(state)
        text = self._decode_span(span[:best])
        pending = self._take_pending()
        return text, best - len(pending)

    # ---------- encode direction ----------

    def encode(self, codepoints, max_bytes: Optional[int] = None) -> EncodeResult:
        units = np.asarray(codepoints, dtype=self.dtype)
        text = self._from_codepoints(units)
        state = self._encoder.getstate()
        data = self._encode_text(text)
        if max_bytes is None or len(data) <= max_bytes:
            return EncodeResult(data, len(units), ConversionStatus.OK)

        lo, hi, best = 0, len(text), 0
        while lo <= hi:
            mid = (lo + hi) // 2
            self._encoder.setstate(state)
            if len(self._encode_text(text[:mid])) <= max_bytes:
                best, lo = mid, mid + 1
            else:
                hi = mid - 1
        self._encoder.setstate(state)
        data = self._encode_text(text[:best])
        return EncodeResult(data, self._unit_count(text[:best]), ConversionStatus.PARTIAL)

    def finish_encode(self) -> bytes:
        return self._encode_text("", final=True)

    def _encode_text(self, text: str, final: bool = False) -> bytes:
        try:
            return self._encoder.encode(text, final)
        except UnicodeEncodeError as e:
            raise CodecError(
                f"{self.encoding}: cannot encode {e.object[e.start:e.end]!r}: {e.reason}") from e
        except UnicodeError as e:
            raise CodecError(f"{self.encoding}: {e}") from e

    # ---------- internal representation ----------

    def _to_codepoints(self, text: str) -> np.ndarray:
        try:
            raw = text.encode(self.internal, self._internal_errors)
        except UnicodeEncodeError as e:
            raise CodecError(
                f"{e.object[e.start:e.end]!r} is not representable in {self.internal}") from e
        return np.frombuffer(raw, dtype=self.dtype)

    def _from_codepoints(self, units: np.ndarray) -> str:
        try:
            return units.tobytes().decode(self.internal, self._internal_errors)
        except UnicodeDecodeError as e:
            raise CodecError(f"invalid {self.internal} codepoint buffer: {e.reason}") from e

    def _unit_count(self, text: str) -> int:
        if self.width == 2:
            return len(text.encode(self.internal, self._internal_errors)) // 2
        return len(text)

    def codepoints_of(self, text: str) -> np.ndarray:
        """Internal codepoints of an already-decoded string (alphabet mode)."""
        return self._to_codepoints(text)
