from __future__ import annotations

import argparse
import csv
import json
import platform
import sys
import time
from pathlib import Path
from typing import Optional

import numpy as np
import yaml

from codec_bridge import CodecBridge, wchar_width
from config import Config
from distribution import DiscreteSampler, OccurrenceTable, build_distribution, range_codepoints
from draw_source import BACKENDS, DrawSource, get_draw_source
from entropy_calc import entropy_report
from errors import ArgumentError, GenerationError
from runtime_tuning import apply_runtime
from streaming import read_occurrences, write_samples

MODES = ("alphabet", "range", "input")

MANIFEST_FIELDS = [
    "path",
    "mode",
    "source",
    "n_chars",
    "backend",
    "seed",
    "input_encoding",
    "output_encoding",
    "internal_encoding",
    "unique_chars",
    "entropy_bpc",
    "eff_vs_max_chars",
    "bytes_written",
    "elapsed_s",
]


def build_occurrences(mode: str, source, cfg: Config, width: int, verbose: bool = False) -> OccurrenceTable:
    g = cfg.generation
    table = OccurrenceTable()
    if mode == "input":
        read_occurrences(source, CodecBridge(g.input_encoding, width), table, g.block_size, verbose)
    elif mode == "alphabet":
        if not source:
            raise ArgumentError("alphabet must contain at least one character")
        table.add_uniform(CodecBridge(g.output_encoding, width).codepoints_of(source))
    elif mode == "range":
        table.add_uniform(range_codepoints(int(source), g.range_start, width))
    else:
        raise ArgumentError(f"unknown distribution mode: {mode!r} (expected one of {MODES})")
    return table


def generate(mode: str, source, output_length: int, output_path: str | Path, cfg: Config,
             draw_source: Optional[DrawSource] = None, verbose: bool = False) -> dict:
    """Run one full pass: tally the source, then sample `output_length` characters."""
    if output_length < 1:
        raise ArgumentError(f"output length must be at least 1 (got {output_length})")
    g = cfg.generation
    width = wchar_width()
    start_time = time.time()

    table = build_occurrences(mode, source, cfg, width, verbose)
    distribution = build_distribution(table)
    stats = entropy_report(table)
    if verbose:
        print(f"[dist] {stats['unique_chars']} distinct codepoint(s), total weight {distribution.total}, "
              f"H0≈{stats['entropy_bpc']:.4f} bits/char")

    if draw_source is None:
        draw_source = get_draw_source(g.backend, seed=g.seed, device=g.entropy_device)
    sampler = DiscreteSampler(distribution, draw_source)
    bridge_out = CodecBridge(g.output_encoding, width)
    bytes_written = write_samples(output_path, sampler, bridge_out, output_length, g.block_size, verbose)

    return {
        "path": str(output_path),
        "mode": mode,
        "source": str(source),
        "n_chars": output_length,
        "backend": draw_source.backend,
        "seed": "" if g.seed is None else g.seed,
        "input_encoding": g.input_encoding if mode == "input" else "",
        "output_encoding": bridge_out.encoding,
        "internal_encoding": bridge_out.internal,
        "unique_chars": stats["unique_chars"],
        "entropy_bpc": f"{stats['entropy_bpc']:.6f}",
        "eff_vs_max_chars": f"{stats['eff_vs_max_chars']:.6f}",
        "bytes_written": bytes_written,
        "elapsed_s": f"{time.time() - start_time:.3f}",
    }


def append_manifest(path: Path, row: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    write_header = not path.exists() or path.stat().st_size == 0
    with path.open("a", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=MANIFEST_FIELDS)
        if write_header:
            w.writeheader()
        w.writerow(row)


def write_meta(meta_path: Path, meta: dict) -> None:
    meta_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        old = json.loads(meta_path.read_text(encoding="utf-8")) if meta_path.exists() else {}
    except (OSError, json.JSONDecodeError):
        old = {}
    old.update(meta)
    meta_path.write_text(json.dumps(old, indent=2), encoding="utf-8")


def positive_int(s: str) -> int:
    try:
        v = int(s, 10)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{s}' is not a valid integer")
    if v < 1:
        raise argparse.ArgumentTypeError(f"'{s}' must be at least 1")
    return v


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="rsgen",
        description="Random string generator: write characters drawn from an alphabet, "
                    "a codepoint range or the character frequencies of a text file.")
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("-a", "--alphabet", type=str, help="sample uniformly from these characters")
    src.add_argument("-r", "--range", dest="range_size", type=positive_int,
                     help="sample uniformly from this many consecutive codepoints")
    src.add_argument("-i", "--input", type=str, help="sample by the character frequencies of this file")
    ap.add_argument("-n", "--length", type=positive_int, required=True, help="number of characters to write")
    ap.add_argument("-p", "--prng", choices=BACKENDS, default=None, help="uniform draw source")
    ap.add_argument("--input-encoding", default=None)
    ap.add_argument("--output-encoding", default=None)
    ap.add_argument("--seed", type=int, default=None, help="seed for mt19937/libc (default: wall-clock time)")
    ap.add_argument("--config", default=None, help="YAML config (default: conf/config.yaml if present)")
    ap.add_argument("-v", "--verbose", action="store_true")
    ap.add_argument("output", help="output file, overwritten")
    return ap


def main(argv=None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    try:
        cfg = Config.load_default(args.config)
        g = cfg.generation
        if args.prng is not None:
            g.backend = args.prng
        if args.input_encoding is not None:
            g.input_encoding = args.input_encoding
        if args.output_encoding is not None:
            g.output_encoding = args.output_encoding
        if args.seed is not None:
            g.seed = args.seed
        cfg.validate()
    except (OSError, ValueError, yaml.YAMLError) as e:
        ap.error(str(e))

    if args.alphabet is not None:
        mode, source = "alphabet", args.alphabet
    elif args.range_size is not None:
        mode, source = "range", args.range_size
    else:
        mode, source = "input", args.input

    apply_runtime(cfg.runtime, verbose=args.verbose)

    try:
        row = generate(mode, source, args.length, args.output, cfg, verbose=args.verbose)
    except ArgumentError as e:
        ap.error(str(e))
    except GenerationError as e:
        print(f"[error] {e}", file=sys.stderr)
        return 1

    if args.verbose:
        print(f"[write] {row['path']}  ({row['n_chars']} chars, {row['bytes_written']} bytes, "
              f"H0≈{float(row['entropy_bpc']):.4f} bits/char)")

    manifest_path = cfg.paths.manifest_path()
    if manifest_path is not None:
        append_manifest(manifest_path, row)
        write_meta(cfg.paths.meta_path(), {
            "timestamp": time.time(),
            "python_version": platform.python_version(),
            "numpy_version": np.__version__,
            "platform": platform.platform(),
            "wchar_width": wchar_width(),
            "last_run": row,
        })
        if args.verbose:
            print(f"[manifest] {manifest_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
