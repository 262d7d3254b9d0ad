#!/usr/bin/env python3
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Any, Dict
import yaml

from codec_bridge import normalize_encoding
from draw_source import BACKENDS, DEFAULT_ENTROPY_DEVICE
from errors import CodecError
from streaming import BLOCK_SIZE

_VALID_PRIORITIES = {"low", "normal", "high", "realtime"}
DEFAULT_CONFIG_PATH = Path("conf/config.yaml")


@dataclass
class GenerationCfg:
    backend: str = "mt19937"          # mt19937|libc|urandom
    block_size: int = BLOCK_SIZE      # codepoints per block
    input_encoding: str = "utf-8"
    output_encoding: str = "utf-8"
    range_start: int = 0x21           # first codepoint of the synthetic range ('!')
    entropy_device: str = DEFAULT_ENTROPY_DEVICE
    seed: Optional[int] = None        # None -> seeded from wall-clock time


@dataclass
class Paths:
    # manifest.csv + rsgen.meta.json go here; None disables the manifest
    manifest_dir: Optional[str] = None

    def manifest_path(self) -> Optional[Path]:
        if self.manifest_dir is None:
            return None
        return Path(self.manifest_dir) / "manifest.csv"

    def meta_path(self) -> Optional[Path]:
        if self.manifest_dir is None:
            return None
        return Path(self.manifest_dir) / "rsgen.meta.json"


@dataclass
class RuntimeCfg:
    cpu_affinity: Optional[int] = None
    priority: str = "normal"


@dataclass
class Config:
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    paths: Paths = field(default_factory=Paths)
    runtime: RuntimeCfg = field(default_factory=RuntimeCfg)

    # ---- loading & validation ----
    @staticmethod
    def load(path: str | Path) -> "Config":
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("Top-level YAML must be a mapping/object.")

        cfg = Config(
            generation=Config._parse_generation(data.get("generation") or {}),
            paths=Config._parse_paths(data.get("paths") or {}),
            runtime=Config._parse_runtime(data.get("runtime") or {}),
        )
        cfg.validate()
        return cfg

    @staticmethod
    def load_default(path: Optional[str | Path] = None) -> "Config":
        """Explicit path, else conf/config.yaml if present, else built-in defaults."""
        if path is not None:
            return Config.load(path)
        if DEFAULT_CONFIG_PATH.is_file():
            return Config.load(DEFAULT_CONFIG_PATH)
        cfg = Config()
        cfg.validate()
        return cfg

    @staticmethod
    def _parse_generation(d: Dict[str, Any]) -> GenerationCfg:
        seed = d.get("seed")
        return GenerationCfg(
            backend=str(d.get("backend", "mt19937")).lower(),
            block_size=int(d.get("block_size", BLOCK_SIZE)),
            input_encoding=str(d.get("input_encoding", "utf-8")),
            output_encoding=str(d.get("output_encoding", "utf-8")),
            range_start=int(d.get("range_start", 0x21)),
            entropy_device=str(d.get("entropy_device", DEFAULT_ENTROPY_DEVICE)),
            seed=(int(seed) if seed is not None else None),
        )

    @staticmethod
    def _parse_paths(d: Dict[str, Any]) -> Paths:
        manifest_dir = d.get("manifest_dir")
        return Paths(manifest_dir=(str(manifest_dir) if manifest_dir is not None else None))

    @staticmethod
    def _parse_runtime(d: Dict[str, Any]) -> RuntimeCfg:
        return RuntimeCfg(
            cpu_affinity=(int(d["cpu_affinity"]) if d.get("cpu_affinity") is not None else None),
            priority=str(d.get("priority", "normal")).lower(),
        )

    def validate(self) -> None:
        g = self.generation
        if g.backend not in BACKENDS:
            raise ValueError(f"generation.backend must be one of {BACKENDS}.")
        if g.block_size < 1:
            raise ValueError("generation.block_size must be >= 1.")
        if g.range_start < 0:
            raise ValueError("generation.range_start must be >= 0.")
        for key in ("input_encoding", "output_encoding"):
            try:
                normalize_encoding(getattr(g, key))
            except CodecError as e:
                raise ValueError(f"generation.{key}: {e}.") from e
        if self.runtime.priority not in _VALID_PRIORITIES:
            raise ValueError(f"runtime.priority must be one of {_VALID_PRIORITIES}.")
