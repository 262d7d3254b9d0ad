from __future__ import annotations


class GenerationError(Exception):
    """Base class for every hard failure of a generation run."""


class ArgumentError(GenerationError):
    pass


class DrawSourceError(GenerationError):
    pass


class CodecError(GenerationError):
    pass


class FileIOError(GenerationError):
    pass


class SamplerError(GenerationError):
    pass
