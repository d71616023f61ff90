# src/capsuleflow/adapters/__init__.py
"""
Adapters de registro: extração por spec sobre registros mapping e cache
de extratores com escopo de processo.
"""

from .extract import (
    ExtractorCache,
    MappingCapsuleAdapter,
    compile_path,
    drop_empty,
    extract_step,
    first_only,
    strip_values,
    unique_values,
)

__all__ = [
    "ExtractorCache",
    "MappingCapsuleAdapter",
    "compile_path",
    "drop_empty",
    "extract_step",
    "first_only",
    "strip_values",
    "unique_values",
]
