# src/capsuleflow/io/__init__.py
"""
Fronteira de I/O do capsuleflow: contratos Reader/Writer e implementações
baseadas em iteráveis, pandas e JSON Lines.
"""

from .base import (
    BaseReader,
    BaseWriter,
    Reader,
    WriteReport,
    Writer,
    batch_capsules,
    make_capsule_factory,
)
from .readers import CsvReader, DataFrameReader, IterableReader, field_id
from .writers import DataFrameWriter, JsonlWriter, MemoryWriter

__all__ = [
    "BaseReader",
    "BaseWriter",
    "CsvReader",
    "DataFrameReader",
    "DataFrameWriter",
    "IterableReader",
    "JsonlWriter",
    "MemoryWriter",
    "Reader",
    "WriteReport",
    "Writer",
    "batch_capsules",
    "field_id",
    "make_capsule_factory",
]
