# src/capsuleflow/core/record/__init__.py
"""
Modelo de dados do capsuleflow.

- **store**          → `SimpleStore` e o sentinela `NO_VALUE`
- **output_record**  → `OutputRecord` (documento de saída) e `ForkedOutputRecord`
- **capsule**        → `Capsule` (unidade de trabalho) e `CapsuleFork`
- **stream**         → `CapsuleStream` (lote reiniciável com memoização)
"""

from .capsule import Capsule, CapsuleFork
from .output_record import ForkedOutputRecord, OutputRecord, merge_all
from .store import NO_VALUE, SimpleStore
from .stream import CapsuleStream

__all__ = [
    "Capsule",
    "CapsuleFork",
    "CapsuleStream",
    "ForkedOutputRecord",
    "NO_VALUE",
    "OutputRecord",
    "SimpleStore",
    "merge_all",
]
