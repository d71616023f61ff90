# src/capsuleflow/io/writers.py
"""
Writers concretos.

Todos herdam de `BaseWriter`: recebem apenas `(id, documento)` das
cápsulas ativas; cápsulas com erro ficam em `skipped`.

- `MemoryWriter`: acumula documentos em memória (testes, notebooks)
- `JsonlWriter`: um documento JSON por linha, em append por lote
- `DataFrameWriter`: acumula linhas e entrega um `pandas.DataFrame`

Documentos são cópias: o lote é aposentado logo após o writer, e o
Output Record da cápsula é liberado.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd

from capsuleflow.core.exceptions import WriterError
from capsuleflow.core.record.stream import CapsuleStream

from .base import BaseWriter


class MemoryWriter(BaseWriter):
    def __init__(self, settings=None, *, id_key: Optional[str] = None) -> None:
        super().__init__(settings)
        self.id_key = id_key
        self.documents: List[Dict[str, Any]] = []
        self.ids: List[Any] = []

    def write_documents(self, documents: List[Tuple[Any, dict]], stream: CapsuleStream) -> None:
        for capsule_id, doc in documents:
            if self.id_key is not None:
                doc = {self.id_key: capsule_id, **doc}
            self.ids.append(capsule_id)
            self.documents.append(doc)


class JsonlWriter(BaseWriter):
    """
    JSON Lines, um documento por linha.

    O arquivo é truncado na primeira escrita do writer (a menos que
    `append=True`) e aberto em append nos lotes seguintes.
    """

    def __init__(
        self,
        path: Union[str, Path],
        settings=None,
        *,
        id_key: Optional[str] = "_id",
        append: bool = False,
    ) -> None:
        super().__init__(settings)
        self.path = Path(path)
        self.id_key = id_key
        self._truncate = not append

    def write_documents(self, documents: List[Tuple[Any, dict]], stream: CapsuleStream) -> None:
        mode = "w" if self._truncate else "a"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open(mode, encoding="utf-8") as f:
                for capsule_id, doc in documents:
                    if self.id_key is not None:
                        doc = {self.id_key: capsule_id, **doc}
                    f.write(json.dumps(doc, ensure_ascii=False, default=str))
                    f.write("\n")
        except OSError as exc:
            raise WriterError(
                message=f"Falha ao escrever JSON Lines em {self.path}",
                details={
                    "path": str(self.path),
                    "batch_index": stream.batch_index,
                    "exc_type": exc.__class__.__name__,
                    "exc_message": str(exc),
                },
                hint="Verifique permissões e espaço em disco do destino",
            ) from exc
        self._truncate = False


class DataFrameWriter(BaseWriter):
    """
    Acumula documentos como linhas de um DataFrame.

    Com `unwrap_single=True`, campos com exatamente um valor viram
    escalares; os demais permanecem listas.
    """

    def __init__(
        self,
        settings=None,
        *,
        id_column: Optional[str] = "capsule_id",
        unwrap_single: bool = True,
    ) -> None:
        super().__init__(settings)
        self.id_column = id_column
        self.unwrap_single = unwrap_single
        self._rows: List[Dict[str, Any]] = []

    def write_documents(self, documents: List[Tuple[Any, dict]], stream: CapsuleStream) -> None:
        for capsule_id, doc in documents:
            row: Dict[str, Any] = {}
            if self.id_column is not None:
                row[self.id_column] = capsule_id
            for name, values in doc.items():
                row[name] = values[0] if self.unwrap_single and len(values) == 1 else list(values)
            self._rows.append(row)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self._rows)
