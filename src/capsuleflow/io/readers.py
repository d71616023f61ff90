# src/capsuleflow/io/readers.py
"""
Readers concretos.

- `IterableReader`: qualquer iterável de registros (listas, geradores)
- `DataFrameReader`: linhas de um `pandas.DataFrame` como dicts
- `CsvReader`: CSV lido em blocos de `batch_size` via `pandas.read_csv`

Valores ausentes (NaN) de DataFrames viram `None` para que o registro de
entrada seja serializável e comparável de forma previsível.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

import pandas as pd

from capsuleflow.core.exceptions import ReaderError
from capsuleflow.core.record.stream import CapsuleStream

from .base import BaseReader


def _frame_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    clean = df.astype(object).where(pd.notna(df), None)
    return clean.to_dict(orient="records")


def field_id(name: str):
    """`id_fn` que lê uma chave do registro de entrada."""

    def read(record: Any) -> Any:
        return record.get(name) if hasattr(record, "get") else None

    return read


class IterableReader(BaseReader):
    """Lê registros de um iterável, preguiçosamente."""

    def __init__(self, records: Iterable[Any], settings=None, **kwargs: Any) -> None:
        super().__init__(settings, **kwargs)
        self._records = records

    def records(self) -> Iterable[Any]:
        return self._records


class DataFrameReader(BaseReader):
    """Lê linhas de um DataFrame em fatias de `batch_size`."""

    def __init__(self, df: pd.DataFrame, settings=None, *, id_column: Optional[str] = None, **kwargs: Any) -> None:
        if id_column is not None and "id_fn" not in kwargs and "capsule_factory" not in kwargs:
            kwargs["id_fn"] = field_id(id_column)
        super().__init__(settings, **kwargs)
        if id_column is not None and id_column not in df.columns:
            raise ReaderError(
                message=f"Coluna de id '{id_column}' ausente no DataFrame",
                details={"id_column": id_column, "columns": [str(c) for c in df.columns]},
            )
        self.df = df

    def batches(self) -> Iterator[CapsuleStream]:
        size = self.settings.batch_size
        for index, start in enumerate(range(0, len(self.df), size)):
            yield self._stream(_frame_records(self.df.iloc[start:start + size]), index)


class CsvReader(BaseReader):
    """
    Lê um CSV em blocos de `batch_size` linhas.

    Decisões arquiteturais:
        - `pandas.read_csv(chunksize=...)` mantém o arquivo fora da memória
        - `read_csv_kwargs` é repassado sem interpretação (sep, dtype, ...)
    """

    def __init__(
        self,
        path: Union[str, Path],
        settings=None,
        *,
        id_column: Optional[str] = None,
        read_csv_kwargs: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        if id_column is not None and "id_fn" not in kwargs and "capsule_factory" not in kwargs:
            kwargs["id_fn"] = field_id(id_column)
        super().__init__(settings, **kwargs)
        self.path = Path(path)
        self.read_csv_kwargs = dict(read_csv_kwargs or {})

    def batches(self) -> Iterator[CapsuleStream]:
        if not self.path.exists():
            raise ReaderError(
                message=f"Arquivo CSV não encontrado: {self.path}",
                details={"path": str(self.path)},
                hint="Verifique o caminho informado ao CsvReader",
            )
        with pd.read_csv(self.path, chunksize=self.settings.batch_size, **self.read_csv_kwargs) as chunks:
            index = 0
            for chunk in chunks:
                if chunk.empty:
                    continue
                yield self._stream(_frame_records(chunk), index)
                index += 1
