# src/capsuleflow/io/base.py
"""
Contratos de fronteira: Reader e Writer.

Readers e writers são colaboradores externos do pipeline. O core só os
conhece por estes contratos estreitos:

- **Reader**: `batches()` produz uma sequência preguiçosa (finita ou não)
  de `CapsuleStream`, cada um com no máximo `batch_size` cápsulas. O fim
  da entrada é sinalizado pelo fim da iteração. Falhas surgem como
  exceções (o Pipeline as converte em `ReaderError`).
- **Writer**: `write(stream)` consome um lote concluído. Cápsulas
  marcadas com erro não são persistidas; são reportadas em `skipped`.
  Falhas surgem como exceções (convertidas em `WriterError`).

Este módulo também oferece as bases `BaseReader` / `BaseWriter`, que
resolvem o lote a partir de um iterável de registros e a separação entre
cápsulas ativas e com erro.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import islice
from typing import (
    Any,
    Callable,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
    Tuple,
    Type,
    runtime_checkable,
)

from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.exceptions import EngineConfigurationError
from capsuleflow.core.record.capsule import Capsule, IdFunction, OutputRecordFactory
from capsuleflow.core.record.store import SimpleStore
from capsuleflow.core.record.stream import CapsuleStream

CapsuleFactory = Callable[[Any], Capsule]
StreamFactory = Callable[..., CapsuleStream]


@runtime_checkable
class Reader(Protocol):
    def batches(self) -> Iterator[CapsuleStream]:
        ...


@runtime_checkable
class Writer(Protocol):
    def write(self, stream: CapsuleStream) -> Optional["WriteReport"]:
        ...


@dataclass(frozen=True)
class WriteReport:
    """Resumo de um lote consumido pelo writer."""
    batch_index: int
    written: int
    skipped: List[Any] = field(default_factory=list)


def make_capsule_factory(
    *,
    capsule_class: Type[Capsule] = Capsule,
    id_fn: Optional[IdFunction] = None,
    output_record_factory: Optional[OutputRecordFactory] = None,
    cache_factory: Optional[Callable[[], SimpleStore]] = None,
) -> CapsuleFactory:
    """Fábrica `registro -> Capsule` com as fábricas internas fixadas."""

    def build(record: Any) -> Capsule:
        return capsule_class(
            record,
            output_record_factory=output_record_factory,
            cache_factory=cache_factory,
            id_fn=id_fn,
        )

    return build


def batch_capsules(
    records: Iterable[Any],
    *,
    batch_size: int,
    capsule_factory: Optional[CapsuleFactory] = None,
    stream_factory: StreamFactory = CapsuleStream,
) -> Iterator[CapsuleStream]:
    """
    Agrupa registros brutos em lotes de cápsulas, preguiçosamente.

    Cada lote recebe um `batch_index` sequencial a partir de 0. Nenhum
    lote vazio é produzido.
    """
    if batch_size <= 0:
        raise EngineConfigurationError(
            message="batch_size deve ser positivo",
            details={"batch_size": batch_size},
            hint="Ajuste `pipeline.batch_size` para um inteiro maior que zero",
        )
    make_capsule = capsule_factory or make_capsule_factory()
    iterator = iter(records)
    index = 0
    while True:
        chunk = list(islice(iterator, batch_size))
        if not chunk:
            return
        yield stream_factory([make_capsule(r) for r in chunk], batch_index=index)
        index += 1


class BaseReader:
    """
    Base de readers: transforma `records()` em lotes.

    Subclasses implementam `records()` ou sobrescrevem `batches()` quando a
    fonte já entrega dados em blocos (ex.: `CsvReader`).
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        *,
        id_fn: Optional[IdFunction] = None,
        capsule_factory: Optional[CapsuleFactory] = None,
        stream_factory: StreamFactory = CapsuleStream,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.make_capsule = capsule_factory or make_capsule_factory(id_fn=id_fn)
        self.stream_factory = stream_factory

    def records(self) -> Iterable[Any]:
        raise NotImplementedError

    def batches(self) -> Iterator[CapsuleStream]:
        return batch_capsules(
            self.records(),
            batch_size=self.settings.batch_size,
            capsule_factory=self.make_capsule,
            stream_factory=self.stream_factory,
        )

    def _stream(self, records: Iterable[Any], batch_index: int) -> CapsuleStream:
        return self.stream_factory([self.make_capsule(r) for r in records], batch_index=batch_index)


class BaseWriter:
    """
    Base de writers: separa cápsulas ativas das com erro e delega a
    persistência de `(id, documento)` para `write_documents`.
    """

    def __init__(self, settings: Optional[PipelineSettings] = None) -> None:
        self.settings = settings or PipelineSettings()
        self.reports: List[WriteReport] = []

    def write_documents(self, documents: List[Tuple[Any, dict]], stream: CapsuleStream) -> None:
        raise NotImplementedError

    def write(self, stream: CapsuleStream) -> WriteReport:
        documents = [(c.id, c.to_document()) for c in stream.each()]
        skipped = [c.id for c in stream.errored()]
        self.write_documents(documents, stream)
        report = WriteReport(batch_index=stream.batch_index, written=len(documents), skipped=skipped)
        self.reports.append(report)
        return report

    @property
    def skipped(self) -> List[Any]:
        return [cid for r in self.reports for cid in r.skipped]
