# src/capsuleflow/core/record/capsule.py
"""
Cápsula: a unidade de trabalho do pipeline.

Uma cápsula reúne:
    - o registro de entrada (opaco, nunca mutado)
    - o Output Record que os Steps preenchem
    - um cache privado (`SimpleStore`)
    - um identificador derivado, estável durante toda a vida da cápsula

A cápsula expõe um conjunto fixo e nomeado de operações. Não há
delegação dinâmica para o registro de entrada: acessos específicos de
formato são modelados por adapters que embrulham a cápsula (ver
`capsuleflow.adapters`).

Ciclo de vida:
    - criada quando um reader produz um registro bruto
    - mutada apenas por Steps durante a travessia do pipeline
    - liberada (`release`) quando o lote é aposentado após o writer

Invariantes:
    - `input_record` é somente leitura
    - `id`, uma vez calculado, é memoizado e nunca muda
    - uma cápsula marcada com erro permanece marcada
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from .output_record import ForkedOutputRecord, OutputRecord
from .store import NO_VALUE, SimpleStore

if TYPE_CHECKING:  # pragma: no cover
    from .stream import CapsuleStream

OutputRecordFactory = Callable[[Any], OutputRecord]
CacheFactory = Callable[[], SimpleStore]
IdFunction = Callable[[Any], Any]

_UNSET = object()


def _default_output_record(_input_record: Any) -> OutputRecord:
    return OutputRecord()


class Capsule:
    """
    Par registro de entrada + documento de saída + cache privado.

    Decisões arquiteturais:
        - Fábricas de output record e cache são plugáveis (default: vazios)
        - O `id` vem de `id_fn(input_record)` ou de `compute_id()`,
          sobrescrito por variantes específicas de implantação
        - `batch` aponta para o `CapsuleStream` dono; é assim que um Step
          (contrato cápsula → cápsula) alcança a memoização de lote
    """

    def __init__(
        self,
        input_record: Any,
        *,
        output_record_factory: Optional[OutputRecordFactory] = None,
        cache_factory: Optional[CacheFactory] = None,
        id_fn: Optional[IdFunction] = None,
    ) -> None:
        self._input_record = input_record
        self._output_record: Union[OutputRecord, ForkedOutputRecord] = (
            output_record_factory or _default_output_record
        )(input_record)
        self._cache: SimpleStore = (cache_factory or SimpleStore)()
        self._id_fn = id_fn
        self._id: Any = _UNSET
        self._lock = threading.RLock()
        self._error: Optional[Dict[str, Any]] = None
        self.batch: Optional["CapsuleStream"] = None

    # -----------------------------
    # Identidade
    # -----------------------------
    @property
    def input_record(self) -> Any:
        return self._input_record

    @property
    def id(self) -> Any:
        with self._lock:
            if self._id is _UNSET:
                if self._id_fn is not None:
                    self._id = self._id_fn(self._input_record)
                else:
                    self._id = self.compute_id()
            return self._id

    def compute_id(self) -> Any:
        """Hook para variantes de cápsula; a base não sabe derivar id."""
        return None

    # -----------------------------
    # Output Record
    # -----------------------------
    @property
    def output_record(self) -> Union[OutputRecord, ForkedOutputRecord]:
        return self._output_record

    def get(self, field: str) -> List[Any]:
        return self._output_record.get(field)

    def first(self, field: str, default: Any = None) -> Any:
        return self._output_record.first(field, default)

    def set(self, field: str, value: Any) -> None:
        self._output_record.set(field, value)

    def append(self, field: str, value: Any) -> None:
        self._output_record.append(field, value)

    def delete(self, field: str) -> None:
        self._output_record.delete(field)

    def merge(self, other: OutputRecord) -> None:
        """Incorpora `other` ao output desta cápsula (append por campo)."""
        self._output_record.absorb(other)

    def to_document(self) -> Dict[str, List[Any]]:
        return self._output_record.to_dict()

    # -----------------------------
    # Cache privado
    # -----------------------------
    @property
    def cache(self) -> SimpleStore:
        return self._cache

    def cache_get(self, key: Any, default: Any = NO_VALUE) -> Any:
        return self._cache.get(key, default)

    def cache_set(self, key: Any, value: Any) -> None:
        self._cache.set(key, value)

    def cache_append(self, key: Any, value: Any) -> List[Any]:
        return self._cache.append(key, value)

    def cache_drop(self, key: Any) -> Any:
        return self._cache.drop(key)

    # -----------------------------
    # Estado de erro
    # -----------------------------
    @property
    def errored(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> Optional[Dict[str, Any]]:
        return None if self._error is None else dict(self._error)

    def mark_errored(self, error: Dict[str, Any]) -> None:
        with self._lock:
            # a primeira falha é a que vale
            if self._error is None:
                self._error = dict(error)

    # -----------------------------
    # Paralelismo e ciclo de vida
    # -----------------------------
    def fork(self) -> "CapsuleFork":
        return CapsuleFork(self)

    def release(self) -> None:
        self._cache.clear()
        self._output_record.clear()
        self.batch = None

    def __repr__(self) -> str:
        state = "errored" if self.errored else "ok"
        return f"{self.__class__.__name__}(id={self.id!r}, {state}, fields={self._output_record.fields()!r})"


class CapsuleFork(Capsule):
    """
    Cópia de trabalho de uma cápsula para um worker de bag.

    Compartilha com a cápsula de origem: registro de entrada, id, cache,
    estado de erro e lote. O output é um `ForkedOutputRecord` sobre o
    snapshot do output de origem, reconciliado por `apply`.
    """

    def __init__(self, origin: Capsule) -> None:
        self._origin = origin
        self._input_record = origin.input_record
        self._output_record = ForkedOutputRecord(origin.output_record.to_dict())
        self._cache = origin.cache
        self._id_fn = None
        self._id = _UNSET
        self._lock = threading.RLock()
        self._error = None
        self.batch = origin.batch

    @property
    def origin(self) -> Capsule:
        return self._origin

    @property
    def id(self) -> Any:
        return self._origin.id

    @property
    def errored(self) -> bool:
        return self._origin.errored

    @property
    def error(self) -> Optional[Dict[str, Any]]:
        return self._origin.error

    def mark_errored(self, error: Dict[str, Any]) -> None:
        self._origin.mark_errored(error)

    def fork(self) -> "CapsuleFork":
        return CapsuleFork(self._origin)

    def touched_fields(self) -> set:
        return self._output_record.touched_fields()

    def apply(self) -> None:
        """Reconcilia o delta deste fork no output da cápsula de origem."""
        origin_record = self._origin.output_record
        if isinstance(origin_record, ForkedOutputRecord):
            raise TypeError("cannot apply a fork onto another fork's record")
        self._output_record.apply_to(origin_record)

    def release(self) -> None:
        self._output_record.clear()
        self.batch = None
