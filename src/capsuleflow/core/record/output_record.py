# src/capsuleflow/core/record/output_record.py
"""
Output Record: documento acumulado por cápsula.

Este módulo define o `OutputRecord`, o documento que os Steps preenchem
campo a campo ao longo do pipeline, e o `ForkedOutputRecord`, a visão
sobreposta usada quando membros de um bag executam em paralelo sobre a
mesma cápsula.

Modelo de dados:
    - mapeamento nome do campo → lista ordenada de valores
    - todo valor é armazenado como lista, mesmo quando logicamente singular

Operações:
    - set(field, value)     → substitui a lista do campo (sem achatar)
    - append(field, value)  → concatena (escalar vira lista de 1; lista é
                              achatada um nível; lista vazia é no-op)
    - delete(field)         → remove o campo por completo
    - get(field)            → cópia da lista; campo ausente → []
    - merge(other)          → novo registro com self ++ other por campo

Invariantes:
    - `get` nunca levanta erro para campo ausente
    - `merge` nunca descarta dados e não muta os operandos
    - `merge` é associativo e, em geral, não comutativo
    - Nomes de campo vazios ou não-string levantam `InvalidField`
    - Mutações em um mesmo registro são serializadas por lock

Limites explícitos:
    - Não valida semântica de campos (schema é responsabilidade do writer)
    - Não persiste dados
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Set

from capsuleflow.core.exceptions import InvalidField


def _check_field(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidField(
            message="Nome de campo inválido",
            details={"field": repr(name)},
            hint="Use um nome de campo string não vazio",
        )
    return name


def normalize_values(value: Any) -> List[Any]:
    """Escalar → [escalar]; list/tuple → achatada um nível."""
    if isinstance(value, (list, tuple)):
        out: List[Any] = []
        for item in value:
            if isinstance(item, (list, tuple)):
                out.extend(item)
            else:
                out.append(item)
        return out
    return [value]


class OutputRecord:
    """
    Documento de saída com operações de campo upsert/append/delete/merge.

    Decisões arquiteturais:
        - `set` com lista/tupla trata o argumento como a sequência do campo
          (`set("a", [1, 2])` → `[1, 2]`); com escalar, `[valor]`
        - `set` não achata: `set("a", [[1, 2], [3]])` → `[[1, 2], [3]]`
        - `set` com sequência vazia remove o campo (não existem campos vazios)
        - `get` devolve cópia: o chamador não consegue mutar o registro
          por fora da API
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._fields: Dict[str, List[Any]] = {}
        self._lock = threading.RLock()
        for name, value in (initial or {}).items():
            self.set(name, value)

    # -----------------------------
    # Operações de campo
    # -----------------------------
    def set(self, field: str, value: Any) -> None:
        _check_field(field)
        # sem achatamento: itens aninhados são preservados
        values = list(value) if isinstance(value, (list, tuple)) else [value]
        with self._lock:
            if values:
                self._fields[field] = values
            else:
                self._fields.pop(field, None)

    def append(self, field: str, value: Any) -> None:
        _check_field(field)
        values = normalize_values(value)
        if not values:
            return
        with self._lock:
            self._fields.setdefault(field, []).extend(values)

    def delete(self, field: str) -> None:
        _check_field(field)
        with self._lock:
            self._fields.pop(field, None)

    def get(self, field: str) -> List[Any]:
        _check_field(field)
        with self._lock:
            return list(self._fields.get(field, ()))

    def first(self, field: str, default: Any = None) -> Any:
        values = self.get(field)
        return values[0] if values else default

    def _put(self, field: str, values: List[Any]) -> None:
        # lista já normalizada; nenhum achatamento adicional
        with self._lock:
            if values:
                self._fields[field] = list(values)
            else:
                self._fields.pop(field, None)

    # -----------------------------
    # Merge
    # -----------------------------
    def merge(self, other: "OutputRecord") -> "OutputRecord":
        """Novo registro: para cada campo de qualquer lado, `self ++ other`."""
        mine = self.to_dict()
        theirs = other.to_dict()
        merged = OutputRecord()
        for name in list(mine) + [n for n in theirs if n not in mine]:
            merged._put(name, mine.get(name, []) + theirs.get(name, []))
        return merged

    def absorb(self, other: "OutputRecord") -> None:
        """Versão in-place de `merge`: este registro passa a ser `self ++ other`."""
        with self._lock:
            self._fields = self.merge(other)._fields

    # -----------------------------
    # Inspeção
    # -----------------------------
    def fields(self) -> List[str]:
        with self._lock:
            return list(self._fields)

    def to_dict(self) -> Dict[str, List[Any]]:
        with self._lock:
            return {k: list(v) for k, v in self._fields.items()}

    def copy(self) -> "OutputRecord":
        clone = OutputRecord()
        for name, values in self.to_dict().items():
            clone._put(name, values)
        return clone

    def clear(self) -> None:
        with self._lock:
            self._fields.clear()

    def __contains__(self, field: object) -> bool:
        with self._lock:
            return field in self._fields

    def __len__(self) -> int:
        with self._lock:
            return len(self._fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, OutputRecord):
            return self.to_dict() == other.to_dict()
        if isinstance(other, dict):
            return self.to_dict() == other
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"OutputRecord({self.to_dict()!r})"


class ForkedOutputRecord:
    """
    Visão sobreposta de um OutputRecord para execução paralela de bag.

    Leituras caem no snapshot base (congelado no início do bag) exceto
    para campos que o fork substituiu ou removeu. Appends ficam em um
    delta próprio. Ao final do bag, `apply_to` reconcilia o delta na
    cápsula original:
        - campos substituídos (`set`/`delete`) → substituição
        - campos apenas acrescidos → `OutputRecord.merge` (append)
    """

    def __init__(self, base: Mapping[str, List[Any]]) -> None:
        self._base: Dict[str, List[Any]] = {k: list(v) for k, v in base.items()}
        self._own = OutputRecord()
        self._replaced: Set[str] = set()
        self._lock = threading.RLock()

    def set(self, field: str, value: Any) -> None:
        with self._lock:
            self._own.set(field, value)
            self._replaced.add(field)

    def append(self, field: str, value: Any) -> None:
        with self._lock:
            self._own.append(field, value)

    def delete(self, field: str) -> None:
        with self._lock:
            self._own.delete(field)
            self._replaced.add(field)

    def get(self, field: str) -> List[Any]:
        _check_field(field)
        with self._lock:
            if field in self._replaced:
                return self._own.get(field)
            return list(self._base.get(field, ())) + self._own.get(field)

    def first(self, field: str, default: Any = None) -> Any:
        values = self.get(field)
        return values[0] if values else default

    def snapshot(self) -> OutputRecord:
        view = OutputRecord()
        for name, values in self.to_dict().items():
            view._put(name, values)
        return view

    def merge(self, other: OutputRecord) -> OutputRecord:
        return self.snapshot().merge(other)

    def absorb(self, other: OutputRecord) -> None:
        with self._lock:
            for name, values in other.to_dict().items():
                self._own._put(name, self._own.get(name) + values)

    def fields(self) -> List[str]:
        with self._lock:
            names = [n for n in self._base if n not in self._replaced]
            names += [n for n in self._own.fields() if n not in names]
            return names

    def to_dict(self) -> Dict[str, List[Any]]:
        return {name: self.get(name) for name in self.fields()}

    def touched_fields(self) -> Set[str]:
        with self._lock:
            return set(self._replaced) | set(self._own.fields())

    def apply_to(self, target: OutputRecord) -> None:
        with self._lock:
            appended = OutputRecord()
            for name in self._own.fields():
                if name not in self._replaced:
                    appended._put(name, self._own.get(name))
            for name in sorted(self._replaced):
                target._put(name, self._own.get(name))
        target.absorb(appended)

    def clear(self) -> None:
        with self._lock:
            self._own.clear()
            self._replaced.clear()

    def __contains__(self, field: object) -> bool:
        return field in self.fields()

    def __len__(self) -> int:
        return len(self.fields())

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields())

    def __repr__(self) -> str:
        return f"ForkedOutputRecord({self.to_dict()!r})"


def merge_all(records: Iterable[OutputRecord]) -> OutputRecord:
    """Dobra uma sequência de registros com `merge`, na ordem dada."""
    acc = OutputRecord()
    for record in records:
        acc = acc.merge(record)
    return acc
