# src/capsuleflow/core/record/store.py
"""
Store chave/valor mínimo.

`SimpleStore` é o cache efêmero usado com contrato idêntico em dois
escopos:
    - cache privado de uma cápsula
    - cache de lote (batch cache) de um `CapsuleStream`

Contrato:
    - set(key, value)
    - get(key)      → valor ou o sentinela `NO_VALUE` (nunca erro)
    - append(key, v) → cria lista de um elemento ou coerce valor existente em lista
    - drop(key)     → remove e retorna o valor (ou `NO_VALUE`)

Invariantes:
    - Não persiste nada além da vida do dono
    - Sem garantias de ordem entre chaves
    - Operações são seguras sob acesso concorrente (workers de bag)
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterator, List


class _NoValue:
    """Sentinela de ausência; falsy e com repr estável."""

    _instance = None

    def __new__(cls) -> "_NoValue":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_VALUE"


NO_VALUE = _NoValue()


class SimpleStore:
    """O mais simples dos stores: get, set, append, drop."""

    def __init__(self) -> None:
        self._raw: Dict[Any, Any] = {}
        self._lock = threading.RLock()

    def set(self, key: Any, value: Any) -> None:
        with self._lock:
            self._raw[key] = value

    def get(self, key: Any, default: Any = NO_VALUE) -> Any:
        with self._lock:
            return self._raw.get(key, default)

    def has(self, key: Any) -> bool:
        with self._lock:
            return key in self._raw

    def append(self, key: Any, value: Any) -> List[Any]:
        with self._lock:
            current = self._raw.get(key, NO_VALUE)
            if current is NO_VALUE:
                seq: List[Any] = []
            elif isinstance(current, list):
                seq = current
            elif isinstance(current, tuple):
                seq = list(current)
            else:
                seq = [current]
            seq.append(value)
            self._raw[key] = seq
            return seq

    def drop(self, key: Any) -> Any:
        with self._lock:
            return self._raw.pop(key, NO_VALUE)

    delete = drop

    def keys(self) -> List[Any]:
        with self._lock:
            return list(self._raw)

    def clear(self) -> None:
        with self._lock:
            self._raw.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._raw)

    def __contains__(self, key: Any) -> bool:
        return self.has(key)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.keys())

    def __repr__(self) -> str:
        return f"SimpleStore(keys={self.keys()!r})"
