# src/capsuleflow/core/record/stream.py
"""
Capsule Stream: um lote de cápsulas reiniciável.

Este módulo define o `CapsuleStream`, o contêiner que carrega um lote
de cápsulas pelos stages do pipeline e permite que Steps operem tanto
por cápsula quanto sobre o lote inteiro.

Responsabilidades:
    - Preservar a ordem original das cápsulas do lote
    - Oferecer travessias preguiçosas e reiniciáveis (`each`, `rewind`)
    - Oferecer memoização de lote (`memoize`): uma computação por chave
      por lote, mesmo sob acesso concorrente de workers de bag
    - Manter o cache de lote, compartilhado por todas as cápsulas
    - Aposentar o lote (`retire`) após o writer

Padrão "uma consulta por lote":
    Um Step que precisa de dados externos para cada registro chama
    `capsule.batch.memoize("chave", compute)`; `compute(stream)` percorre
    o lote inteiro (via `each`), faz uma única consulta e devolve, por
    exemplo, um mapa id → valor. As demais cápsulas recebem o valor já
    calculado.

Extensão:
    Subclasses podem expor acessores nomeados construídos sobre
    `memoize` (ex.: `holdings_for(id)`), desde que não alterem a ordem
    das cápsulas nem a semântica de memoização.

Invariantes:
    - Toda travessia observa as mesmas cápsulas, na ordem original
    - `compute` é executado no máximo uma vez por chave por lote
    - Após `retire`, nenhuma memoização é aceita
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from capsuleflow.core.exceptions import EngineConfigurationError, MemoizationCycleError, StreamRetiredError

from .capsule import Capsule
from .store import NO_VALUE, SimpleStore


class _Flight:
    """Computação memoizada em andamento para uma chave."""

    __slots__ = ("owner", "done", "value", "error")

    def __init__(self, owner: int) -> None:
        self.owner = owner
        self.done = threading.Event()
        self.value: Any = NO_VALUE
        self.error: Optional[BaseException] = None


class CapsuleStream:
    """
    Lote ordenado de cápsulas com cache e memoização de lote.

    Decisões arquiteturais:
        - `each()` devolve um gerador novo e independente a cada chamada;
          travessias simultâneas (ex.: workers de bag) não interferem
        - O próprio stream é um iterador com cursor compartilhado,
          reiniciado por `rewind()`
        - Cápsulas com erro são omitidas das travessias por padrão
        - `memoize` é single-flight: chamadores concorrentes da mesma
          chave esperam a computação em andamento

    Limites explícitos:
        - Não executa Steps
        - Não busca dados: reiniciar não relê a fonte
    """

    def __init__(
        self,
        capsules: Iterable[Capsule] = (),
        *,
        batch_index: int = 0,
        cache_factory: Optional[Callable[[], SimpleStore]] = None,
    ) -> None:
        self._capsules: List[Capsule] = list(capsules)
        self.batch_index = batch_index
        self._batch_cache: SimpleStore = (cache_factory or SimpleStore)()
        self._lock = threading.RLock()
        self._inflight: Dict[Any, _Flight] = {}
        self._memoized: set = set()
        self._cursor = 0
        self._retired = False
        for capsule in self._capsules:
            capsule.batch = self

    # -----------------------------
    # Travessia
    # -----------------------------
    def each(self, *, include_errored: bool = False) -> Iterator[Capsule]:
        """Travessia preguiçosa e independente, do primeiro ao último."""
        for capsule in self.capsules:
            if include_errored or not capsule.errored:
                yield capsule

    def rewind(self) -> "CapsuleStream":
        with self._lock:
            self._cursor = 0
        return self

    def __iter__(self) -> "CapsuleStream":
        return self

    def __next__(self) -> Capsule:
        with self._lock:
            while self._cursor < len(self._capsules):
                capsule = self._capsules[self._cursor]
                self._cursor += 1
                if not capsule.errored:
                    return capsule
        raise StopIteration

    @property
    def capsules(self) -> Tuple[Capsule, ...]:
        with self._lock:
            return tuple(self._capsules)

    def errored(self) -> List[Capsule]:
        return [c for c in self.capsules if c.errored]

    def active_count(self) -> int:
        return sum(1 for c in self.capsules if not c.errored)

    def replace(self, old: Capsule, new: Capsule) -> None:
        """Substitui uma cápsula mantendo sua posição no lote."""
        if new is old:
            return
        with self._lock:
            for i, capsule in enumerate(self._capsules):
                if capsule is old:
                    self._capsules[i] = new
                    new.batch = self
                    return
        raise EngineConfigurationError(
            message="Cápsula não pertence a este lote",
            details={"batch_index": self.batch_index, "capsule_id": old.id},
            hint="Substitua apenas cápsulas obtidas do próprio lote",
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._capsules)

    # -----------------------------
    # Cache e memoização de lote
    # -----------------------------
    @property
    def batch_cache(self) -> SimpleStore:
        return self._batch_cache

    @property
    def retired(self) -> bool:
        return self._retired

    def is_memoized(self, key: Any) -> bool:
        with self._lock:
            return key in self._memoized and self._batch_cache.has(key)

    def memoize(self, key: Any, compute: Callable[["CapsuleStream"], Any]) -> Any:
        """
        Calcula `compute(self)` uma única vez por chave neste lote.

        Chamadas subsequentes (ou concorrentes) com a mesma chave devolvem
        o valor armazenado no cache de lote. Se `compute` falhar, nada é
        armazenado e todos os chamadores à espera recebem a mesma exceção;
        uma chamada posterior tenta novamente.

        Raises:
            StreamRetiredError: Se o lote já foi aposentado.
            MemoizationCycleError: Se `compute` pedir a própria chave.
        """
        me = threading.get_ident()
        with self._lock:
            if self._retired:
                raise StreamRetiredError(
                    message="Lote aposentado não aceita memoização",
                    details={"batch_index": self.batch_index, "key": repr(key)},
                )
            if key in self._memoized:
                if self._batch_cache.has(key):
                    return self._batch_cache.get(key)
                # valor removido do cache de lote por fora: recalcula
                self._memoized.discard(key)
            flight = self._inflight.get(key)
            owner = flight is None
            if owner:
                flight = _Flight(me)
                self._inflight[key] = flight
            elif flight.owner == me:
                raise MemoizationCycleError(
                    message="Memoização recursiva da mesma chave",
                    details={"batch_index": self.batch_index, "key": repr(key)},
                    hint="A função de cálculo não pode depender da própria chave",
                )

        if not owner:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.value

        try:
            value = compute(self)
        except BaseException as exc:
            with self._lock:
                flight.error = exc
                self._inflight.pop(key, None)
            flight.done.set()
            raise

        with self._lock:
            self._batch_cache.set(key, value)
            self._memoized.add(key)
            self._inflight.pop(key, None)
            flight.value = value
        flight.done.set()
        return value

    # -----------------------------
    # Ciclo de vida
    # -----------------------------
    def retire(self) -> None:
        """Invalida o cache de lote e libera as cápsulas."""
        with self._lock:
            if self._retired:
                return
            self._retired = True
            self._batch_cache.clear()
            self._memoized.clear()
            capsules, self._capsules = self._capsules, []
            self._cursor = 0
        for capsule in capsules:
            capsule.release()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(batch_index={self.batch_index}, "
            f"size={len(self)}, retired={self._retired})"
        )
