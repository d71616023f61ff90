# src/capsuleflow/adapters/extract.py
"""
Extração declarativa sobre registros de entrada do tipo mapping.

Uma *spec* de extração é um caminho pontuado sobre o registro:

    "title"            → record["title"]
    "title.main"       → record["title"]["main"]
    "authors.*.name"   → [a["name"] for a in record["authors"]]
    "authors.0.name"   → record["authors"][0]["name"]

O resultado é sempre uma lista (mesma forma do Output Record): chaves
ausentes produzem `[]`, `None` é descartado e folhas que são listas são
achatadas em um nível.

Decisões arquiteturais:
    - Specs são compiladas uma única vez por processo (`ExtractorCache`)
      e compartilhadas entre lotes e workers
    - Após `freeze()`, o cache é somente leitura: uma spec desconhecida é
      erro de configuração, não uma compilação tardia
    - Adapters embrulham a cápsula; a cápsula não delega para o registro

Limites explícitos:
    - Não interpreta formatos binários ou específicos de domínio
    - Não escreve no registro de entrada
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from capsuleflow.core.exceptions import EngineConfigurationError
from capsuleflow.core.pipeline.step import FunctionStep
from capsuleflow.core.record.capsule import Capsule

Extractor = Callable[[Any], List[Any]]
PostProcess = Callable[[List[Any]], List[Any]]

WILDCARD = "*"
_MISSING = object()


def _descend(node: Any, segment: str) -> Any:
    if isinstance(node, Mapping):
        return node.get(segment, _MISSING)
    if isinstance(node, (list, tuple)) and segment.lstrip("-").isdigit():
        index = int(segment)
        if -len(node) <= index < len(node):
            return node[index]
    return _MISSING


def _flatten(values: Iterable[Any]) -> List[Any]:
    out: List[Any] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            out.extend(v for v in value if v is not None)
        elif value is not None:
            out.append(value)
    return out


def compile_path(spec: str) -> Extractor:
    """Compila uma spec pontuada em um extrator `record -> list`."""
    if not isinstance(spec, str) or not spec.strip():
        raise EngineConfigurationError(
            message="Spec de extração vazia ou inválida",
            details={"spec": repr(spec)},
        )
    segments = spec.strip().split(".")
    if any(not s for s in segments):
        raise EngineConfigurationError(
            message=f"Spec de extração malformada: {spec!r}",
            details={"spec": spec},
            hint="Use segmentos separados por '.', ex.: 'authors.*.name'",
        )

    def extract(record: Any) -> List[Any]:
        nodes = [record]
        for segment in segments:
            following: List[Any] = []
            for node in nodes:
                if segment == WILDCARD:
                    if isinstance(node, Mapping):
                        following.extend(node.values())
                    elif isinstance(node, (list, tuple)):
                        following.extend(node)
                    continue
                value = _descend(node, segment)
                if value is not _MISSING:
                    following.append(value)
            nodes = following
        return _flatten(nodes)

    extract.__name__ = f"extract[{spec}]"
    return extract


class ExtractorCache:
    """
    Cache de extratores compilados, com escopo de processo.

    Invariantes:
        - Cada spec é compilada no máximo uma vez
        - Após `freeze()`, nenhuma spec nova é aceita
        - Seguro para leitura concorrente por workers
    """

    def __init__(self, compiler: Callable[[str], Extractor] = compile_path) -> None:
        self._compiler = compiler
        self._compiled: Dict[str, Extractor] = {}
        self._lock = threading.Lock()
        self._frozen = False

    def get(self, spec: str) -> Extractor:
        with self._lock:
            extractor = self._compiled.get(spec)
            if extractor is not None:
                return extractor
            if self._frozen:
                raise EngineConfigurationError(
                    message=f"Spec de extração não pré-compilada: {spec!r}",
                    details={"spec": spec, "known": sorted(self._compiled)},
                    hint="Declare a spec com preload() antes de freeze()",
                )
            extractor = self._compiler(spec)
            self._compiled[spec] = extractor
            return extractor

    __getitem__ = get

    def preload(self, *specs: str) -> "ExtractorCache":
        for spec in specs:
            self.get(spec)
        return self

    def freeze(self) -> "ExtractorCache":
        with self._lock:
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, spec: object) -> bool:
        with self._lock:
            return spec in self._compiled

    def __len__(self) -> int:
        with self._lock:
            return len(self._compiled)


# -----------------------------
# Pós-processamento
# -----------------------------
def strip_values(values: List[Any]) -> List[Any]:
    return [v.strip() if isinstance(v, str) else v for v in values]


def drop_empty(values: List[Any]) -> List[Any]:
    return [v for v in values if v != ""]


def unique_values(values: List[Any]) -> List[Any]:
    seen: List[Any] = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen


def first_only(values: List[Any]) -> List[Any]:
    return values[:1]


class MappingCapsuleAdapter:
    """
    Acesso por spec ao registro de entrada de uma cápsula.

    O adapter não guarda estado próprio: toda escrita vai para o Output
    Record da cápsula embrulhada.
    """

    def __init__(self, capsule: Capsule, extractors: Optional[ExtractorCache] = None) -> None:
        self.capsule = capsule
        self.extractors = extractors if extractors is not None else ExtractorCache()

    @property
    def input_record(self) -> Any:
        return self.capsule.input_record

    def extract(self, spec: str, post_process: Sequence[PostProcess] = ()) -> List[Any]:
        values = self.extractors.get(spec)(self.capsule.input_record)
        for fn in post_process:
            values = list(fn(values))
        return values

    def extract_into(self, field: str, spec: str, post_process: Sequence[PostProcess] = ()) -> List[Any]:
        """Extrai e acrescenta ao campo `field`; retorna os valores extraídos."""
        values = self.extract(spec, post_process)
        self.capsule.append(field, values)
        return values


def extract_step(
    name: str,
    field: str,
    spec: str,
    *,
    extractors: ExtractorCache,
    post_process: Sequence[PostProcess] = (),
) -> FunctionStep:
    """Step que extrai `spec` do registro de entrada para `field`."""
    extractors.get(spec)

    def run(capsule: Capsule) -> Capsule:
        MappingCapsuleAdapter(capsule, extractors).extract_into(field, spec, post_process)
        return capsule

    return FunctionStep(name, run)
