# src/capsuleflow/core/pipeline/types.py
"""
Tipos canônicos do pipeline do capsuleflow.

Este módulo define as estruturas e enums que padronizam a comunicação
entre stages, pipeline e rastreabilidade.

Componentes principais:
    - StageKind      → classificação de stages (subpipe, bag)
    - StageStatus    → máquina de estados de um stage por lote
    - PipelineStatus → máquina de estados de um run do pipeline
    - StateMachine   → guarda de transições para ambas as máquinas
    - StageResult    → resultado imutável de um stage sobre um lote

Máquinas de estado:
    - Stage:    PENDING → RUNNING → COMPLETED | FAILED
    - Pipeline: IDLE → RUNNING → COMPLETED | ABORTED

Invariantes:
    - Enums possuem valores textuais canônicos (serializáveis no Manifest)
    - StageResult é imutável
    - Estados terminais não admitem transições
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from capsuleflow.core.exceptions import InvalidStateTransition


class StageKind(str, Enum):
    """
    Tipos de composição de Steps.

    Tipos definidos:
        - SUBPIPE: composição ordenada; ordem de Steps e de cápsulas é total
        - BAG: composição de Steps independentes; elegível a paralelismo
    """
    SUBPIPE = "subpipe"
    BAG = "bag"


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


STAGE_TRANSITIONS: Mapping[Enum, Tuple[Enum, ...]] = {
    StageStatus.PENDING: (StageStatus.RUNNING,),
    StageStatus.RUNNING: (StageStatus.COMPLETED, StageStatus.FAILED),
    StageStatus.COMPLETED: (),
    StageStatus.FAILED: (),
}

PIPELINE_TRANSITIONS: Mapping[Enum, Tuple[Enum, ...]] = {
    PipelineStatus.IDLE: (PipelineStatus.RUNNING,),
    PipelineStatus.RUNNING: (PipelineStatus.COMPLETED, PipelineStatus.ABORTED),
    PipelineStatus.COMPLETED: (),
    PipelineStatus.ABORTED: (),
}


class StateMachine:
    """
    Guarda de transições de estado.

    Mantém o estado atual e o histórico de estados visitados; qualquer
    transição fora da tabela levanta `InvalidStateTransition`.
    """

    def __init__(self, name: str, initial: Enum, transitions: Mapping[Enum, Tuple[Enum, ...]]) -> None:
        self.name = name
        self._transitions = transitions
        self.status = initial
        self.history: List[Enum] = [initial]

    def transition(self, target: Enum) -> None:
        allowed = self._transitions.get(self.status, ())
        if target not in allowed:
            raise InvalidStateTransition(
                message=f"Transição inválida em '{self.name}': {self.status.value} → {target.value}",
                details={
                    "machine": self.name,
                    "from": self.status.value,
                    "to": target.value,
                    "allowed": [s.value for s in allowed],
                },
            )
        self.status = target
        self.history.append(target)

    @property
    def terminal(self) -> bool:
        return not self._transitions.get(self.status, ())

    @classmethod
    def for_stage(cls, name: str) -> "StateMachine":
        return cls(name, StageStatus.PENDING, STAGE_TRANSITIONS)

    @classmethod
    def for_pipeline(cls, name: str = "pipeline") -> "StateMachine":
        return cls(name, PipelineStatus.IDLE, PIPELINE_TRANSITIONS)


@dataclass(frozen=True)
class StageResult:
    """
    Resultado imutável da execução de um stage sobre um lote.

    Campos:
        - stage: nome do stage
        - kind: StageKind
        - status: status final (COMPLETED ou FAILED)
        - batch_index: índice do lote processado
        - summary: resumo textual
        - metrics: contadores (cápsulas, steps, erros de cápsula)
        - warnings: avisos não fatais (ex.: ContractViolation com política warn)
        - error: payload de erro serializado quando FAILED
        - children: resultados de stages aninhados, na ordem de execução
    """
    stage: str
    kind: StageKind
    status: StageStatus
    batch_index: int
    summary: str
    metrics: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    children: List["StageResult"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "kind": self.kind.value,
            "status": self.status.value,
            "batch_index": self.batch_index,
            "summary": self.summary,
            "metrics": dict(self.metrics),
            "warnings": list(self.warnings),
            "error": None if self.error is None else dict(self.error),
            "children": [c.to_dict() for c in self.children],
        }
