# src/capsuleflow/core/pipeline/__init__.py
"""
# Pipeline Core — capsuleflow

Este pacote define os contratos e as composições que transformam um lote
de cápsulas.

## Componentes

- **types**
  - `StageKind`, `StageStatus`, `PipelineStatus`
  - `StateMachine`: guarda de transições
  - `StageResult`: resultado imutável de um stage sobre um lote

- **step**
  - `Step` (Protocol): contrato cápsula → cápsula
  - `FunctionStep`, `as_step`, `run_step`

- **subpipe** / **bag**
  - `Subpipe`: composição ordenada (ordem total de Steps e cápsulas)
  - `Bag`: composição de Steps independentes (elegível a paralelismo)

- **context**
  - `RunContext`: logs estruturados, warnings, artefatos e Manifest

- **registry**
  - `StageRegistry`: unicidade de nomes de stages

## Invariantes

- Em um subpipe, todo efeito de A é visível para B declarado depois
- Em um bag, o resultado por cápsula independe da ordem e do paralelismo
- `CapsuleError` nunca escapa de um stage; `StageFailure` sempre escapa
"""

from .bag import Bag
from .context import RunContext
from .registry import DuplicateStageNameError, StageRegistry
from .stage import Stage
from .step import FunctionStep, Step, as_step, run_step
from .subpipe import Subpipe
from .types import PipelineStatus, StageKind, StageResult, StageStatus, StateMachine

__all__ = [
    "Bag",
    "DuplicateStageNameError",
    "FunctionStep",
    "PipelineStatus",
    "RunContext",
    "Stage",
    "StageKind",
    "StageRegistry",
    "StageResult",
    "StageStatus",
    "StateMachine",
    "Step",
    "Subpipe",
    "as_step",
    "run_step",
]
