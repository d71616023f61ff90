# src/capsuleflow/__init__.py
"""
capsuleflow — pipelines de transformação de registros por lotes.

Cada registro de entrada vira uma cápsula (registro de entrada + Output
Record + cache privado). Lotes de cápsulas atravessam uma sequência de
stages: subpipes (ordem total) e bags (membros independentes, elegíveis
a paralelismo). Ao fim de cada lote, o writer persiste os documentos e o
lote é aposentado.

Arquitetura em alto nível:
    - core.record       → cápsula, Output Record, CapsuleStream
    - core.pipeline     → Step, Subpipe, Bag, RunContext
    - core.engine       → PipelineBuilder, Pipeline, RunResult
    - core.config       → configuração YAML/JSON e PipelineSettings
    - core.traceability → Manifest e Event Log
    - io                → Reader/Writer (iteráveis, pandas, JSON Lines)
    - adapters          → extração por spec sobre registros mapping

Limites explícitos:
    - Não implementa retry, checkpoint ou retomada
    - Não define Steps de domínio
"""

from .core.config import PipelineSettings, load_config
from .core.engine import Pipeline, PipelineBuilder, RunResult
from .core.exceptions import CapsuleError, StageFailure
from .core.pipeline import Bag, RunContext, Subpipe
from .core.record import Capsule, CapsuleStream, OutputRecord
from .version import __version__

__all__ = [
    "Bag",
    "Capsule",
    "CapsuleError",
    "CapsuleStream",
    "OutputRecord",
    "Pipeline",
    "PipelineBuilder",
    "PipelineSettings",
    "RunContext",
    "RunResult",
    "StageFailure",
    "Subpipe",
    "__version__",
    "load_config",
]
