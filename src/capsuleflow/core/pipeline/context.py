# src/capsuleflow/core/pipeline/context.py
"""
Contexto de execução compartilhado de um run.

Este módulo define o `RunContext`, a estrutura canônica que acompanha um
run do pipeline e concentra a observabilidade estruturada.

O RunContext atua como o único meio permitido de:
    - registro de logs estruturados (eventos, não texto livre)
    - coleta de warnings não fatais por escopo (stage/step)
    - armazenamento de artefatos do run (não de lote: para isso existe
      o cache de lote do `CapsuleStream`)
    - acesso ao Manifest do run, quando presente

Princípios fundamentais:
    - Isolamento por execução (cada run possui seu próprio contexto)
    - Ausência de estado global compartilhado
    - Seguro para uso concorrente por workers de bag

Invariantes:
    - Logs sempre incluem `run_id` e `step_id`
    - Warnings são agrupados por `step_id`

Limites explícitos:
    - Não executa Steps
    - Não persiste dados automaticamente
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.traceability.manifest import Manifest


@dataclass
class RunContext:
    """
    Contexto de execução de um run do pipeline.

    Consolida:
        - identidade da execução (run_id, created_at)
        - settings explícitas do run
        - artefatos de run
        - eventos de log estruturados e warnings por escopo
        - Manifest (opcional; o Pipeline cria um quando ausente)

    O `step_id` dos eventos segue a convenção `"<stage>.<step>"`,
    `"<stage>"` ou `"pipeline"`, conforme o escopo do evento.
    """
    run_id: str
    created_at: datetime
    settings: PipelineSettings = field(default_factory=PipelineSettings)
    meta: Dict[str, Any] = field(default_factory=dict)
    manifest: Optional[Manifest] = None

    _artifacts: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)
    _lock: Any = field(default_factory=threading.RLock, init=False, repr=False)

    @classmethod
    def new(
        cls,
        *,
        settings: Optional[PipelineSettings] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> "RunContext":
        return cls(
            run_id=f"run-{uuid.uuid4().hex[:12]}",
            created_at=datetime.now(timezone.utc),
            settings=settings or PipelineSettings(),
            meta=dict(meta or {}),
        )

    # -----------------------------
    # Artifact store
    # -----------------------------
    def set_artifact(self, key: str, value: Any) -> None:
        with self._lock:
            self._artifacts[key] = value

    def has_artifact(self, key: str) -> bool:
        with self._lock:
            return key in self._artifacts

    def get_artifact(self, key: str) -> Any:
        with self._lock:
            if key not in self._artifacts:
                raise KeyError(key)
            return self._artifacts[key]

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, step_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "step_id": step_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        with self._lock:
            self.events.append(event)

    def add_warning(self, *, step_id: str, message: str) -> None:
        with self._lock:
            self.warnings.setdefault(step_id, []).append(message)

    def events_for(self, step_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [e for e in self.events if e["step_id"] == step_id]
