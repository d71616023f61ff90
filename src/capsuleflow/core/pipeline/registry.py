# src/capsuleflow/core/pipeline/registry.py
"""
Registro estrutural de stages do pipeline.

O `StageRegistry` valida a integridade estrutural antes de qualquer
execução:
    - cada stage possui um nome válido (string não vazia)
    - não existem nomes duplicados
    - a ordem de declaração é preservada explicitamente

Limites explícitos:
    - Não executa stages
    - Não interage com RunContext ou Manifest
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


class DuplicateStageNameError(ValueError):
    """
    Dois stages com o mesmo nome no mesmo pipeline.

    O nome do stage identifica o stage em eventos, warnings e no
    Manifest; a duplicidade é tratada como erro fatal de composição,
    detectado no momento do registro.
    """


@dataclass
class StageRegistry:
    """
    Registro de stages em ordem de declaração, com unicidade de nome.

    Invariantes:
        - Cada `stage.name` é único no registry
        - `list()` reflete exatamente a ordem de registro
    """

    _stages: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _order: List[str] = field(default_factory=list, init=False, repr=False)

    def add(self, stage: Any) -> None:
        name = getattr(stage, "name", None)
        if not isinstance(name, str) or not name.strip():
            raise ValueError("stage.name must be a non-empty string")

        if name in self._stages:
            raise DuplicateStageNameError(f"Duplicate stage name: {name}")

        self._stages[name] = stage
        self._order.append(name)

    def get(self, name: str) -> Any:
        return self._stages[name]

    def list(self) -> List[Any]:
        return [self._stages[n] for n in self._order]

    def __len__(self) -> int:
        return len(self._order)
