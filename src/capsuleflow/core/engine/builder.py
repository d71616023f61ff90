# src/capsuleflow/core/engine/builder.py
"""
Builder declarativo de pipelines.

O `PipelineBuilder` é a única forma mutável de compor um pipeline:
stages são declarados em ordem e `build()` entrega um `Pipeline`
imutável. Depois de `build()` o builder fica congelado.

Decisões arquiteturais:
    - Unicidade de nomes via `StageRegistry` (erro no momento do registro)
    - Settings são explícitas e acompanham o Pipeline construído
    - Métodos de composição retornam o próprio builder (encadeável)

Invariantes:
    - Um pipeline construído possui ao menos um stage
    - Nenhuma alteração é aceita após `build()` (`PipelineFrozenError`)
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.exceptions import EngineConfigurationError, PipelineFrozenError
from capsuleflow.core.pipeline.bag import Bag
from capsuleflow.core.pipeline.registry import StageRegistry
from capsuleflow.core.pipeline.stage import Stage
from capsuleflow.core.pipeline.subpipe import Subpipe

from .pipeline import Pipeline


class PipelineBuilder:
    def __init__(self, settings: Optional[PipelineSettings] = None) -> None:
        self.settings = settings or PipelineSettings()
        self._registry = StageRegistry()
        self._frozen = False

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "PipelineBuilder":
        return cls(PipelineSettings.from_config(config))

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def stage_names(self) -> List[str]:
        return [s.name for s in self._registry.list()]

    def _ensure_open(self, operation: str) -> None:
        if self._frozen:
            raise PipelineFrozenError(
                message="Pipeline já construído; o builder não aceita alterações",
                details={"operation": operation, "stages": self.stage_names},
                hint="Crie um novo PipelineBuilder para compor outro pipeline",
            )

    def add_subpipe(self, name: str, *steps: Any) -> "PipelineBuilder":
        self._ensure_open("add_subpipe")
        return self.add_stage(Subpipe(name, steps))

    def add_bag(self, name: str, *steps: Any) -> "PipelineBuilder":
        self._ensure_open("add_bag")
        return self.add_stage(Bag(name, steps))

    def add_stage(self, stage: Stage) -> "PipelineBuilder":
        self._ensure_open("add_stage")
        if not isinstance(stage, Stage):
            raise EngineConfigurationError(
                message="Apenas Subpipe ou Bag podem ser declarados no pipeline",
                details={"received": type(stage).__name__},
                hint="Use add_subpipe/add_bag ou embrulhe os Steps em um stage",
            )
        self._registry.add(stage)
        return self

    def build(self) -> Pipeline:
        self._ensure_open("build")
        if len(self._registry) == 0:
            raise EngineConfigurationError(
                message="Pipeline sem stages",
                details={},
                hint="Declare ao menos um subpipe ou bag antes de build()",
            )
        self._frozen = True
        return Pipeline(self._registry.list(), settings=self.settings)
