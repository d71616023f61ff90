# src/capsuleflow/core/pipeline/subpipe.py
"""
Subpipe: composição ordenada de Steps.

Um subpipe aplica seus membros ao lote na ordem declarada, em modo
"step-major": o Step A percorre todas as cápsulas ativas, na ordem do
lote, antes que o Step B observe qualquer cápsula.

Garantia (happens-before):
    Se B é declarado depois de A no mesmo subpipe, toda cápsula já contém
    os efeitos de A quando B a observa. Use subpipes quando há dependência
    de campos (ex.: título normalizado antes do título de ordenação).

Membros aceitos:
    - Steps (ou callables, adaptados por `as_step`)
    - subpipes aninhados e bags, executados sobre o lote inteiro na
      posição em que foram declarados

Execução sempre sequencial, independentemente de `worker_pool_size`.
"""

from __future__ import annotations

from typing import Any, List

from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.record.stream import CapsuleStream

from .context import RunContext
from .stage import Stage, StageReport
from .step import as_step, run_step
from .types import StageKind


class Subpipe(Stage):
    kind = StageKind.SUBPIPE

    def _coerce_member(self, member: Any) -> List[Any]:
        if isinstance(member, Stage):
            return [member]
        return [as_step(member)]

    def _execute(
        self,
        stream: CapsuleStream,
        ctx: RunContext,
        settings: PipelineSettings,
        report: StageReport,
    ) -> None:
        for member in self.members:
            if isinstance(member, Stage):
                report.children.append(member.run(stream, ctx, settings))
                continue

            for capsule in stream.each():
                result = run_step(member, capsule, stage=self.name, ctx=ctx, settings=settings)
                if result is not capsule and not capsule.errored:
                    stream.replace(capsule, result)
            report.steps_run += 1
