# src/capsuleflow/core/pipeline/stage.py
"""
Base comum de stages (Subpipe e Bag).

Um stage é uma composição imutável de Steps aplicada a um lote inteiro.
Esta base concentra o que é idêntico entre as duas composições:
    - validação de nome e de membros na construção
    - máquina de estados por execução (PENDING → RUNNING → COMPLETED | FAILED)
    - eventos estruturados de início/fim/falha no RunContext
    - conversão de falhas inesperadas em `StageFailure`
    - montagem do `StageResult`

A ordem e a concorrência de execução dos membros são decididas pelas
subclasses em `_execute`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.exceptions import EngineConfigurationError, StageFailure, exception_to_error
from capsuleflow.core.record.stream import CapsuleStream

from .context import RunContext
from .types import StageKind, StageResult, StageStatus, StateMachine


@dataclass
class StageReport:
    """Acumulador mutável preenchido por `_execute` durante uma execução."""
    steps_run: int = 0
    children: List[StageResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class Stage(ABC):
    kind: StageKind

    def __init__(self, name: str, members: Iterable[Any]) -> None:
        if not isinstance(name, str) or not name.strip():
            raise EngineConfigurationError(
                message="stage name must be a non-empty string",
                details={"name": repr(name)},
            )
        self.name = name
        coerced: List[Any] = []
        for member in members:
            coerced.extend(self._coerce_member(member))
        if not coerced:
            raise EngineConfigurationError(
                message=f"Stage '{name}' não possui membros",
                details={"stage": name, "kind": self.kind.value},
                hint="Declare ao menos um Step no stage",
            )
        self.members: Tuple[Any, ...] = tuple(coerced)

    @abstractmethod
    def _coerce_member(self, member: Any) -> List[Any]:
        """Valida/normaliza um membro declarado (pode expandir em vários)."""

    @abstractmethod
    def _execute(
        self,
        stream: CapsuleStream,
        ctx: RunContext,
        settings: PipelineSettings,
        report: StageReport,
    ) -> None:
        """Aplica os membros ao lote."""

    @property
    def member_names(self) -> List[str]:
        return [m.name for m in self.members]

    def run(
        self,
        stream: CapsuleStream,
        ctx: RunContext,
        settings: Optional[PipelineSettings] = None,
    ) -> StageResult:
        """
        Executa o stage sobre um lote.

        Returns:
            StageResult: resultado com status COMPLETED.

        Raises:
            StageFailure: quando o stage não pode ser concluído; o estado
                FAILED é registrado no RunContext antes da propagação.
        """
        settings = settings or ctx.settings
        machine = StateMachine.for_stage(self.name)
        errored_before = len(stream.errored())
        active_in = stream.active_count()

        machine.transition(StageStatus.RUNNING)
        ctx.log(
            step_id=self.name,
            level="INFO",
            message="stage started",
            kind=self.kind.value,
            batch_index=stream.batch_index,
            capsules=active_in,
        )

        report = StageReport()
        try:
            self._execute(stream, ctx, settings, report)
        except StageFailure as exc:
            machine.transition(StageStatus.FAILED)
            self._log_failure(ctx, stream, exc)
            raise
        except Exception as exc:
            machine.transition(StageStatus.FAILED)
            failure = StageFailure(
                message=f"Stage '{self.name}' falhou",
                details={
                    "stage": self.name,
                    "batch_index": stream.batch_index,
                    "cause": exception_to_error(exc).to_dict(),
                },
            )
            self._log_failure(ctx, stream, failure)
            raise failure from exc

        machine.transition(StageStatus.COMPLETED)
        errored = len(stream.errored()) - errored_before
        metrics = {
            "capsules_in": active_in,
            "capsules_errored": errored,
            "capsules_out": stream.active_count(),
            "steps_run": report.steps_run,
        }
        ctx.log(
            step_id=self.name,
            level="INFO",
            message="stage completed",
            kind=self.kind.value,
            batch_index=stream.batch_index,
            **metrics,
        )
        return StageResult(
            stage=self.name,
            kind=self.kind,
            status=machine.status,
            batch_index=stream.batch_index,
            summary=f"{self.kind.value} '{self.name}': {metrics['capsules_out']}/{active_in} capsules ok",
            metrics=metrics,
            warnings=list(report.warnings),
            children=list(report.children),
        )

    def _log_failure(self, ctx: RunContext, stream: CapsuleStream, exc: StageFailure) -> None:
        ctx.log(
            step_id=self.name,
            level="ERROR",
            message="stage failed",
            kind=self.kind.value,
            batch_index=stream.batch_index,
            error=exc.to_payload().to_dict(),
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r}, members={self.member_names!r})"
