# src/capsuleflow/core/engine/pipeline.py
"""
Pipeline: execução lote a lote.

Um Pipeline é uma sequência imutável de stages (Subpipe/Bag) aplicada a
cada lote produzido por um Reader, seguida do Writer e da aposentadoria
do lote:

    para cada lote:
        stage 1 → stage 2 → ... → stage N → writer → stream.retire()

Máquina de estados do run:
    IDLE → RUNNING → COMPLETED | ABORTED

Falhas fatais (abortam o run, sem retry):
    - StageFailure (inclui ContractViolation com política abort)
    - ReaderError  (qualquer exceção ao obter o próximo lote)
    - WriterError  (qualquer exceção ao persistir um lote)

`CapsuleError` não aborta: a cápsula é marcada e o lote segue.

Decisões arquiteturais:
    - O run nunca levanta por falha de dados: o resultado é um `RunResult`
      com status e payload de erro (`raise_for_status()` para quem prefere
      exceção)
    - O Pipeline é o dono do índice de lote (sequencial a partir de 0)
    - O Manifest é criado quando o RunContext não traz um
    - `stream.retire()` sempre roda ao fim do lote, com sucesso ou falha

Limites explícitos:
    - Não implementa retry, checkpoint ou retomada
    - Não decide idempotência do writer
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.errors import engine_execution_error, reader_error, writer_error
from capsuleflow.core.exceptions import (
    CapsuleflowException,
    EngineConfigurationError,
    PipelineAborted,
    ReaderError,
    StageFailure,
    WriterError,
    exception_to_error,
)
from capsuleflow.core.pipeline.context import RunContext
from capsuleflow.core.pipeline.registry import StageRegistry
from capsuleflow.core.pipeline.stage import Stage
from capsuleflow.core.pipeline.types import PipelineStatus, StageResult, StateMachine
from capsuleflow.core.record.stream import CapsuleStream
from capsuleflow.core.traceability.manifest import (
    Manifest,
    batch_started,
    batch_written,
    create_manifest,
    run_finished,
    run_started,
    stage_failed,
    stage_finished,
    stage_started,
)
from capsuleflow.io.base import Reader, WriteReport, Writer
from capsuleflow.version import __version__

PIPELINE_STEP_ID = "pipeline"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RunResult:
    """
    Resultado agregado de um run.

    Campos:
        - run_id: identidade do run (RunContext)
        - status: COMPLETED ou ABORTED
        - batches: lotes processados (inclui o lote que abortou)
        - written: documentos persistidos pelo writer
        - skipped: ids de cápsulas com erro não persistidas
        - stage_results: resultados por lote, na ordem dos stages
        - error: payload de erro (apenas quando ABORTED)
        - manifest: Manifest do run
    """
    run_id: str
    status: PipelineStatus
    batches: int = 0
    written: int = 0
    skipped: List[Any] = field(default_factory=list)
    stage_results: List[List[StageResult]] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    manifest: Optional[Manifest] = None
    ctx: Optional[RunContext] = field(default=None, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.status == PipelineStatus.COMPLETED

    def results_for(self, batch_index: int) -> List[StageResult]:
        return list(self.stage_results[batch_index])

    def raise_for_status(self) -> "RunResult":
        if not self.ok:
            error = self.error or {}
            raise PipelineAborted(
                message=f"Run {self.run_id} abortado: {error.get('message', 'erro desconhecido')}",
                details={"run_id": self.run_id, "error": error},
                hint=error.get("hint"),
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "batches": self.batches,
            "written": self.written,
            "skipped": list(self.skipped),
            "stage_results": [[r.to_dict() for r in batch] for batch in self.stage_results],
            "error": None if self.error is None else dict(self.error),
        }


class _BatchAborted(Exception):
    """Sinal interno: o lote corrente falhou de forma fatal."""

    def __init__(self, error: Dict[str, Any]) -> None:
        super().__init__(error.get("message"))
        self.error = error


class Pipeline:
    """Sequência imutável de stages executada por lote."""

    def __init__(self, stages: Sequence[Stage], *, settings: Optional[PipelineSettings] = None) -> None:
        registry = StageRegistry()
        for stage in stages:
            if not isinstance(stage, Stage):
                raise EngineConfigurationError(
                    message="Apenas Subpipe ou Bag podem compor um pipeline",
                    details={"received": type(stage).__name__},
                )
            registry.add(stage)
        if len(registry) == 0:
            raise EngineConfigurationError(
                message="Pipeline sem stages",
                details={},
                hint="Declare ao menos um subpipe ou bag",
            )
        self._stages: Tuple[Stage, ...] = tuple(registry.list())
        self.settings = settings or PipelineSettings()

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return self._stages

    @property
    def stage_names(self) -> List[str]:
        return [s.name for s in self._stages]

    # -----------------------------
    # Execução
    # -----------------------------
    def run(self, reader: Reader, writer: Writer, *, ctx: Optional[RunContext] = None) -> RunResult:
        ctx = ctx or RunContext.new(settings=self.settings)
        if ctx.manifest is None:
            ctx.manifest = create_manifest(
                run_id=ctx.run_id,
                started_at=ctx.created_at,
                version=__version__,
                settings_hash=self.settings.fingerprint(),
                stages=self.stage_names,
            )
        manifest = ctx.manifest

        machine = StateMachine.for_pipeline()
        machine.transition(PipelineStatus.RUNNING)
        run_started(manifest, ts=_now())
        ctx.log(
            step_id=PIPELINE_STEP_ID,
            level="INFO",
            message="run started",
            stages=self.stage_names,
            settings=self.settings.to_dict(),
        )

        stage_results: List[List[StageResult]] = []
        written = 0
        skipped: List[Any] = []
        error: Optional[Dict[str, Any]] = None

        try:
            batches = self._open(reader)
            index = 0
            while True:
                stream = self._next_batch(batches, index)
                if stream is None:
                    break
                results: List[StageResult] = []
                stage_results.append(results)
                report = self._run_batch(stream, writer, ctx, manifest, results)
                written += report.written
                skipped.extend(report.skipped)
                index += 1
        except _BatchAborted as aborted:
            error = aborted.error
        except CapsuleflowException as exc:
            error = exception_to_error(exc).to_dict()
        except Exception as exc:
            error = engine_execution_error(
                step=PIPELINE_STEP_ID,
                exc_type=exc.__class__.__name__,
                exc_message=str(exc),
            ).to_dict()

        status = PipelineStatus.COMPLETED if error is None else PipelineStatus.ABORTED
        machine.transition(status)
        run_finished(manifest, status=status.value, ts=_now(), error=error)
        ctx.log(
            step_id=PIPELINE_STEP_ID,
            level="INFO" if error is None else "ERROR",
            message="run finished",
            status=status.value,
            batches=len(stage_results),
            written=written,
            skipped=len(skipped),
            error=error,
        )

        return RunResult(
            run_id=ctx.run_id,
            status=status,
            batches=len(stage_results),
            written=written,
            skipped=skipped,
            stage_results=stage_results,
            error=error,
            manifest=manifest,
            ctx=ctx,
        )

    # -----------------------------
    # Fronteira do reader
    # -----------------------------
    def _open(self, reader: Reader) -> Iterator[CapsuleStream]:
        try:
            return iter(reader.batches())
        except Exception as exc:
            raise _BatchAborted(self._reader_failure(exc, 0)) from exc

    def _next_batch(self, batches: Iterator[CapsuleStream], index: int) -> Optional[CapsuleStream]:
        try:
            stream = next(batches)
        except StopIteration:
            return None
        except Exception as exc:
            raise _BatchAborted(self._reader_failure(exc, index)) from exc
        stream.batch_index = index
        return stream

    def _reader_failure(self, exc: Exception, index: int) -> Dict[str, Any]:
        if isinstance(exc, ReaderError):
            failure = exc.to_payload().to_dict()
            failure["details"].setdefault("batch_index", index)
        else:
            failure = reader_error(
                batch_index=index,
                exc_type=exc.__class__.__name__,
                exc_message=str(exc),
            ).to_dict()
        failure["details"].setdefault("stage", None)
        return failure

    # -----------------------------
    # Lote
    # -----------------------------
    def _run_batch(
        self,
        stream: CapsuleStream,
        writer: Writer,
        ctx: RunContext,
        manifest: Manifest,
        results: List[StageResult],
    ) -> WriteReport:
        index = stream.batch_index
        batch_started(manifest, batch_index=index, size=len(stream), ts=_now())
        ctx.log(step_id=PIPELINE_STEP_ID, level="INFO", message="batch started", batch_index=index, size=len(stream))

        try:
            for stage in self._stages:
                stage_started(manifest, batch_index=index, stage=stage.name, kind=stage.kind.value, ts=_now())
                try:
                    result = stage.run(stream, ctx, self.settings)
                except StageFailure as exc:
                    failure = exc.to_payload().to_dict()
                    failure["details"].setdefault("stage", stage.name)
                    failure["details"].setdefault("batch_index", index)
                    stage_failed(manifest, batch_index=index, stage=stage.name, ts=_now(), error=failure)
                    raise _BatchAborted(failure) from exc
                stage_finished(manifest, batch_index=index, stage=stage.name, ts=_now(), result=result.to_dict())
                results.append(result)

            report = self._write(writer, stream)
            batch_written(manifest, batch_index=index, ts=_now(), written=report.written, skipped=report.skipped)
            ctx.log(
                step_id=PIPELINE_STEP_ID,
                level="INFO",
                message="batch written",
                batch_index=index,
                written=report.written,
                skipped=len(report.skipped),
            )
            return report
        finally:
            stream.retire()

    # -----------------------------
    # Fronteira do writer
    # -----------------------------
    def _write(self, writer: Writer, stream: CapsuleStream) -> WriteReport:
        index = stream.batch_index
        written = stream.active_count()
        skipped = [c.id for c in stream.errored()]
        try:
            report = writer.write(stream)
        except Exception as exc:
            if isinstance(exc, WriterError):
                failure = exc.to_payload().to_dict()
                failure["details"].setdefault("batch_index", index)
            else:
                failure = writer_error(
                    batch_index=index,
                    exc_type=exc.__class__.__name__,
                    exc_message=str(exc),
                ).to_dict()
            failure["details"].setdefault("stage", None)
            raise _BatchAborted(failure) from exc

        if isinstance(report, WriteReport):
            return report
        return WriteReport(batch_index=index, written=written, skipped=skipped)
