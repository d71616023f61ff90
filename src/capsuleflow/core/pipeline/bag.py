# src/capsuleflow/core/pipeline/bag.py
"""
Bag: composição de Steps independentes, elegível a paralelismo.

Um bag declara que seus membros não dependem uns dos outros: não há
ordem entre membros, e a ordem das cápsulas para um mesmo membro não é
especificada. O resultado final de cada cápsula é o mesmo com ou sem
paralelismo.

Estratégias de execução:
    - um único membro:
        aplicado diretamente às cápsulas; com `worker_pool_size > 1`, o
        lote é particionado em fatias disjuntas, uma por worker
    - vários membros:
        cada membro trabalha sobre forks das cápsulas (`Capsule.fork`),
        um por membro; com `worker_pool_size > 1`, um membro por worker.
        Ao final, os deltas dos forks são reconciliados na cápsula de
        origem na ordem de declaração dos membros (merge de Output Record)

Escrita sobreposta:
    Dois membros que tocam o mesmo campo da mesma cápsula violam o
    contrato do bag (`ContractViolation`). Política `on_field_conflict`:
        - "warn":  warning registrado; deltas aplicados na ordem declarada
                   (appends concatenam; `set` do último membro prevalece)
        - "abort": StageFailure

Cancelamento:
    Uma falha fatal sinaliza os workers para parar entre cápsulas, cancela
    tarefas ainda não iniciadas e descarta todos os forks antes de propagar.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Sequence, Tuple

from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.errors import contract_violation
from capsuleflow.core.exceptions import ContractViolation, EngineConfigurationError, StageFailure
from capsuleflow.core.record.capsule import Capsule, CapsuleFork
from capsuleflow.core.record.stream import CapsuleStream

from .context import RunContext
from .stage import Stage, StageReport
from .step import Step, as_step, run_step
from .types import StageKind

Task = Tuple[Step, Sequence[Capsule]]


def partition(items: Sequence[Any], parts: int) -> List[List[Any]]:
    """Fatias contíguas e disjuntas, no máximo `parts`, sem fatias vazias."""
    parts = max(1, min(parts, len(items)))
    size, extra = divmod(len(items), parts)
    out: List[List[Any]] = []
    start = 0
    for i in range(parts):
        end = start + size + (1 if i < extra else 0)
        out.append(list(items[start:end]))
        start = end
    return [p for p in out if p]


class Bag(Stage):
    kind = StageKind.BAG

    def _coerce_member(self, member: Any) -> List[Any]:
        if isinstance(member, Bag):
            return list(member.members)
        if isinstance(member, Stage):
            raise EngineConfigurationError(
                message=f"Bag '{self.name}' não aceita stage '{member.name}' como membro",
                details={"stage": self.name, "member": member.name, "member_kind": member.kind.value},
                hint="Declare o subpipe no nível do pipeline ou dentro de outro subpipe",
            )
        return [as_step(member)]

    def _execute(
        self,
        stream: CapsuleStream,
        ctx: RunContext,
        settings: PipelineSettings,
        report: StageReport,
    ) -> None:
        capsules = list(stream.each())
        if not capsules:
            return

        if len(self.members) == 1:
            step = self.members[0]
            slices = partition(capsules, settings.worker_pool_size) if settings.parallel else [capsules]
            self._dispatch([(step, part) for part in slices], self._apply_direct, ctx, settings)
        else:
            forks: List[List[CapsuleFork]] = [[c.fork() for c in capsules] for _ in self.members]
            tasks = [(step, forks[i]) for i, step in enumerate(self.members)]
            self._dispatch(tasks, self._apply_forked, ctx, settings)
            self._reconcile(stream, capsules, forks, ctx, settings, report)

        report.steps_run += len(self.members)

    # -----------------------------
    # Execução
    # -----------------------------
    def _dispatch(
        self,
        tasks: List[Task],
        fn: Callable[..., None],
        ctx: RunContext,
        settings: PipelineSettings,
    ) -> None:
        cancel = threading.Event()

        if not settings.parallel or len(tasks) == 1:
            for step, items in tasks:
                fn(step, items, ctx, settings, cancel)
            return

        workers = min(settings.worker_pool_size, len(tasks))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"bag-{self.name}") as executor:
            futures = [executor.submit(fn, step, items, ctx, settings, cancel) for step, items in tasks]
            try:
                for future in as_completed(futures):
                    future.result()
            except BaseException:
                cancel.set()
                for future in futures:
                    future.cancel()
                raise

    def _apply_direct(
        self,
        step: Step,
        capsules: Sequence[Capsule],
        ctx: RunContext,
        settings: PipelineSettings,
        cancel: threading.Event,
    ) -> None:
        for capsule in capsules:
            if cancel.is_set():
                return
            if capsule.errored:
                continue
            result = run_step(step, capsule, stage=self.name, ctx=ctx, settings=settings)
            if result is not capsule and not capsule.errored:
                capsule.merge(result.output_record)

    def _apply_forked(
        self,
        step: Step,
        forks: Sequence[CapsuleFork],
        ctx: RunContext,
        settings: PipelineSettings,
        cancel: threading.Event,
    ) -> None:
        for fork in forks:
            if cancel.is_set():
                return
            if fork.errored:
                continue
            result = run_step(step, fork, stage=self.name, ctx=ctx, settings=settings)
            if result is not fork and not fork.errored:
                fork.merge(result.output_record)

    # -----------------------------
    # Reconciliação
    # -----------------------------
    def _check_contract(self, capsule: Capsule, member_forks: Sequence[CapsuleFork]) -> None:
        writers: Dict[str, List[str]] = {}
        for step, fork in zip(self.members, member_forks):
            for name in fork.touched_fields():
                writers.setdefault(name, []).append(step.name)

        overlapping = {name: who for name, who in writers.items() if len(who) > 1}
        if overlapping:
            members = sorted({m for who in overlapping.values() for m in who})
            payload = contract_violation(
                stage=self.name,
                fields=list(overlapping),
                members=members,
                capsule_id=capsule.id,
            )
            raise ContractViolation(message=payload.message, details=payload.details, hint=payload.hint)

    def _reconcile(
        self,
        stream: CapsuleStream,
        capsules: Sequence[Capsule],
        forks: List[List[CapsuleFork]],
        ctx: RunContext,
        settings: PipelineSettings,
        report: StageReport,
    ) -> None:
        pending: List[Tuple[Capsule, List[CapsuleFork]]] = []

        for pos, capsule in enumerate(capsules):
            if capsule.errored:
                continue
            member_forks = [forks[i][pos] for i in range(len(self.members))]
            try:
                self._check_contract(capsule, member_forks)
            except ContractViolation as violation:
                if settings.on_field_conflict == "abort":
                    raise StageFailure(
                        message=f"ContractViolation no bag '{self.name}'",
                        details={
                            "stage": self.name,
                            "batch_index": stream.batch_index,
                            "violation": violation.to_payload().to_dict(),
                        },
                        hint=violation.hint,
                    ) from violation
                message = (
                    f"capsule {capsule.id!r}: fields {violation.details['fields']} "
                    f"written by {violation.details['members']}"
                )
                report.warnings.append(message)
                ctx.add_warning(step_id=self.name, message=message)
                ctx.log(
                    step_id=self.name,
                    level="WARNING",
                    message="contract violation",
                    batch_index=stream.batch_index,
                    **violation.details,
                )
            pending.append((capsule, member_forks))

        for _capsule, member_forks in pending:
            for fork in member_forks:
                fork.apply()
