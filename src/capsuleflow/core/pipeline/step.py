# src/capsuleflow/core/pipeline/step.py
"""
Contrato canônico de Step do capsuleflow.

Um Step é a menor unidade de transformação do pipeline: recebe uma
cápsula e devolve uma cápsula.

Responsabilidades de um Step:
    - ler o registro de entrada da cápsula
    - ler/escrever o Output Record e o cache privado da cápsula
    - opcionalmente participar da memoização de lote via `capsule.batch`

Princípios fundamentais:
    - Steps não conhecem subpipes, bags nem o pipeline
    - Steps não retêm a cápsula além da própria invocação
    - Conformidade é garantida por duck typing (@runtime_checkable)

Sinalização de falhas:
    - `CapsuleError` → falha isolada; a cápsula é marcada e excluída dos
      Steps seguintes e do writer; o lote continua
    - qualquer outra exceção → `StageFailure`, fatal para o lote

Limites explícitos:
    - Não define ordem de execução
    - Não define políticas de erro (on_capsule_error é das settings)
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.errors import capsule_error, engine_configuration_error, stage_failure
from capsuleflow.core.exceptions import CapsuleError, EngineConfigurationError, StageFailure
from capsuleflow.core.record.capsule import Capsule

from .context import RunContext


@runtime_checkable
class Step(Protocol):
    """
    Contrato mínimo de um Step.

    Atributos obrigatórios:
        - name: nome estável do Step (usado em logs, warnings e Manifest)

    O retorno de `run` é a cápsula transformada (normalmente a mesma
    instância recebida). `None` é aceito como "a mesma cápsula".
    """
    name: str

    def run(self, capsule: Capsule) -> Capsule:
        """Transforma uma cápsula."""
        ...


class FunctionStep:
    """Adapta uma função `capsule -> capsule | None` ao contrato de Step."""

    def __init__(self, name: str, fn: Callable[[Capsule], Optional[Capsule]]) -> None:
        if not isinstance(name, str) or not name.strip():
            raise EngineConfigurationError(
                message="Nome de Step inválido",
                details={"name": repr(name)},
                hint="Use um nome de Step string não vazio",
            )
        self.name = name
        self.fn = fn

    def run(self, capsule: Capsule) -> Optional[Capsule]:
        return self.fn(capsule)

    def __repr__(self) -> str:
        return f"FunctionStep({self.name!r})"


def as_step(obj: Any, name: Optional[str] = None) -> Step:
    """Aceita um Step pronto ou um callable (nome derivado de `__name__`)."""
    if isinstance(obj, Step):
        return obj
    if callable(obj):
        step_name = name or getattr(obj, "__name__", None) or obj.__class__.__name__
        return FunctionStep(step_name, obj)
    raise EngineConfigurationError(
        message="Membro não é um Step nem um callable",
        details={"received": type(obj).__name__, "value": repr(obj)},
        hint="Declare um objeto com `name` e `run(capsule)` ou uma função `capsule -> capsule`",
    )


def run_step(
    step: Step,
    capsule: Capsule,
    *,
    stage: str,
    ctx: RunContext,
    settings: PipelineSettings,
) -> Capsule:
    """
    Aplica um Step a uma cápsula, traduzindo falhas para a taxonomia do pipeline.

    Returns:
        Capsule: cápsula resultante (a própria, se o Step devolveu None ou
        se a cápsula foi marcada com erro).

    Raises:
        StageFailure: falha fatal do Step, retorno inválido, ou
            `CapsuleError` com `on_capsule_error="abort"`.
    """
    scope = f"{stage}.{step.name}"
    batch_index = capsule.batch.batch_index if capsule.batch is not None else None

    try:
        result = step.run(capsule)

    except CapsuleError as exc:
        payload = capsule_error(
            capsule_id=capsule.id,
            stage=stage,
            step=step.name,
            message=exc.message,
            details=dict(exc.details or {}),
        )
        capsule.mark_errored(payload.to_dict())
        ctx.add_warning(step_id=scope, message=f"capsule {capsule.id!r}: {exc.message}")
        ctx.log(
            step_id=scope,
            level="WARNING",
            message="capsule errored",
            capsule_id=capsule.id,
            batch_index=batch_index,
        )
        if settings.on_capsule_error == "abort":
            raise StageFailure(
                message=f"Falha de cápsula em '{scope}' com on_capsule_error=abort",
                details={
                    "stage": stage,
                    "step": step.name,
                    "batch_index": batch_index,
                    "capsule_id": capsule.id,
                    "cause": payload.to_dict(),
                },
            ) from exc
        return capsule

    except StageFailure:
        raise

    except Exception as exc:
        payload = stage_failure(
            stage=stage,
            batch_index=batch_index,
            step=step.name,
            exc_type=exc.__class__.__name__,
            exc_message=str(exc),
        )
        raise StageFailure(
            message=f"Step '{scope}' falhou",
            details={**payload.details, "capsule_id": capsule.id},
            hint=payload.hint,
        ) from exc

    if result is None:
        return capsule
    if not isinstance(result, Capsule):
        error = engine_configuration_error(
            message="Step retornou tipo inválido",
            details={
                "stage": stage,
                "step": step.name,
                "expected": "Capsule",
                "received": result.__class__.__name__,
            },
            hint="Ajuste o Step para retornar a cápsula recebida",
        )
        raise StageFailure(message=error.message, details=error.details, hint=error.hint)
    return result
