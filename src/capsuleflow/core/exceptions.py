"""
capsuleflow — Canonical Exceptions (v1)

Este módulo define exceções tipadas internas do capsuleflow.

Objetivo:
- Permitir que Steps/Stages/Pipeline levantem exceções semânticas tipadas
- Separar falhas isoladas de cápsula (CapsuleError) de falhas fatais
  (StageFailure, ReaderError, WriterError)
- Facilitar o mapeamento determinístico para CapsuleflowErrorPayload

Regras:
- Não contém lógica de domínio específica de formato de registro.
- Exceções devem carregar apenas dados estruturados (serializáveis).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional

from .errors import (
    CAPSULE_ERROR,
    CONTRACT_VIOLATION,
    ENGINE_CONFIGURATION_ERROR,
    ENGINE_EXECUTION_ERROR,
    INVALID_FIELD,
    READER_ERROR,
    STAGE_FAILURE,
    WRITER_ERROR,
    CapsuleflowErrorPayload,
)


@dataclass(frozen=True)
class CapsuleflowException(Exception):
    """Base class para exceções internas do capsuleflow.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    code: ClassVar[str] = ENGINE_EXECUTION_ERROR

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None
    decision_required: bool = False

    def __str__(self) -> str:  # pragma: no cover
        return self.message

    def to_payload(self) -> CapsuleflowErrorPayload:
        return CapsuleflowErrorPayload(
            type=self.code,
            message=self.message,
            details=dict(self.details or {}),
            hint=self.hint,
            decision_required=self.decision_required,
        )


# ---------------------------------------------------------------------------
# Registro / Cápsula
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InvalidField(CapsuleflowException):
    """Nome de campo vazio ou inválido no Output Record."""

    code: ClassVar[str] = INVALID_FIELD


@dataclass(frozen=True)
class CapsuleError(CapsuleflowException):
    """Falha restrita a uma cápsula: ela é marcada e o lote continua."""

    code: ClassVar[str] = CAPSULE_ERROR


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StageFailure(CapsuleflowException):
    """Subpipe ou bag não pôde ser concluído (fatal para o pipeline)."""

    code: ClassVar[str] = STAGE_FAILURE


@dataclass(frozen=True)
class ContractViolation(CapsuleflowException):
    """Membros de um bag escreveram campos sobrepostos no mesmo lote."""

    code: ClassVar[str] = CONTRACT_VIOLATION


@dataclass(frozen=True)
class MemoizationCycleError(CapsuleflowException):
    """Uma computação memoizada pediu a própria chave durante sua execução."""

    code: ClassVar[str] = ENGINE_EXECUTION_ERROR


@dataclass(frozen=True)
class StreamRetiredError(CapsuleflowException):
    """Operação de lote solicitada após a aposentadoria do stream."""

    code: ClassVar[str] = ENGINE_EXECUTION_ERROR


# ---------------------------------------------------------------------------
# Fronteira de I/O
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReaderError(CapsuleflowException):
    """Falha do reader ao produzir lotes."""

    code: ClassVar[str] = READER_ERROR


@dataclass(frozen=True)
class WriterError(CapsuleflowException):
    """Falha do writer ao consumir um lote concluído."""

    code: ClassVar[str] = WRITER_ERROR


# ---------------------------------------------------------------------------
# Engine / Configuração
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineConfigurationError(CapsuleflowException):
    """Composição ou configuração inválida para execução."""

    code: ClassVar[str] = ENGINE_CONFIGURATION_ERROR


@dataclass(frozen=True)
class PipelineFrozenError(EngineConfigurationError):
    """Tentativa de alterar um builder após `build()`."""


@dataclass(frozen=True)
class InvalidStateTransition(CapsuleflowException):
    """Transição de estado não permitida para stage ou pipeline."""

    code: ClassVar[str] = ENGINE_EXECUTION_ERROR


@dataclass(frozen=True)
class PipelineAborted(CapsuleflowException):
    """Run terminou em estado ABORTED (levantada por `raise_for_status`)."""

    code: ClassVar[str] = ENGINE_EXECUTION_ERROR


def exception_to_error(exc: BaseException) -> CapsuleflowErrorPayload:
    """Converte exceções em CapsuleflowErrorPayload (serializável, acionável).

    Regras:
    - CapsuleflowException: já vem com message/details/hint.
    - Outras exceções: encapsular como ENGINE_EXECUTION_ERROR sem expor stack trace.
    """
    if isinstance(exc, CapsuleflowException):
        return exc.to_payload()

    return CapsuleflowErrorPayload(
        type=ENGINE_EXECUTION_ERROR,
        message=str(exc) or "Erro inesperado durante execução",
        details={"exception_class": exc.__class__.__name__},
        hint="Verifique o log técnico e a configuração do pipeline",
        decision_required=False,
    )
