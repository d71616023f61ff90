"""
capsuleflow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do capsuleflow.
Erros são considerados artefatos operacionais e fazem parte do contrato
do pipeline, devendo ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis

Nenhuma decisão implícita é permitida.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CapsuleflowErrorPayload:
    """
    Payload canônico de erro do capsuleflow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    - decision_required: indica se o pipeline está bloqueado aguardando decisão humana
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None
    decision_required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Capsule / Output Record
CAPSULE_ERROR = "CAPSULE_ERROR"
INVALID_FIELD = "INVALID_FIELD"

# Stages
STAGE_FAILURE = "STAGE_FAILURE"
CONTRACT_VIOLATION = "CONTRACT_VIOLATION"

# Fronteira de I/O
READER_ERROR = "READER_ERROR"
WRITER_ERROR = "WRITER_ERROR"

# Engine / Execução
ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"
ENGINE_CONFIGURATION_ERROR = "ENGINE_CONFIGURATION_ERROR"


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def capsule_error(
    *,
    capsule_id: Any,
    stage: Optional[str],
    step: Optional[str],
    message: str,
    details: Optional[Dict[str, Any]] = None,
    hint: str = "Corrija o registro de entrada ou o Step indicado. A cápsula foi excluída do writer; o restante do lote seguiu normalmente.",
) -> CapsuleflowErrorPayload:
    return CapsuleflowErrorPayload(
        type=CAPSULE_ERROR,
        message=message or "Falha isolada em uma cápsula",
        details={
            "capsule_id": capsule_id,
            "stage": stage,
            "step": step,
            **(details or {}),
        },
        hint=hint,
        decision_required=False,
    )


def stage_failure(
    *,
    stage: str,
    batch_index: Optional[int],
    step: Optional[str] = None,
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Verifique o Step indicado. Falhas fora do escopo de uma cápsula abortam o lote inteiro; nenhum retry é aplicado.",
) -> CapsuleflowErrorPayload:
    return CapsuleflowErrorPayload(
        type=STAGE_FAILURE,
        message="Stage não pôde ser concluído",
        details={
            "stage": stage,
            "batch_index": batch_index,
            "step": step,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint=hint,
        decision_required=False,
    )


def contract_violation(
    *,
    stage: str,
    fields: List[str],
    members: List[str],
    capsule_id: Any = None,
    hint: str = "Membros de um bag não devem escrever os mesmos campos. Mova os Steps dependentes para um subpipe.",
) -> CapsuleflowErrorPayload:
    return CapsuleflowErrorPayload(
        type=CONTRACT_VIOLATION,
        message="Membros independentes do bag escreveram o mesmo campo",
        details={
            "stage": stage,
            "fields": sorted(fields),
            "members": list(members),
            "capsule_id": capsule_id,
        },
        hint=hint,
        decision_required=False,
    )


def reader_error(
    *,
    batch_index: Optional[int],
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Verifique a fonte de dados do reader. Política de retry pertence ao próprio reader.",
) -> CapsuleflowErrorPayload:
    return CapsuleflowErrorPayload(
        type=READER_ERROR,
        message="Falha ao obter o próximo lote do reader",
        details={
            "batch_index": batch_index,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint=hint,
        decision_required=False,
    )


def writer_error(
    *,
    batch_index: Optional[int],
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Verifique o destino do writer. Idempotência e retry são responsabilidade do writer.",
) -> CapsuleflowErrorPayload:
    return CapsuleflowErrorPayload(
        type=WRITER_ERROR,
        message="Falha ao persistir o lote no writer",
        details={
            "batch_index": batch_index,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint=hint,
        decision_required=False,
    )


def engine_execution_error(
    *,
    step: Optional[str] = None,
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Verifique o stacktrace e o manifest do run para diagnosticar a falha. Nenhum fallback é aplicado automaticamente.",
) -> CapsuleflowErrorPayload:
    return CapsuleflowErrorPayload(
        type=ENGINE_EXECUTION_ERROR,
        message="Falha inesperada durante a execução do pipeline",
        details={
            "step": step,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint=hint,
        decision_required=False,
    )


def engine_configuration_error(
    *,
    message: str = "Configuração inválida para execução do pipeline",
    details: Optional[Dict[str, Any]] = None,
    hint: str = "Revise a composição de stages/steps e as settings antes de reexecutar.",
) -> CapsuleflowErrorPayload:
    return CapsuleflowErrorPayload(
        type=ENGINE_CONFIGURATION_ERROR,
        message=message,
        details=details or {},
        hint=hint,
        decision_required=False,
    )
