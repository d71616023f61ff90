# src/capsuleflow/core/config/merge.py
"""
Deep-merge de configuração (defaults + overrides locais).

Política de merge (v1):
    - dict + dict → merge recursivo por chave
    - list        → sobrescrita total
    - escalar     → sobrescrita direta
    - conflito de tipos → ConfigTypeConflictError

Chaves da seção `pipeline` podem chegar em camelCase (`batchSize`) ou
snake_case (`batch_size`). Antes do merge, ambas as formas são
normalizadas para snake_case, de modo que um override em camelCase
substitui corretamente um default em snake_case.

Invariantes:
    - Nenhum input é mutado
    - A mesma entrada sempre produz a mesma saída
    - Conflitos estruturais interrompem o merge

Limites explícitos:
    - Não carrega arquivos
    - Não valida semântica das settings (ver `settings.py`)
"""

from __future__ import annotations

import re
from copy import deepcopy
from typing import Any, Dict

from .errors import ConfigTypeConflictError

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def snake_case(key: str) -> str:
    """`workerPoolSize` → `worker_pool_size`; chaves snake_case passam intactas."""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Retorna cópia com todas as chaves (recursivamente) em snake_case.

    Raises:
        ConfigTypeConflictError: se duas chaves colapsarem na mesma forma
            normalizada (ex.: `batchSize` e `batch_size` no mesmo nível).
    """
    out: Dict[str, Any] = {}
    for key, value in data.items():
        norm = snake_case(key) if isinstance(key, str) else key
        if norm in out:
            raise ConfigTypeConflictError(
                f"Chave duplicada após normalização: '{key}' colide com '{norm}'"
            )
        out[norm] = normalize_keys(value) if isinstance(value, dict) else deepcopy(value)
    return out


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Combina `base` e `override` sem mutar nenhum dos dois.

    Args:
        base (Dict[str, Any]): Configuração base (defaults).
        override (Dict[str, Any]): Overrides explícitos.

    Returns:
        Dict[str, Any]: Novo dicionário resolvido.

    Raises:
        ConfigTypeConflictError: Se uma mesma chave tiver tipos incompatíveis.
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"Deep-merge requer dicts no nível raiz, recebido: "
            f"{type(base).__name__} vs {type(override).__name__}"
        )

    result: Dict[str, Any] = deepcopy(base)

    for key, override_value in override.items():
        if key not in result:
            result[key] = deepcopy(override_value)
            continue

        base_value = result[key]

        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
            continue

        if isinstance(override_value, list):
            result[key] = deepcopy(override_value)
            continue

        # None no default significa "sem valor"; qualquer override é aceito
        if base_value is not None and type(base_value) is not type(override_value):
            raise ConfigTypeConflictError(
                f"Conflito de tipo na chave '{key}': "
                f"{type(base_value).__name__} vs {type(override_value).__name__}"
            )

        result[key] = deepcopy(override_value)

    return result
