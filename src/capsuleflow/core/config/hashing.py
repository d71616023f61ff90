# src/capsuleflow/core/config/hashing.py
"""
Identidade das settings efetivas de um run.

O hash é gravado no Manifest (`inputs.settings_hash`) e permite afirmar
que dois runs usaram a mesma configuração. Ele é derivado de uma forma
textual canônica (`canonical_json`) para que a ordem de chaves, a origem
(YAML, JSON, dataclass) e a grafia camelCase não alterem a identidade.

Invariantes:
    - Mapeamentos equivalentes produzem o mesmo hash
    - O hash é uma string hexadecimal SHA-256 (64 caracteres)
"""

import hashlib
import json
from typing import Any, Mapping

from .errors import InvalidConfigRootTypeError


def canonical_json(config: Mapping[str, Any]) -> str:
    """Forma textual estável: chaves ordenadas, sem espaços, UTF-8 literal."""
    if not isinstance(config, Mapping):
        raise InvalidConfigRootTypeError(
            f"Configuração para hashing deve ser um mapeamento, recebido: {type(config).__name__}"
        )
    return json.dumps(
        dict(config),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def compute_config_hash(config: Mapping[str, Any]) -> str:
    """SHA-256 de `canonical_json(config)`; usado por `PipelineSettings.fingerprint()`."""
    return hashlib.sha256(canonical_json(config).encode("utf-8")).hexdigest()
