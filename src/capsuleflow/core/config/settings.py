# src/capsuleflow/core/config/settings.py
"""
Settings explícitas do pipeline.

Este módulo define `PipelineSettings`, o valor imutável que carrega as
opções reconhecidas pelo pipeline. As settings são construídas uma vez
(a partir de um dict já resolvido pelo loader, ou diretamente em código)
e passadas explicitamente ao builder, ao pipeline, aos stages e aos
readers/writers. Não existe objeto de settings global.

Opções reconhecidas (seção `pipeline`):
    - batch_size (int > 0, default 100)
    - worker_pool_size (int > 0, default 1, sem paralelismo)
    - on_capsule_error ("skip" | "abort", default "skip")
    - on_field_conflict ("warn" | "abort", default "warn")

Invariantes:
    - Uma instância de PipelineSettings é sempre válida
    - Opções desconhecidas na seção `pipeline` são rejeitadas
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidSettingsError
from .hashing import compute_config_hash
from .merge import normalize_keys

ON_CAPSULE_ERROR_CHOICES = ("skip", "abort")
ON_FIELD_CONFLICT_CHOICES = ("warn", "abort")


@dataclass(frozen=True)
class PipelineSettings:
    """
    Opções de execução do pipeline, validadas na construção.

    Decisões arquiteturais:
        - Imutável (frozen) para poder ser compartilhada entre workers
        - Validação no `__post_init__`: nenhuma instância inválida existe
        - `on_field_conflict` torna configurável a política para escrita
          sobreposta de campos por membros de um bag

    Limites explícitos:
        - Não carrega arquivos (ver `loader.load_config`)
        - Não contém opções de readers/writers específicos
    """

    batch_size: int = 100
    worker_pool_size: int = 1
    on_capsule_error: str = "skip"
    on_field_conflict: str = "warn"

    def __post_init__(self) -> None:
        for name in ("batch_size", "worker_pool_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidSettingsError(f"{name} deve ser inteiro positivo, recebido: {value!r}")

        if self.on_capsule_error not in ON_CAPSULE_ERROR_CHOICES:
            raise InvalidSettingsError(
                f"on_capsule_error deve ser um de {ON_CAPSULE_ERROR_CHOICES}, recebido: {self.on_capsule_error!r}"
            )
        if self.on_field_conflict not in ON_FIELD_CONFLICT_CHOICES:
            raise InvalidSettingsError(
                f"on_field_conflict deve ser um de {ON_FIELD_CONFLICT_CHOICES}, recebido: {self.on_field_conflict!r}"
            )

    @property
    def parallel(self) -> bool:
        return self.worker_pool_size > 1

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "PipelineSettings":
        """
        Constrói settings a partir da configuração resolvida.

        Aceita tanto a config completa (com seção `pipeline`) quanto o
        conteúdo da própria seção. Chaves camelCase são aceitas.

        Raises:
            InvalidSettingsError: Para opção desconhecida ou valor inválido.
        """
        raw = dict(config or {})
        section = raw["pipeline"] if "pipeline" in raw else raw
        if not isinstance(section, dict):
            raise InvalidSettingsError("Seção 'pipeline' deve ser um dicionário")

        section = normalize_keys(section)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise InvalidSettingsError(f"Opções desconhecidas em 'pipeline': {unknown}")

        return cls(**section)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def fingerprint(self) -> str:
        """Hash canônico das settings (gravado no Manifest)."""
        return compute_config_hash(self.to_dict())
