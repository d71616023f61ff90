# src/capsuleflow/core/config/__init__.py
"""
Camada de configuração do capsuleflow.

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (defaults + overrides locais)
    - Resolução via deep-merge determinístico
    - Construção e validação de `PipelineSettings`
    - Hash canônico para rastreabilidade no Manifest

Princípios fundamentais:
    - Configuração é um valor explícito, passado adiante; nunca global
    - Overrides são sempre explícitos
    - A mesma entrada sempre produz as mesmas settings
"""

from .errors import (
    ConfigError,
    ConfigTypeConflictError,
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    InvalidSettingsError,
    UnsupportedConfigFormatError,
)
from .hashing import canonical_json, compute_config_hash
from .loader import load_config
from .merge import deep_merge
from .settings import PipelineSettings

__all__ = [
    "ConfigError",
    "ConfigTypeConflictError",
    "DefaultsNotFoundError",
    "InvalidConfigRootTypeError",
    "InvalidSettingsError",
    "UnsupportedConfigFormatError",
    "PipelineSettings",
    "canonical_json",
    "compute_config_hash",
    "deep_merge",
    "load_config",
]
