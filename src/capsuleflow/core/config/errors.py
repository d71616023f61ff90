# src/capsuleflow/core/config/errors.py
"""
Exceções da camada de configuração do capsuleflow.

Todas herdam de `ConfigError` e representam violações estruturais da
configuração (arquivo ausente, formato desconhecido, tipos conflitantes,
settings fora do domínio permitido). Nenhuma delas representa falha de
execução de Step ou de Stage.
"""


class ConfigError(Exception):
    """
    Exceção base para erros de configuração.

    Permite captura genérica de falhas de configuração, distinguindo-as
    das falhas de execução do pipeline (`CapsuleflowException`).
    """


class DefaultsNotFoundError(ConfigError):
    """Arquivo de configuração base (defaults) não encontrado."""


class UnsupportedConfigFormatError(ConfigError):
    """
    Formato de arquivo não suportado pelo loader.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """Conteúdo raiz da configuração não é um dicionário."""


class ConfigTypeConflictError(ConfigError):
    """
    Conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"pipeline": {"batch_size": 100}}
        - override: {"pipeline": "grande"}
    """


class InvalidSettingsError(ConfigError):
    """
    Valor fora do domínio permitido para uma opção do pipeline.

    Exemplos:
        - batch_size <= 0
        - worker_pool_size <= 0
        - on_capsule_error diferente de "skip" / "abort"
        - opção desconhecida na seção `pipeline`
    """
