# tests/core/config/test_loader.py
"""
Testes do carregador de configuração (load_config).

Os testes asseguram que:
- o arquivo defaults é obrigatório
- o arquivo local é opcional
- formatos não suportados são rejeitados
- chaves camelCase do override substituem chaves snake_case do default

Decisões arquiteturais:
    - A configuração é declarativa e baseada em arquivos
    - Defaults representam a base canônica do sistema
    - Configuração local atua apenas como override explícito

Limites explícitos:
    - Não valida hashing de configuração
    - Não valida integração com engine ou pipeline
"""

import json
import pytest
from pathlib import Path

try:
    from capsuleflow.core.config.loader import load_config
    from capsuleflow.core.config.errors import (
        DefaultsNotFoundError,
        InvalidConfigRootTypeError,
        UnsupportedConfigFormatError,
    )
except Exception as e:  # noqa: BLE001
    load_config = None
    DefaultsNotFoundError = None
    InvalidConfigRootTypeError = None
    UnsupportedConfigFormatError = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    """Falha explícita quando o loader ou suas exceções tipadas não existem."""
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing loader/errors modules. Implement:\n"
            "- src/capsuleflow/core/config/loader.py (load_config)\n"
            "- src/capsuleflow/core/config/errors.py (typed exceptions)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def test_missing_defaults_raises(tmp_path: Path):
    """
    Verifica que o loader exige o arquivo de defaults.

    Invariantes:
        - A ausência do arquivo defaults levanta `DefaultsNotFoundError`
        - Nenhuma configuração parcial é retornada
    """
    _require_imports()
    missing = tmp_path / "defaults.yaml"
    with pytest.raises(DefaultsNotFoundError):
        load_config(defaults_path=str(missing), local_path=None)


def test_missing_local_is_ok(tmp_path: Path, defaults_yaml):
    _require_imports()
    defaults = tmp_path / "defaults.yaml"
    defaults.write_text(defaults_yaml, encoding="utf-8")

    out = load_config(defaults_path=str(defaults), local_path=str(tmp_path / "local.yaml"))
    assert out["pipeline"]["batch_size"] == 100
    assert out["writer"]["path"] == "out/records.jsonl"


def test_load_defaults_and_camel_case_local(tmp_path: Path, defaults_yaml, local_yaml):
    """
    Verifica o merge de defaults com um override local em camelCase.

    Decisões arquiteturais:
        - Chaves são normalizadas para snake_case antes do merge
        - Overrides locais têm precedência sobre defaults

    Invariantes:
        - Chaves não sobrescritas permanecem inalteradas
        - Não existem chaves camelCase na configuração final
    """
    _require_imports()
    defaults = tmp_path / "defaults.yaml"
    local = tmp_path / "local.yaml"
    defaults.write_text(defaults_yaml, encoding="utf-8")
    local.write_text(local_yaml, encoding="utf-8")

    out = load_config(defaults_path=str(defaults), local_path=str(local))
    assert out["pipeline"]["batch_size"] == 2
    assert out["pipeline"]["worker_pool_size"] == 4
    assert out["pipeline"]["on_capsule_error"] == "skip"
    assert "batchSize" not in out["pipeline"]


def test_json_defaults_are_supported(tmp_path: Path):
    _require_imports()
    defaults = tmp_path / "defaults.json"
    defaults.write_text(json.dumps({"pipeline": {"onFieldConflict": "abort"}}), encoding="utf-8")

    out = load_config(defaults_path=defaults)
    assert out == {"pipeline": {"on_field_conflict": "abort"}}


def test_empty_yaml_is_empty_config(tmp_path: Path):
    _require_imports()
    defaults = tmp_path / "defaults.yml"
    defaults.write_text("", encoding="utf-8")
    assert load_config(defaults_path=defaults) == {}


def test_invalid_root_type_raises(tmp_path: Path):
    _require_imports()
    defaults = tmp_path / "defaults.yaml"
    defaults.write_text("- just\n- a\n- list\n", encoding="utf-8")
    with pytest.raises(InvalidConfigRootTypeError):
        load_config(defaults_path=str(defaults), local_path=None)


def test_unsupported_extension_raises(tmp_path: Path):
    _require_imports()
    defaults = tmp_path / "defaults.toml"
    defaults.write_text("pipeline = { batch_size = 10 }\n", encoding="utf-8")
    with pytest.raises(UnsupportedConfigFormatError):
        load_config(defaults_path=str(defaults), local_path=None)
