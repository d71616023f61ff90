# tests/conftest.py
"""
Fixtures compartilhados para testes do capsuleflow.

Este módulo define fixtures reutilizáveis que fornecem:
- settings mínimas e determinísticas (sequencial e paralela)
- contexto de execução controlado (RunContext)
- Steps dummy para testes estruturais
- reader/writer em memória para testes de engine

Decisões arquiteturais:
    - Fixtures são mantidas simples e explícitas
    - Steps dummy utilizam duck typing em vez de herança
    - Imports do core são realizados de forma lazy para
      melhorar a clareza de erros durante falhas

Invariantes:
    - Nenhuma fixture realiza I/O
    - Nenhuma fixture contém lógica de domínio

Limites explícitos:
    - Não substituir testes de integração
    - Não acoplar testes a readers/writers concretos de arquivo
"""

import pytest
from datetime import datetime, timezone


# =====================================================
# Config
# =====================================================

@pytest.fixture
def defaults_yaml() -> str:
    """
    YAML de configuração padrão (defaults) semelhante ao uso real.

    Representa o conteúdo típico de um `config.defaults.yaml`, base
    canônica sobre a qual overrides locais são aplicados.
    """
    return """\
pipeline:
  batch_size: 100
  worker_pool_size: 1
  on_capsule_error: skip
  on_field_conflict: warn
writer:
  path: out/records.jsonl
"""


@pytest.fixture
def local_yaml() -> str:
    """YAML local com override parcial (camelCase aceito)."""
    return """\
pipeline:
  batchSize: 2
  workerPoolSize: 4
"""


# =====================================================
# Settings / RunContext
# =====================================================

@pytest.fixture
def settings():
    from capsuleflow.core.config.settings import PipelineSettings

    return PipelineSettings(batch_size=2)


@pytest.fixture
def parallel_settings():
    from capsuleflow.core.config.settings import PipelineSettings

    return PipelineSettings(batch_size=4, worker_pool_size=4)


@pytest.fixture
def dummy_ctx(settings):
    """
    RunContext determinístico para testes.

    Decisões arquiteturais:
        - `run_id` e `created_at` fixos para garantir determinismo
        - Settings injetadas explicitamente via fixture

    Invariantes:
        - O timestamp é timezone-aware (UTC)
        - O contexto inicia sem eventos, warnings ou Manifest
    """
    from capsuleflow.core.pipeline.context import RunContext

    return RunContext(
        run_id="run-test-001",
        created_at=datetime(2026, 1, 16, 0, 0, 0, tzinfo=timezone.utc),
        settings=settings,
        meta={"source": "pytest"},
    )


# =====================================================
# Cápsulas e lotes
# =====================================================

@pytest.fixture
def make_stream():
    """
    Factory de lotes: `make_stream([{"id": 1}, ...], batch_index=0)`.

    As cápsulas usam `record["id"]` como identificador.
    """
    from capsuleflow.core.record.capsule import Capsule
    from capsuleflow.core.record.stream import CapsuleStream

    def _make(records, batch_index: int = 0):
        capsules = [Capsule(r, id_fn=lambda rec: rec.get("id")) for r in records]
        return CapsuleStream(capsules, batch_index=batch_index)

    return _make


# =====================================================
# Steps dummy
# =====================================================

@pytest.fixture
def DummyStep():
    """
    Classe de Step mínima e duck-typed.

    `DummyStep(name, field, value)` acrescenta `value` ao campo `field`
    e registra a ordem de observação das cápsulas em `seen`.
    """

    class _DummyStep:
        def __init__(self, name: str = "dummy", field: str = "tag", value="x"):
            self.name = name
            self.field = field
            self.value = value
            self.seen = []

        def run(self, capsule):
            self.seen.append(capsule.id)
            capsule.append(self.field, self.value)
            return capsule

    return _DummyStep


# =====================================================
# Reader / Writer em memória
# =====================================================

@pytest.fixture
def memory_io():
    """
    Par (reader_factory, writer_factory) sem I/O.

    `reader_factory(records, settings)` produz lotes de `settings.batch_size`;
    `writer_factory()` devolve um MemoryWriter com `id_key=None`.
    """
    from capsuleflow.io.readers import IterableReader, field_id
    from capsuleflow.io.writers import MemoryWriter

    def reader_factory(records, settings):
        return IterableReader(records, settings, id_fn=field_id("id"))

    def writer_factory():
        return MemoryWriter()

    return reader_factory, writer_factory
