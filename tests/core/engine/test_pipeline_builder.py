# tests/core/engine/test_pipeline_builder.py
"""
Testes do PipelineBuilder.

Os testes asseguram que:
- stages são registrados na ordem declarada
- `build()` entrega um Pipeline imutável e congela o builder
- pipelines vazios e nomes duplicados são rejeitados

Invariantes:
    - Nenhuma alteração é aceita após `build()`
    - Settings explícitas acompanham o Pipeline construído
"""

import pytest

try:
    from capsuleflow.core.config.settings import PipelineSettings
    from capsuleflow.core.engine.builder import PipelineBuilder
    from capsuleflow.core.engine.pipeline import Pipeline
    from capsuleflow.core.exceptions import EngineConfigurationError, PipelineFrozenError
    from capsuleflow.core.pipeline.registry import DuplicateStageNameError
    from capsuleflow.core.pipeline.subpipe import Subpipe
except Exception as e:  # noqa: BLE001
    PipelineBuilder = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing engine builder. Implement:\n"
            "- src/capsuleflow/core/engine/builder.py (PipelineBuilder)\n"
            "- src/capsuleflow/core/engine/pipeline.py (Pipeline, RunResult)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def test_build_preserves_declaration_order(DummyStep):
    _require_imports()
    settings = PipelineSettings(batch_size=10)
    pipeline = (
        PipelineBuilder(settings)
        .add_subpipe("normalize", DummyStep(name="a"))
        .add_bag("enrich", DummyStep(name="b", field="b"), DummyStep(name="c", field="c"))
        .add_stage(Subpipe("finish", [DummyStep(name="d")]))
        .build()
    )
    assert isinstance(pipeline, Pipeline)
    assert pipeline.stage_names == ["normalize", "enrich", "finish"]
    assert pipeline.settings is settings
    assert isinstance(pipeline.stages, tuple)


def test_builder_is_frozen_after_build(DummyStep):
    _require_imports()
    builder = PipelineBuilder().add_subpipe("only", DummyStep())
    builder.build()
    assert builder.frozen
    with pytest.raises(PipelineFrozenError):
        builder.add_bag("late", DummyStep())
    with pytest.raises(PipelineFrozenError):
        builder.build()


def test_frozen_error_is_configuration_error(DummyStep):
    _require_imports()
    builder = PipelineBuilder().add_subpipe("only", DummyStep())
    builder.build()
    with pytest.raises(EngineConfigurationError):
        builder.add_subpipe("again", DummyStep())


def test_empty_pipeline_is_rejected():
    _require_imports()
    with pytest.raises(EngineConfigurationError):
        PipelineBuilder().build()


def test_empty_stage_is_rejected():
    _require_imports()
    with pytest.raises(EngineConfigurationError):
        PipelineBuilder().add_bag("nothing")


def test_duplicate_stage_name_is_rejected(DummyStep):
    _require_imports()
    builder = PipelineBuilder().add_subpipe("dup", DummyStep())
    with pytest.raises(DuplicateStageNameError):
        builder.add_bag("dup", DummyStep())


def test_non_callable_step_is_rejected():
    _require_imports()
    with pytest.raises(EngineConfigurationError) as info:
        PipelineBuilder().add_subpipe("s", 42)
    assert info.value.details["received"] == "int"


def test_non_stage_is_rejected():
    _require_imports()
    with pytest.raises(EngineConfigurationError):
        PipelineBuilder().add_stage(lambda c: c)


def test_from_config():
    _require_imports()
    builder = PipelineBuilder.from_config({"pipeline": {"batchSize": 3, "onFieldConflict": "abort"}})
    assert builder.settings == PipelineSettings(batch_size=3, on_field_conflict="abort")
