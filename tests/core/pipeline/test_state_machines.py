# tests/core/pipeline/test_state_machines.py
"""Testes das máquinas de estado de stage e de pipeline."""

import pytest

try:
    from capsuleflow.core.exceptions import InvalidStateTransition
    from capsuleflow.core.pipeline.types import PipelineStatus, StageKind, StageResult, StageStatus, StateMachine
except Exception as e:  # noqa: BLE001
    StateMachine = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(f"Missing pipeline types. Import error: {_IMPORT_ERR}")


def test_stage_happy_path():
    _require_imports()
    m = StateMachine.for_stage("s")
    m.transition(StageStatus.RUNNING)
    m.transition(StageStatus.COMPLETED)
    assert m.history == [StageStatus.PENDING, StageStatus.RUNNING, StageStatus.COMPLETED]
    assert m.terminal


def test_stage_cannot_skip_running():
    _require_imports()
    m = StateMachine.for_stage("s")
    with pytest.raises(InvalidStateTransition) as info:
        m.transition(StageStatus.COMPLETED)
    assert info.value.details["from"] == "pending"


def test_pipeline_terminal_states_are_final():
    _require_imports()
    m = StateMachine.for_pipeline()
    m.transition(PipelineStatus.RUNNING)
    m.transition(PipelineStatus.ABORTED)
    with pytest.raises(InvalidStateTransition):
        m.transition(PipelineStatus.RUNNING)


def test_stage_result_to_dict_is_serializable():
    _require_imports()
    child = StageResult(stage="c", kind=StageKind.BAG, status=StageStatus.COMPLETED, batch_index=0, summary="")
    result = StageResult(
        stage="p",
        kind=StageKind.SUBPIPE,
        status=StageStatus.COMPLETED,
        batch_index=0,
        summary="ok",
        children=[child],
    )
    d = result.to_dict()
    assert d["kind"] == "subpipe"
    assert d["children"][0]["kind"] == "bag"
