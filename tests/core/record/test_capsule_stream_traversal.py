# tests/core/record/test_capsule_stream_traversal.py
"""
Testes de travessia do CapsuleStream.

Os testes asseguram que:
- `each()` é reiniciável e independente entre chamadas
- o iterador compartilhado avança e é reiniciado por `rewind()`
- cápsulas com erro são omitidas por padrão
- `replace` preserva a posição no lote
- `retire` libera cápsulas e invalida o cache de lote
"""

import pytest

try:
    from capsuleflow.core.exceptions import EngineConfigurationError, StreamRetiredError
    from capsuleflow.core.record.capsule import Capsule
    from capsuleflow.core.record.stream import CapsuleStream
except Exception as e:  # noqa: BLE001
    Capsule = None
    CapsuleStream = None
    StreamRetiredError = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(f"Missing CapsuleStream. Import error: {_IMPORT_ERR}")


def _ids(capsules):
    return [c.id for c in capsules]


def test_each_is_restartable(make_stream):
    _require_imports()
    stream = make_stream([{"id": 1}, {"id": 2}, {"id": 3}])
    assert _ids(stream.each()) == [1, 2, 3]
    assert _ids(stream.each()) == [1, 2, 3]


def test_concurrent_traversals_are_independent(make_stream):
    _require_imports()
    stream = make_stream([{"id": 1}, {"id": 2}])
    first, second = stream.each(), stream.each()
    assert next(first).id == 1
    assert next(second).id == 1
    assert next(first).id == 2


def test_shared_cursor_and_rewind(make_stream):
    _require_imports()
    stream = make_stream([{"id": 1}, {"id": 2}])
    assert _ids(stream) == [1, 2]
    assert _ids(stream) == []
    assert _ids(stream.rewind()) == [1, 2]


def test_errored_capsules_are_skipped(make_stream):
    _require_imports()
    stream = make_stream([{"id": 1}, {"id": 2}, {"id": 3}])
    stream.capsules[1].mark_errored({"message": "bad"})
    assert _ids(stream.each()) == [1, 3]
    assert _ids(stream.each(include_errored=True)) == [1, 2, 3]
    assert _ids(stream.errored()) == [2]
    assert stream.active_count() == 2
    assert len(stream) == 3


def test_capsules_point_back_to_their_batch(make_stream):
    _require_imports()
    stream = make_stream([{"id": 1}], batch_index=4)
    assert stream.capsules[0].batch is stream
    assert stream.batch_index == 4


def test_replace_keeps_position(make_stream):
    _require_imports()
    stream = make_stream([{"id": 1}, {"id": 2}])
    new = Capsule({"id": 9}, id_fn=lambda r: r["id"])
    stream.replace(stream.capsules[0], new)
    assert _ids(stream.each()) == [9, 2]
    assert new.batch is stream
    with pytest.raises(EngineConfigurationError):
        stream.replace(Capsule({"id": 0}), new)


def test_retire_releases_everything(make_stream):
    _require_imports()
    stream = make_stream([{"id": 1}])
    capsule = stream.capsules[0]
    capsule.set("a", 1)
    stream.memoize("k", lambda s: 42)

    stream.retire()
    stream.retire()

    assert stream.retired
    assert len(stream) == 0
    assert capsule.to_document() == {}
    assert not stream.batch_cache.has("k")
    with pytest.raises(StreamRetiredError):
        stream.memoize("k", lambda s: 1)
