# tests/core/record/test_capsule_lifecycle.py
"""
Testes da cápsula: identidade, Output Record, cache, erro, fork e release.

Decisões arquiteturais:
    - A cápsula expõe operações nomeadas; não delega para o registro
    - Forks compartilham identidade, cache e estado de erro com a origem

Invariantes:
    - `input_record` nunca é mutado
    - `id` é calculado uma única vez
    - A primeira marcação de erro prevalece
"""

import pytest

try:
    from capsuleflow.core.record.capsule import Capsule, CapsuleFork
    from capsuleflow.core.record.output_record import OutputRecord
    from capsuleflow.core.record.store import NO_VALUE
except Exception as e:  # noqa: BLE001
    Capsule = None
    CapsuleFork = None
    OutputRecord = None
    NO_VALUE = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing Capsule API. Implement src/capsuleflow/core/record/capsule.py\n"
            f"Import error: {_IMPORT_ERR}"
        )


def test_id_is_memoized():
    _require_imports()
    calls = []

    def id_fn(record):
        calls.append(record)
        return record["id"]

    capsule = Capsule({"id": 7}, id_fn=id_fn)
    assert capsule.id == 7
    assert capsule.id == 7
    assert len(calls) == 1


def test_compute_id_hook_for_variants():
    _require_imports()

    class KeyedCapsule(Capsule):
        def compute_id(self):
            return f"rec:{self.input_record['key']}"

    assert KeyedCapsule({"key": "x"}).id == "rec:x"
    assert Capsule({"key": "x"}).id is None


def test_output_record_factory_receives_input_record():
    _require_imports()
    capsule = Capsule({"id": 1}, output_record_factory=lambda rec: OutputRecord({"source_id": rec["id"]}))
    assert capsule.to_document() == {"source_id": [1]}


def test_record_operations_do_not_touch_input():
    _require_imports()
    record = {"id": 1, "title": "t"}
    capsule = Capsule(record)
    capsule.set("title", record["title"].upper())
    capsule.append("title", "x")
    assert record == {"id": 1, "title": "t"}
    assert capsule.get("title") == ["T", "x"]
    assert capsule.first("title") == "T"


def test_cache_operations():
    _require_imports()
    capsule = Capsule({})
    assert capsule.cache_get("k") is NO_VALUE
    capsule.cache_set("k", 1)
    capsule.cache_append("k", 2)
    assert capsule.cache_get("k") == [1, 2]
    assert capsule.cache_drop("k") == [1, 2]


def test_first_error_wins():
    _require_imports()
    capsule = Capsule({})
    capsule.mark_errored({"type": "CAPSULE_ERROR", "message": "first"})
    capsule.mark_errored({"type": "CAPSULE_ERROR", "message": "second"})
    assert capsule.errored
    assert capsule.error["message"] == "first"


def test_fork_shares_identity_cache_and_error_state():
    _require_imports()
    origin = Capsule({"id": 3}, id_fn=lambda r: r["id"])
    origin.set("title", "A")
    fork = origin.fork()

    assert isinstance(fork, CapsuleFork)
    assert fork.id == 3
    assert fork.get("title") == ["A"]

    fork.cache_set("shared", True)
    assert origin.cache_get("shared") is True

    fork.mark_errored({"message": "boom"})
    assert origin.errored


def test_fork_apply_reconciles_delta():
    """
    Verifica a reconciliação de um fork na cápsula de origem.

    Invariantes:
        - Campos substituídos no fork substituem os da origem
        - Campos acrescidos no fork são concatenados aos da origem
        - Nada muda na origem antes de `apply`
    """
    _require_imports()
    origin = Capsule({})
    origin.set("title", "old")
    origin.set("holdings", "h1")
    fork = origin.fork()
    fork.set("title", "new")
    fork.append("holdings", "h2")

    assert origin.to_document() == {"title": ["old"], "holdings": ["h1"]}
    assert fork.touched_fields() == {"title", "holdings"}

    fork.apply()
    assert origin.to_document() == {"title": ["new"], "holdings": ["h1", "h2"]}


def test_release_clears_output_and_cache():
    _require_imports()
    capsule = Capsule({"id": 1})
    capsule.set("a", 1)
    capsule.cache_set("k", 1)
    capsule.release()
    assert capsule.to_document() == {}
    assert capsule.cache_get("k") is NO_VALUE
    assert capsule.batch is None
