"""
E2E: catálogo CSV → JSON Lines.

Valida o fluxo completo com APIs públicas:
- config defaults + local (YAML, camelCase aceito)
- CsvReader em blocos de `batch_size`
- bag paralelo de extração + subpipe dependente com memoização de lote
- cápsula inválida isolada (CapsuleError) sem abortar o run
- JsonlWriter + Manifest persistido e recarregado
"""

from __future__ import annotations

import json
from pathlib import Path

from capsuleflow import CapsuleError, PipelineBuilder, RunContext, load_config
from capsuleflow.core.config.settings import PipelineSettings
from capsuleflow.core.traceability.manifest import load_manifest, save_manifest
from capsuleflow.io import CsvReader, JsonlWriter, field_id


FIXTURES = Path(__file__).parents[1] / "fixtures"


def _title(capsule):
    title = capsule.input_record["title"]
    if not title or not str(title).strip():
        raise CapsuleError(message="registro sem título", details={"isbn": capsule.id})
    capsule.set("title", str(title).strip())


def _authors(capsule):
    capsule.append("author", capsule.input_record["authors"])


def _subjects(capsule):
    raw = capsule.input_record["subjects"] or ""
    capsule.append("subject", [s for s in raw.split("|") if s])


def _sort_title(capsule):
    title = capsule.first("title")
    for article in ("The ", "A "):
        if title.startswith(article):
            title = title[len(article):]
    capsule.set("sort_title", title.lower())


def _classics_in_batch(stream):
    return sum(1 for c in stream.each() if "classic" in c.get("subject"))


def _batch_classics(capsule):
    capsule.set("batch_classics", capsule.batch.memoize("classics", _classics_in_batch))


def test_catalog_csv_to_jsonl(tmp_path: Path) -> None:
    config = load_config(
        defaults_path=FIXTURES / "config" / "pipeline.defaults.yaml",
        local_path=FIXTURES / "config" / "pipeline.local.yaml",
    )
    settings = PipelineSettings.from_config(config)
    assert settings.batch_size == 2
    assert settings.worker_pool_size == 2

    pipeline = (
        PipelineBuilder(settings)
        .add_bag("extract", _title, _authors, _subjects)
        .add_subpipe("derive", _sort_title, _batch_classics)
        .build()
    )
    reader = CsvReader(
        FIXTURES / "data" / "catalog.csv",
        settings,
        id_column="isbn",
        read_csv_kwargs={"dtype": str},
    )
    out = tmp_path / "out" / "catalog.jsonl"
    writer = JsonlWriter(out, settings)
    ctx = RunContext.new(settings=settings, meta={"source": "catalog.csv"})

    result = pipeline.run(reader, writer, ctx=ctx)

    assert result.ok
    assert result.batches == 3
    assert result.written == 4
    assert result.skipped == ["9780000000000"]

    lines = [json.loads(line) for line in out.read_text(encoding="utf-8").splitlines()]
    assert [doc["_id"] for doc in lines] == [
        "9780441013593",
        "9780141439518",
        "9780679783275",
        "9780451524935",
    ]
    assert lines[0] == {
        "_id": "9780441013593",
        "title": ["Dune"],
        "author": ["Frank Herbert"],
        "subject": ["sf", "ecology"],
        "sort_title": ["dune"],
        "batch_classics": [1],
    }
    assert lines[2]["batch_classics"] == [1]
    assert lines[3]["batch_classics"] == [1]

    manifest_path = tmp_path / "manifest.json"
    save_manifest(result.manifest, manifest_path)
    loaded = load_manifest(manifest_path)
    assert loaded.run["status"] == "completed"
    assert loaded.batches["1"]["skipped"] == ["9780000000000"]
    assert loaded.inputs["settings_hash"] == settings.fingerprint()
