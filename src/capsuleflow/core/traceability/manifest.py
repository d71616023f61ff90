# src/capsuleflow/core/traceability/manifest.py
"""
Manifest v1 — rastreabilidade forense de runs do capsuleflow.

O Manifest consolida, de forma determinística e auditável:
    - metadados do run (run_id, started_at, versão, status final)
    - hash das settings efetivas
    - estado incremental de cada lote e de cada stage dentro do lote
    - Event Log ordenado de eventos explícitos

Eventos emitidos pelo Pipeline:
    batch_started → stage_started → stage_finished | stage_failed
    → batch_written → ... → run_finished

Princípios fundamentais:
    - Nenhum evento é emitido implicitamente
    - A ordem do Event Log reflete a ordem real de execução
    - O Manifest é serializável e reconstruível (round-trip JSON)

Decisões arquiteturais:
    - UTC é o timezone canônico para todos os timestamps
    - Lotes são indexados pelo índice do lote em string (chave JSON)

Limites explícitos:
    - Não executa pipeline
    - Não registra cápsulas individualmente (apenas contagens e ids com erro)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """Timestamps sem timezone são assumidos como UTC; os demais são convertidos."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start_iso: Optional[str], end: datetime) -> Optional[int]:
    if not start_iso:
        return None
    start = _ensure_tzaware_utc(datetime.fromisoformat(start_iso))
    return max(0, int((_ensure_tzaware_utc(end) - start).total_seconds() * 1000))


@dataclass
class Manifest:
    """
    Registro forense de um run.

    Campos principais:
        - run: metadados da execução
        - inputs: hash das settings efetivas
        - batches: estado por lote (tamanho, stages, escrita)
        - events: Event Log ordenado

    Invariantes:
        - `batches` é sempre um dicionário indexado por índice de lote (str)
        - `events` é sempre uma lista ordenada
        - A estrutura completa é serializável em JSON
    """
    run: Dict[str, Any]
    inputs: Dict[str, Any]
    batches: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return json.loads(json.dumps(
            {
                "run": self.run,
                "inputs": self.inputs,
                "batches": self.batches,
                "events": self.events,
            },
            default=str,
        ))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            batches={k: dict(v) for k, v in (data.get("batches", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )

    def batch(self, batch_index: int) -> Dict[str, Any]:
        return self.batches.setdefault(
            str(batch_index), {"batch_index": batch_index, "stages": {}}
        )


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    version: str,
    settings_hash: str,
    stages: Optional[List[str]] = None,
) -> Manifest:
    """
    Cria o Manifest inicial de um run.

    O Event Log inicia vazio; nenhum evento `run_started` é emitido aqui.
    """
    return Manifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "capsuleflow_version": version,
            "stages": list(stages or []),
            "status": "idle",
        },
        inputs={"settings_hash": settings_hash},
    )


def add_event(
    manifest: Manifest,
    *,
    event_type: str,
    ts: datetime,
    batch_index: Optional[int] = None,
    stage: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """Adiciona exatamente um evento ao Event Log, na ordem de chamada."""
    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if batch_index is not None:
        ev["batch_index"] = batch_index
    if stage is not None:
        ev["stage"] = stage
    if payload is not None:
        ev["payload"] = payload
    manifest.events.append(ev)


def run_started(manifest: Manifest, *, ts: datetime) -> None:
    manifest.run["status"] = "running"
    add_event(manifest, event_type="run_started", ts=ts)


def batch_started(manifest: Manifest, *, batch_index: int, size: int, ts: datetime) -> None:
    b = manifest.batch(batch_index)
    b.update({"size": size, "status": "running", "started_at": _iso(ts)})
    add_event(manifest, event_type="batch_started", ts=ts, batch_index=batch_index, payload={"size": size})


def stage_started(manifest: Manifest, *, batch_index: int, stage: str, kind: str, ts: datetime) -> None:
    b = manifest.batch(batch_index)
    b["stages"][stage] = {
        "stage": stage,
        "kind": kind,
        "status": "running",
        "started_at": _iso(ts),
    }
    add_event(manifest, event_type="stage_started", ts=ts, batch_index=batch_index, stage=stage, payload={"kind": kind})


def stage_finished(
    manifest: Manifest,
    *,
    batch_index: int,
    stage: str,
    ts: datetime,
    result: Dict[str, Any],
) -> None:
    """Registra a conclusão de um stage a partir de `StageResult.to_dict()`."""
    s = manifest.batch(batch_index)["stages"].setdefault(stage, {"stage": stage})
    s.update(
        {
            "status": result.get("status", "completed"),
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(s.get("started_at"), ts),
            "summary": result.get("summary", ""),
            "metrics": dict(result.get("metrics", {}) or {}),
            "warnings": list(result.get("warnings", []) or []),
        }
    )
    add_event(
        manifest,
        event_type="stage_finished",
        ts=ts,
        batch_index=batch_index,
        stage=stage,
        payload={"status": s["status"]},
    )


def stage_failed(
    manifest: Manifest,
    *,
    batch_index: int,
    stage: str,
    ts: datetime,
    error: Dict[str, Any],
) -> None:
    s = manifest.batch(batch_index)["stages"].setdefault(stage, {"stage": stage})
    s.update(
        {
            "status": "failed",
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(s.get("started_at"), ts),
            "error": dict(error),
        }
    )
    manifest.batch(batch_index)["status"] = "failed"
    add_event(
        manifest,
        event_type="stage_failed",
        ts=ts,
        batch_index=batch_index,
        stage=stage,
        payload={"error_type": error.get("type")},
    )


def batch_written(
    manifest: Manifest,
    *,
    batch_index: int,
    ts: datetime,
    written: int,
    skipped: List[Any],
) -> None:
    b = manifest.batch(batch_index)
    b.update(
        {
            "status": "written",
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(b.get("started_at"), ts),
            "written": written,
            "skipped": list(skipped),
        }
    )
    add_event(
        manifest,
        event_type="batch_written",
        ts=ts,
        batch_index=batch_index,
        payload={"written": written, "skipped": len(skipped)},
    )


def run_finished(
    manifest: Manifest,
    *,
    status: str,
    ts: datetime,
    error: Optional[Dict[str, Any]] = None,
) -> None:
    manifest.run.update({"status": status, "finished_at": _iso(ts)})
    if error is not None:
        manifest.run["error"] = dict(error)
    add_event(manifest, event_type="run_finished", ts=ts, payload={"status": status})


def save_manifest(manifest: Manifest, path: Path) -> None:
    """Persiste o Manifest em JSON determinístico (chaves ordenadas, UTF-8)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(manifest.to_dict(), f, ensure_ascii=False, indent=2, sort_keys=True)


def load_manifest(path: Path) -> Manifest:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Manifest não encontrado: {path}")
    with path.open("r", encoding="utf-8") as f:
        return Manifest.from_dict(json.load(f))
