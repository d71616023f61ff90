# src/capsuleflow/core/traceability/__init__.py
"""
Rastreabilidade do capsuleflow: Manifest e Event Log por run.
"""

from .manifest import (
    Manifest,
    add_event,
    batch_started,
    batch_written,
    create_manifest,
    load_manifest,
    run_finished,
    run_started,
    save_manifest,
    stage_failed,
    stage_finished,
    stage_started,
)

__all__ = [
    "Manifest",
    "add_event",
    "batch_started",
    "batch_written",
    "create_manifest",
    "load_manifest",
    "run_finished",
    "run_started",
    "save_manifest",
    "stage_failed",
    "stage_finished",
    "stage_started",
]
