# src/capsuleflow/core/engine/__init__.py
"""
Engine do capsuleflow: composição (`PipelineBuilder`) e execução lote a
lote (`Pipeline`, `RunResult`).
"""

from .builder import PipelineBuilder
from .pipeline import Pipeline, RunResult

__all__ = ["Pipeline", "PipelineBuilder", "RunResult"]
