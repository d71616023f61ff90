# src/capsuleflow/core/__init__.py
"""
Core do capsuleflow.

Componentes principais:
    - record       → Output Record, cápsula, store e lote (CapsuleStream)
    - pipeline     → Step, Subpipe, Bag, RunContext e registry de stages
    - engine       → PipelineBuilder e execução lote a lote (Pipeline)
    - config       → carregamento, merge, hashing e PipelineSettings
    - traceability → Manifest e Event Log do run

Princípios fundamentais:
    - Nenhuma decisão silenciosa: falhas são tipadas e serializáveis
    - Settings explícitas; nenhum estado global
    - O core não conhece formatos de registro (isso é dos adapters)
"""
