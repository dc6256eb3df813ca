"""Execution engine: orchestration, scheduling, streaming and admission control."""
