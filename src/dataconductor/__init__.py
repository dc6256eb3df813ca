"""
DataConductor: DAG pipeline execution with streaming intermediates.

Pipelines are directed graphs of pluggable node handlers. A run walks the
graph breadth-first from its source node, persists every intermediate
result as a file, and leaves an execution record with a full log trail.
"""

__version__ = "0.1.0"
