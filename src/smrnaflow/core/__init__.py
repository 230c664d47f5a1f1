"""Core orchestration: sample identity, streams, task graph, scheduling, routing."""
