"""Core infrastructure: settings, logging, graph model, storage and persistence."""
