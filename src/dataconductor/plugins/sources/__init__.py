"""Source node handlers."""
