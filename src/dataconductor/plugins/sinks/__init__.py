"""Destination node handlers."""
