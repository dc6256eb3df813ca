"""Processor node handlers: transforms and external calls."""
