# tests/fixtures/__init__.py
"""Shared helpers for DataConductor tests."""
