"""Validation and serialization helpers for the trigger engine."""
