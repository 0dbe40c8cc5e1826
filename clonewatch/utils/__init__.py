"""Shared helpers for CloneWatch."""
