"""
Utility modules for the scheduling engine.

This package contains shared helpers used across the application: datetime
handling, half-open interval arithmetic, recurrence date generation and the
per-provider lock registry.
"""
