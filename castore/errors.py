"""
Error taxonomy for castore.

    CastoreError
    ├── NotFoundError        — hash or path was never registered
    ├── IntegrityError       — stored bytes disagree with the recorded digest
    └── ConfigurationError   — storage directory unusable, malformed sidecar
"""

from __future__ import annotations


class CastoreError(Exception):
    """Base class for castore errors."""


class NotFoundError(CastoreError):
    """The requested content hash or path is unknown."""


class IntegrityError(CastoreError):
    """Recomputed digest does not match the recorded one."""


class ConfigurationError(CastoreError):
    """The store cannot be opened as configured."""
