"""Exception hierarchy shared across powermem_core."""

from typing import Optional


class PowermemError(Exception):
    """Base exception for all powermem errors."""
    pass


class ValidationError(PowermemError, ValueError):
    """Raised when a request is missing required input (owner id, content, query)."""
    pass


class ConfigurationError(PowermemError):
    """Raised at construction time for unusable configuration.

    Examples are an embedding dimension that conflicts with the stored schema,
    missing credentials, or an unknown provider string.
    """

    def __init__(self, message: str, component: Optional[str] = None):
        super().__init__(message)
        self.component = component
