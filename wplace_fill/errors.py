# wplace_fill/errors.py
"""
Exception types shared by the tiler, analyzer, client and scheduler.

ConfigurationError is fatal to the operation that raised it and is never
retried. The network errors are always retried by the scheduler loop.
"""

from __future__ import annotations


class FillError(Exception):
    """Base class for all wplace_fill errors."""


class ConfigurationError(FillError):
    """Structurally bad input: missing template data, malformed coordinates or keys."""


class TransientNetworkError(FillError):
    """Fetch or submit failure that the next cycle may not see again."""


class RateLimitedError(TransientNetworkError):
    """The server answered a placement with HTTP 429."""


class ResourceNotReadyError(FillError):
    """The placement surface was not available within its wait budget."""


__all__ = [
    "FillError",
    "ConfigurationError",
    "TransientNetworkError",
    "RateLimitedError",
    "ResourceNotReadyError",
]
