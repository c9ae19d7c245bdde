from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised when a session or optimizer is configured with an unsupported option."""
