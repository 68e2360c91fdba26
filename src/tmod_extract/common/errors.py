"""Base error definitions for tmod_extract packages."""

from typing import Any, Dict


class TModExtractError(Exception):
    """Base exception for all tmod_extract errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class ConfigurationError(TModExtractError):
    """Configuration is invalid or missing."""
    pass
