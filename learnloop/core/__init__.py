"""Core configuration, errors, logging and security for the LearnLoop backend."""

from .config import Settings, get_settings
from .exceptions import (
    LearnLoopError,
    MalformedAIOutputError,
    NotFoundError,
    ProviderError,
    ProviderUnavailableError,
    ValidationError,
)
from .security import create_access_token, verify_access_token

__all__ = [
    "Settings",
    "get_settings",
    "LearnLoopError",
    "MalformedAIOutputError",
    "NotFoundError",
    "ProviderError",
    "ProviderUnavailableError",
    "ValidationError",
    "create_access_token",
    "verify_access_token",
]
