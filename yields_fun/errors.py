#!/usr/bin/env python3
"""Exception types shared across providers, clients and actions."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class YieldsFunError(Exception):
    """Base class for all plugin errors."""


class ConfigError(YieldsFunError):
    """Raised when required settings are missing or inconsistent."""


class ProviderError(YieldsFunError):
    """Raised when a protocol or market provider cannot produce data."""


class ActionError(YieldsFunError):
    """Raised when an action cannot be carried out."""


class MissingParameterError(YieldsFunError):
    """Raised when a command is missing a required parameter."""

    def __init__(self, message: str, missing: Optional[list] = None):
        super().__init__(message)
        self.missing = missing or []


@dataclass
class FetchError(YieldsFunError):
    """Raised when an HTTP call still fails after every retry."""
    url: str
    attempts: int
    status_code: Optional[int] = None
    reason: str = ''
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self):
        status = f" status={self.status_code}" if self.status_code else ""
        return f"Fetch failed after {self.attempts} attempt(s){status}: {self.url} ({self.reason})"
