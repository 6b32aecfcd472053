"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .gateway_factory import FakeGateway
from .provider_factory import GatedProvider, RaisingProvider

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
USER_API_KEY = "sk-user-key"

__all__ = [
    "OTHER_USER_ID",
    "USER_API_KEY",
    "USER_ID",
    "FakeGateway",
    "GatedProvider",
    "RaisingProvider",
]
