"""
Core module for application configuration and utilities.

Note: auth and security modules are not imported at package level to avoid
circular imports with examhall.models. Import them directly:
from examhall.core.auth import ... or from examhall.core.security import ...
"""
from .config import settings

__all__ = ["settings"]
