"""
Persistence helpers for rows written by the attempt lifecycle.
"""
from .attempts import AttemptRepository

__all__ = ["AttemptRepository"]
