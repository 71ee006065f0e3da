"""Run history storage."""

from .database import Database

__all__ = ["Database"]
