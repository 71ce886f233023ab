"""Configuration package."""

from brs.config.settings import Settings

__all__ = ["Settings"]
