"""
Utility modules for the moderation service.
"""

from .config import Config

__all__ = ["Config"]
