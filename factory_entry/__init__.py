"""Factory data entry app package."""
from __future__ import annotations

from .config import Settings, get_settings

__all__ = ["create_app", "Settings", "get_settings"]


def create_app(*args, **kwargs):
    from .app import create_app as _create_app

    return _create_app(*args, **kwargs)
