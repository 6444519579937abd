"""Remix Studio - template-driven AI image remixing."""

__version__ = "0.1.0"

from remixstudio.core.config import RemixConfig, config

__all__ = [
    "RemixConfig",
    "config",
]
