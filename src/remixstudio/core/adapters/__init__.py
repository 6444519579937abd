"""Generation backend implementations.

Importing this package registers every backend with ``backend_registry``.
"""

from .gemini_image import GeminiImageBackend

__all__ = ["GeminiImageBackend"]
