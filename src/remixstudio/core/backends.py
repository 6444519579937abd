"""Base classes and registry for generation backends.

A generation backend is the remote service that turns a template plus one or
two user images into remixed output images.  Each backend implements the same
small interface so the remix session never depends on which service is
configured.

Backend Contract
----------------
``generate(template, primary, secondary=None)`` returns the generated images
in the order the service produced them.  Every failure is raised as
:class:`BackendError` carrying a message that is shown to the user verbatim,
including the case where the service answered but produced no usable image
(empty or blocked output).

Usage Example
-------------
    >>> from remixstudio.core.backends import backend_registry
    >>> from remixstudio.core.config import config
    >>>
    >>> backend_registry.list_available()
    ['gemini']
    >>> backend = backend_registry.instantiate("gemini", config)
    >>> images = backend.generate(template, primary, secondary)

Registering a custom backend:

    >>> class StubBackend(GenerationBackendBase):
    ...     name = "stub"
    ...     def generate(self, template, primary, secondary=None):
    ...         return [primary]
    >>> backend_registry.register(StubBackend)

See Also
--------
- GeminiImageBackend: Gemini image model implementation
- RemixConfig: Backend selection and credentials
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from .config import RemixConfig
from .models import ImageAsset, Template

logger = logging.getLogger(__name__)

EMPTY_RESULT_MESSAGE = "No images generated (empty response or blocked)"
MISSING_API_KEY_MESSAGE = "Server misconfiguration: missing API key"


class BackendError(Exception):
    """Generation failed at the transport or service level.

    The message is intended to be displayed directly to the user.
    """

    pass


class BackendConfigurationError(BackendError):
    """The backend cannot run because the server is misconfigured."""

    pass


class GenerationBackendBase(ABC):
    """Abstract base class for generation backends.

    Attributes
    ----------
    name : str
        Registry name of the backend (e.g. "gemini")
    description : str
        Brief description of the backend
    config : RemixConfig
        Configuration object containing credentials and model names
    """

    name: str = "base"
    description: str = "Base class for generation backends"

    def __init__(self, config: RemixConfig) -> None:
        self.config = config
        logger.info(f"Initialized {self.name} backend")

    @abstractmethod
    def generate(
        self,
        template: Template,
        primary: ImageAsset,
        secondary: ImageAsset | None = None,
    ) -> list[ImageAsset]:
        """Generate remixed images.

        Args:
            template: Template supplying the prompt and aspect ratio.
            primary: The required main image.
            secondary: The optional second image (e.g. a garment).

        Returns:
            Non-empty list of generated images, in backend order.

        Raises:
            BackendError: On any transport or service failure, or when the
                service returned no usable image.
        """
        pass

    def get_info(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description}


class BackendRegistry:
    """Registry for managing available generation backends."""

    def __init__(self) -> None:
        self._backends: dict[str, type[GenerationBackendBase]] = {}

    def register(self, backend_class: type[GenerationBackendBase]) -> None:
        """Register a backend class under its ``name``.

        Registering a name twice replaces the earlier class.
        """
        backend_name = backend_class.name

        if backend_name in self._backends:
            logger.warning(f"Generation backend '{backend_name}' is already registered, overwriting")

        self._backends[backend_name] = backend_class
        logger.info(f"Registered generation backend: {backend_name}")

    def instantiate(self, backend_name: str, config: RemixConfig) -> GenerationBackendBase:
        """Create an instance of a registered backend.

        Raises:
            KeyError: If ``backend_name`` is not registered.
        """
        if backend_name not in self._backends:
            available = ", ".join(self.list_available())
            raise KeyError(
                f"Generation backend '{backend_name}' not found. Available backends: {available}"
            )

        instance = self._backends[backend_name](config=config)
        logger.info(f"Instantiated generation backend: {backend_name}")
        return instance

    def get_backend_class(self, backend_name: str) -> type[GenerationBackendBase] | None:
        return self._backends.get(backend_name)

    def list_available(self) -> list[str]:
        return list(self._backends.keys())


# Global backend registry instance
backend_registry = BackendRegistry()
