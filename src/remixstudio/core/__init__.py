"""Core functionality for template-driven image remixing.

- **RemixConfig / config**: Configuration management using Pydantic Settings
- **Catalog**: Stack and template reference data
- **backend_registry**: Registry of generation backends (Gemini, ...)
- **AuthProviderBase**: Auth collaborator capability and its implementations
- **imaging**: Data URL codec and local download re-encoding

Architecture Overview
---------------------
1. **Configuration Layer** (config.py): environment-based settings, REMIX_ prefix.
2. **Reference Data** (catalog.py, data/catalog.json): stacks carry the
   per-category parameters, templates carry prompt and aspect ratio.
3. **Backend Layer** (backends.py, adapters/): one interface, one adapter per
   remote image service, registry for selection at startup.
4. **Auth Layer** (auth.py, supabase_auth.py): five-operation capability,
   implementation selected at startup.
"""

# Import adapters to ensure they're registered
from remixstudio.core.adapters import GeminiImageBackend  # noqa: F401
from remixstudio.core.backends import BackendError, GenerationBackendBase, backend_registry
from remixstudio.core.catalog import Catalog, load_catalog
from remixstudio.core.config import RemixConfig, config

__all__ = [
    "BackendError",
    "Catalog",
    "GenerationBackendBase",
    "RemixConfig",
    "backend_registry",
    "config",
    "load_catalog",
]
