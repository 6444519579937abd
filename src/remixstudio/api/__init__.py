"""Remix Studio FastAPI REST API layer.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
session_store
    Process-local registry of remix session controllers.
"""
