"""Atrium content build-and-render pipeline.

This package is the core of a content-management backend. It discovers
reusable content modules, resolves database-backed content references in page
documents, renders resolved pages through Jinja2 templates, and rebuilds the
compiled client-asset cache at process start.

Collaborators (cache store, content repository, templating environment) are
constructed explicitly and injected, never held as process-wide singletons.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
