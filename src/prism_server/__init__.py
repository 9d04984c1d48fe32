"""Palette server package: turns free text into five-color palettes via an LLM.

The FastAPI application factory lives in ``prism_server/server.py``.

Typical usage
-------------
from prism_server import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --host 127.0.0.1 --port 8000
"""

from __future__ import annotations

__all__ = ["create_app", "__version__", "get_version"]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__


def create_app(*args, **kwargs):
    """Return a configured FastAPI application.

    Forwards to :func:`prism_server.server.create_app`; the import is deferred
    so ``import prism_server`` stays cheap for tooling that only needs metadata.
    """
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
