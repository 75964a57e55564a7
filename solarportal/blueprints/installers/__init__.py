"""
solarportal/blueprints/installers/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import installers_bp  # noqa: F401
