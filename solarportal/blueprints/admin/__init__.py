"""
solarportal/blueprints/admin/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import admin_bp  # noqa: F401
