"""
solarportal/blueprints/finance/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import finance_bp  # noqa: F401
