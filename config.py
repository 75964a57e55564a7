"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
commission defaults and logging. It uses environment variables for sensitive information and defaults for development.
In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'solarportal.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection (JSON clients send the token in the X-CSRFToken header)
    WTF_CSRF_ENABLED = True

    # Platform commission applied at signing when no admin override is stored
    COMMISSION_RATE = Decimal(os.environ.get("COMMISSION_RATE", "0.10"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    APP_NAME = "SolarPortal"


class TestingConfig(Config):
    """In-memory database, no CSRF. Used by the test suite."""

    TESTING = True
    SECRET_KEY = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "DEBUG"
