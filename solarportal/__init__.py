"""
solarportal/__init__.py

Flask application factory for the SolarPortal marketplace core.

Requirements:
- JSON API only; rendering is left to clients.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev and tests.
- Clients are never trusted; server-side access control is enforced.

Error handling:
- MarketplaceError subclasses (errors.py) become JSON bodies with their status code.
- Other HTTP errors (404 for unknown routes, 405, ...) are JSON as well.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from flask_login import current_user
from werkzeug.exceptions import HTTPException

from .errors import MarketplaceError
from .extensions import csrf, db, login_manager, migrate
from .models import User
from .security import suspended_account_guard


def create_app(config_object: str = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "unauthorized", "message": "login required"}), 401

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: suspended accounts are read-only (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _suspended_guard_hook():
        """
        Blocks POST/PUT/PATCH/DELETE from held or deleted accounts.

        This is a safety net. Each route must still enforce its own permissions.
        """
        result = suspended_account_guard()
        if result is not None:
            return result
        return None

    # ----------------------------------------------------------------------
    # Errors
    # ----------------------------------------------------------------------
    @app.errorhandler(MarketplaceError)
    def _marketplace_error(exc: MarketplaceError):
        app.logger.info("%s: %s", exc.code, exc)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return jsonify({"error": exc.name.lower().replace(" ", "_"), "message": exc.description}), exc.code

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.projects import projects_bp
    from .blueprints.installers import installers_bp
    from .blueprints.finance import finance_bp
    from .blueprints.notifications import notifications_bp
    from .blueprints.admin import admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(installers_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(admin_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-catalog")
    def seed_catalog_command():
        """Seed roof types, equipment catalog and the default commission rate."""
        from .seed import seed_catalog

        seed_catalog()
        click.echo("Catalog and commission rate seeded.")

    @app.cli.command("create-admin")
    @click.option("--email", prompt=True)
    @click.option("--name", prompt=True)
    @click.password_option()
    def create_admin_command(email, name, password):
        """Create an admin account."""
        from .workflow import create_admin

        try:
            user = create_admin({"email": email, "name": name, "password": password})
        except MarketplaceError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Admin {user.email} created (id {user.id}).")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Service info plus the caller's identity."""
        data = {"app": app.config.get("APP_NAME", "SolarPortal"), "authenticated": current_user.is_authenticated}
        if current_user.is_authenticated:
            data["user"] = {"id": current_user.id, "role": current_user.role.value}
        return jsonify(data)

    return app
