"""
orderflow/__init__.py

Flask application factory for Order Flow (print-shop order management).

Requirements:
- JSON API only; every error leaves as {"status": "error", "message": ..., "code": ...}.
- SQLite for dev, any SQLAlchemy database in production (Flask-Migrate wired).
- The client is never trusted; server-side access control is enforced in routes and services.

Wiring:
- Extensions (db, migrate, login_manager, csrf, cache)
- Order cache subscribed to the change feed, local object store for uploads
- Viewer read-only guard (before_request)
- Error handlers, rotating file log outside debug/testing
- Blueprints, CLI commands
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

import click
from flask import Flask, jsonify
from flask_login import current_user

from .cache import order_cache
from .errors import OrderFlowError
from .extensions import cache, csrf, db, login_manager, migrate
from .models import User
from .security import viewer_readonly_guard
from .storage import object_store

# Importing registers the session listeners that feed the change feed
from . import realtime  # noqa: F401


def _error(message: str, code: str, status: int):
    return jsonify({"status": "error", "message": message, "code": code}), status


def _configure_logging(app: Flask) -> None:
    """Rotating file log for app.logger and the orderflow package loggers (not in debug/testing)."""
    if app.debug or app.testing:
        return

    log_dir = app.config.get("LOG_DIR", "logs")
    if not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(os.path.join(log_dir, "orderflow.log"), maxBytes=102400, backupCount=10)
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    file_handler.setLevel(logging.INFO)

    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)

    package_logger = logging.getLogger(__name__)
    package_logger.addHandler(file_handler)
    package_logger.setLevel(logging.INFO)


def create_app(config_object="config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    cache.init_app(app)

    order_cache.init_app(app)
    object_store.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            user = db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None
        return user if user is not None and user.is_active else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return _error("Authentication required", "UNAUTHORIZED", 401)

    _configure_logging(app)

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: Viewer read-only guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _viewer_guard_hook():
        """
        Viewer read-only enforcement (POST/PUT/PATCH/DELETE blocked).

        This is a safety net. Each route must still enforce its own permissions.
        """
        result = viewer_readonly_guard()
        if result is not None:
            return result
        return None

    # ----------------------------------------------------------------------
    # Errors
    # ----------------------------------------------------------------------
    @app.errorhandler(OrderFlowError)
    def _handle_domain_error(exc: OrderFlowError):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(401)
    def _handle_401(exc):
        return _error("Authentication required", "UNAUTHORIZED", 401)

    @app.errorhandler(403)
    def _handle_403(exc):
        return _error("You do not have permission to perform this action", "FORBIDDEN", 403)

    @app.errorhandler(404)
    def _handle_404(exc):
        return _error("Not found", "NOT_FOUND", 404)

    @app.errorhandler(413)
    def _handle_413(exc):
        return _error("Uploaded file is too large", "PAYLOAD_TOO_LARGE", 413)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.hr import hr_bp
    from .blueprints.imports import imports_bp
    from .blueprints.notifications import notifications_bp
    from .blueprints.orders import orders_bp
    from .blueprints.settings import settings_bp
    from .blueprints.users import users_bp
    from .blueprints.workflow import workflow_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(hr_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-defaults")
    def seed_defaults_command():
        """Seed default leave types and the production substage catalogue."""
        from .seed import seed_defaults

        added = seed_defaults()
        click.echo(f"Defaults seeded ({added['leave_types']} leave types, {added['settings']} settings).")

    @app.cli.command("create-admin")
    @click.option("--username", prompt=True)
    @click.option("--full-name", default="Administrator", show_default=True)
    @click.password_option()
    def create_admin_command(username, full_name, password):
        """Create the first admin user."""
        from .constants import Role

        if User.query.filter_by(username=username).first():
            raise click.ClickException(f"User {username} already exists.")
        user = User(username=username, full_name=full_name, role=Role.ADMIN, is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created admin: {username}")

    @app.cli.command("backfill-departments")
    def backfill_departments_command():
        """Align assigned_department with current_stage on legacy rows."""
        from .services.workflow import backfill_departments

        fixed = backfill_departments()
        click.echo(f"{fixed} item(s) repaired.")

    @app.cli.command("refresh-priorities")
    def refresh_priorities_command():
        """Re-snapshot item priorities and send urgent alerts for new escalations."""
        from .services.workflow import refresh_priorities

        notified = refresh_priorities()
        click.echo(f"{notified} escalation(s) notified.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Service banner; tells an API client whether it is logged in."""
        return jsonify(
            {
                "status": "success",
                "app": app.config.get("APP_NAME", "Order Flow"),
                "authenticated": bool(current_user.is_authenticated),
            }
        )

    return app
