"""
QA Release Gate
Flask Application Factory.

Usage:
    from qagate import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_migrate import Migrate

from qagate.config import config
from qagate.middleware.logging_config import configure_logging
from qagate.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)

    # ── Import all models so Alembic can detect them ─────────────────────
    from qagate.models import project as _project_models      # noqa: F401
    from qagate.models import artifact as _artifact_models    # noqa: F401
    from qagate.models import release as _release_models      # noqa: F401
    from qagate.models import execution as _execution_models  # noqa: F401
    from qagate.models import approval as _approval_models    # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from qagate.blueprints.project_bp import project_bp
    from qagate.blueprints.artifact_bp import artifact_bp
    from qagate.blueprints.release_bp import release_bp
    from qagate.blueprints.execution_bp import execution_bp

    app.register_blueprint(project_bp)
    app.register_blueprint(artifact_bp)
    app.register_blueprint(release_bp)
    app.register_blueprint(execution_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("sweep-waivers")
    @click.option("--delete/--no-delete", default=None,
                  help="Delete expired waivers (default: WAIVER_SWEEP_AUTO_DELETE).")
    def sweep_waivers_cmd(delete):
        """Report expired waivers and optionally delete them."""
        from qagate.services.waiver_service import sweep_expired

        auto_delete = app.config["WAIVER_SWEEP_AUTO_DELETE"] if delete is None else delete
        report = sweep_expired(auto_delete=auto_delete)
        click.echo(
            f"{report['expired_count']} expired waiver(s), "
            f"{report['deleted_count']} deleted (checked at {report['checked_at']})"
        )

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "QA Release Gate"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    return app
