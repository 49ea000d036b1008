"""
Specflow
Flask Application Factory.

Usage:
    from specflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import json
import logging
import os

import click
from flask import Flask
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from specflow.config import config
from specflow.core.exceptions import WorkflowError
from specflow.middleware.logging_config import configure_logging
from specflow.models import db
from specflow.services.cache_service import init_cache
from specflow.utils.errors import error_payload

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _ensure_sqlite_dir(uri: str | None):
    if uri and uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]), exist_ok=True)


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
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    _ensure_sqlite_dir(app.config.get("SQLALCHEMY_DATABASE_URI"))
    db.init_app(app)
    init_cache(app)

    # Model registration for create_all
    from specflow.models import ai as _ai_models              # noqa: F401
    from specflow.models import audit as _audit_models        # noqa: F401
    from specflow.models import document as _document_models  # noqa: F401
    from specflow.models import project as _project_models    # noqa: F401
    from specflow.models import workflow as _workflow_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()

    # ── Error rendering for callers embedding the engine in a Flask app ──
    @app.errorhandler(WorkflowError)
    def workflow_error(exc):
        body, status = error_payload(exc)
        return body, status

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-spec-project")
    @click.argument("name")
    @click.argument("owner_id")
    def create_spec_project_cmd(name, owner_id):
        """Create a specification project with its four phase documents."""
        from specflow.services.project_service import create_project
        project = create_project(name, owner_id)
        click.echo(json.dumps(project.to_dict(), indent=2))

    @app.cli.command("validation-rules")
    def validation_rules_cmd():
        """Print the per-phase validation rule table as JSON."""
        from specflow.services.validation_rules import describe_validation_rules
        click.echo(json.dumps(describe_validation_rules(), indent=2))

    return app
