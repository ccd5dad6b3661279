"""Flask application factory."""

from __future__ import annotations

import uuid

from flask import Flask, g, session
from flask_login import current_user
from werkzeug.exceptions import HTTPException

from nomina.blueprints.auth import bp as auth_bp
from nomina.blueprints.employees import bp as employees_bp
from nomina.blueprints.main import bp as main_bp
from nomina.blueprints.periods import bp as periods_bp
from nomina.cli import edit_sessions_cli
from nomina.config import Config
from nomina.extensions import bind_rls_context, clear_rls_context, csrf, db, init_rls_session_listener, login_manager


def create_app(config_object: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=False)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)
    init_rls_session_listener()

    # Ensure model metadata is loaded for migrations and tests.
    from nomina import models as _models  # noqa: F401

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(employees_bp)
    app.register_blueprint(periods_bp)
    app.cli.add_command(edit_sessions_cli)

    @app.before_request
    def load_request_db_context() -> None:
        g.company_id = None
        company_id = session.get("active_company_id")
        if company_id:
            try:
                g.company_id = str(uuid.UUID(str(company_id)))
            except ValueError:
                session.pop("active_company_id", None)

        if current_user.is_authenticated:
            bind_rls_context(actor_user_id=current_user.get_id(), company_id=g.company_id)
            # The user lookup already began a transaction without the RLS settings.
            db.session.rollback()
        else:
            bind_rls_context(company_id=g.company_id)

    @app.errorhandler(HTTPException)
    def render_http_error(exc: HTTPException):
        if exc.code is None or exc.code < 400:
            return exc
        return {"error": exc.description or exc.name, "errors": []}, exc.code

    @app.teardown_request
    def cleanup_session_context(_exc: BaseException | None) -> None:
        clear_rls_context()

    return app
