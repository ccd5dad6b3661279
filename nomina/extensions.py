"""Flask extension instances and the PostgreSQL row-level-security hook."""

from __future__ import annotations

import uuid

from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from sqlalchemy import event
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session as OrmSession


db = SQLAlchemy()
login_manager = LoginManager()
csrf = CSRFProtect()

# Company id bound for authenticated requests without a selected company.
# It matches no row, so company-scoped tables read as empty.
NO_COMPANY_UUID = "00000000-0000-0000-0000-000000000000"

_rls_listener_registered = False


@login_manager.unauthorized_handler
def handle_unauthorized():
    return {"error": "Autenticación requerida.", "errors": []}, 401


def _safe_uuid(value: object) -> str | None:
    if value is None:
        return None
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        return None


def clear_rls_context() -> None:
    db.session.info.pop("company_id", None)
    db.session.info.pop("actor_user_id", None)


def bind_rls_context(*, actor_user_id: object | None = None, company_id: object | None = None) -> None:
    """Record the actor and company the next transaction runs as."""
    clear_rls_context()
    actor = _safe_uuid(actor_user_id)
    if actor is not None:
        db.session.info["actor_user_id"] = actor
        db.session.info["company_id"] = NO_COMPANY_UUID
    company = _safe_uuid(company_id)
    if company is not None:
        db.session.info["company_id"] = company


def init_rls_session_listener() -> None:
    """Issue ``SET LOCAL app.company_id`` / ``app.actor_user_id`` when a transaction begins."""
    global _rls_listener_registered
    if _rls_listener_registered:
        return

    @event.listens_for(OrmSession, "after_begin")
    def set_rls_context(session: OrmSession, _transaction: object, connection: Connection) -> None:
        if connection.dialect.name != "postgresql":
            return

        settings = {
            "app.company_id": _safe_uuid(session.info.get("company_id")),
            "app.actor_user_id": _safe_uuid(session.info.get("actor_user_id")),
        }
        for name, value in settings.items():
            if value:
                connection.exec_driver_sql(f"SET LOCAL {name} = '{value}'")

    _rls_listener_registered = True


@login_manager.user_loader
def load_user(user_id: str):
    from nomina.models import User

    parsed = _safe_uuid(user_id)
    if parsed is None:
        return None
    return db.session.get(User, uuid.UUID(parsed))
