"""General routes."""

from __future__ import annotations

from flask import Blueprint, session, url_for
from flask_login import current_user


bp = Blueprint("main", __name__)


@bp.get("/")
def index():
    if not current_user.is_authenticated:
        return {"authenticated": False, "next": url_for("auth.login")}, 200
    if not session.get("active_company_id"):
        return {"authenticated": True, "next": url_for("auth.select_company")}, 200
    return {"authenticated": True, "next": url_for("periods.periods_list")}, 200


@bp.get("/health")
def health():
    return {"status": "ok"}, 200
