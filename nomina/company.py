"""Active company helpers."""

from __future__ import annotations

import functools
import uuid
from typing import Callable

from flask import abort, g, session
from flask_login import current_user
from sqlalchemy import select

from nomina.extensions import db
from nomina.models import Membership


def get_active_company_id() -> uuid.UUID | None:
    company_id = session.get("active_company_id")
    if not company_id:
        return None
    try:
        return uuid.UUID(str(company_id))
    except ValueError:
        session.pop("active_company_id", None)
        return None


def require_active_company_id() -> uuid.UUID:
    company_id = get_active_company_id()
    if company_id is None:
        abort(400, description="No hay una empresa activa seleccionada.")
    return company_id


def company_required(view: Callable):
    @functools.wraps(view)
    def wrapped(*args, **kwargs):
        if not g.get("company_id"):
            abort(403, description="Empresa no seleccionada.")
        return view(*args, **kwargs)

    return wrapped


def current_user_id() -> uuid.UUID | None:
    if not current_user.is_authenticated:
        return None
    try:
        return uuid.UUID(current_user.get_id())
    except ValueError:
        return None


def current_membership() -> Membership | None:
    user_id = current_user_id()
    if user_id is None:
        return None

    company_id = get_active_company_id()
    if company_id is None:
        return None

    stmt = select(Membership).where(
        Membership.user_id == user_id,
        Membership.company_id == company_id,
    )
    return db.session.execute(stmt).scalar_one_or_none()
