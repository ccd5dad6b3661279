"""Authentication and company selection routes."""

from __future__ import annotations

from flask import Blueprint, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import select

from nomina.extensions import bind_rls_context, db
from nomina.forms import CompanySelectForm, LoginForm, form_errors
from nomina.models import Company, Membership, User
from nomina.security import verify_password


bp = Blueprint("auth", __name__)


def _membership_rows(user_id) -> list[tuple[Membership, Company]]:
    stmt = (
        select(Membership, Company)
        .join(Company, Company.id == Membership.company_id)
        .where(Membership.user_id == user_id)
        .order_by(Company.name.asc())
    )
    return list(db.session.execute(stmt).all())


def _session_payload(user: User) -> dict:
    rows = _membership_rows(user.id)
    return {
        "user": {"id": str(user.id), "email": user.email},
        "active_company_id": session.get("active_company_id"),
        "companies": [
            {"id": str(company.id), "name": company.name, "nit": company.nit, "role": membership.role.value}
            for membership, company in rows
        ],
    }


@bp.get("/csrf-token")
def csrf_token():
    return {"csrf_token": generate_csrf()}, 200


@bp.post("/login")
def login():
    if current_user.is_authenticated:
        return _session_payload(current_user), 200

    form = LoginForm()
    if not form.validate_on_submit():
        return {"error": "Datos de acceso inválidos.", "errors": form_errors(form)}, 400

    user = db.session.execute(select(User).where(User.email == form.email.data.lower())).scalar_one_or_none()
    if user is None or not verify_password(user.password_hash, form.password.data):
        return {"error": "Credenciales inválidas.", "errors": []}, 401
    if not user.is_active:
        return {"error": "El usuario está inactivo.", "errors": []}, 403

    login_user(user, remember=form.remember.data)
    session.pop("active_company_id", None)

    bind_rls_context(actor_user_id=user.id)
    db.session.rollback()
    memberships = db.session.execute(select(Membership).where(Membership.user_id == user.id)).scalars().all()
    if len(memberships) == 1:
        session["active_company_id"] = str(memberships[0].company_id)

    return _session_payload(user), 200


@bp.post("/logout")
@login_required
def logout():
    logout_user()
    session.pop("active_company_id", None)
    return {"status": "ok"}, 200


@bp.route("/select-company", methods=["GET", "POST"])
@login_required
def select_company():
    membership_rows = _membership_rows(current_user.id)
    if request.method == "GET":
        return _session_payload(current_user), 200

    form = CompanySelectForm()
    form.company_id.choices = [(str(membership.company_id), company.name) for membership, company in membership_rows]
    if not form.validate_on_submit():
        # An unknown company fails the SelectField choice check.
        if "company_id" in form.errors and form.company_id.data:
            return {"error": "Empresa no permitida.", "errors": form_errors(form)}, 403
        return {"error": "Selecciona una empresa.", "errors": form_errors(form)}, 400

    session["active_company_id"] = form.company_id.data
    return _session_payload(current_user), 200
