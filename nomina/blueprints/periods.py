"""Payroll period routes and the period-editing API."""

from __future__ import annotations

import re
from uuid import UUID

from flask import Blueprint, abort, current_app, make_response, request
from flask_login import login_required
from sqlalchemy import select

from nomina import period_editing
from nomina.audit import log_audit
from nomina.authorization import (
    close_periods_required,
    edit_periods_required,
    export_payroll_required,
    view_periods_required,
)
from nomina.company import company_required, current_user_id, require_active_company_id
from nomina.extensions import db
from nomina.forms import PeriodExportForm, form_errors
from nomina.models import Employee, Payroll, PayrollPeriod, PeriodStatus
from nomina.payroll_periods import close_period, period_detail, period_to_dict
from nomina.period_editing import PeriodEditError, session_to_dict
from nomina.report_export import EXPORT_FORMATS, payroll_csv_bytes, payroll_json_bytes, payroll_xlsx_bytes


bp = Blueprint("periods", __name__)

EXPORT_HEADERS = [
    "Cédula",
    "Empleado",
    "Cargo",
    "Salario base",
    "Días trabajados",
    "Total devengado",
    "Total deducciones",
    "Neto pagado",
    "Estado",
]


@bp.errorhandler(PeriodEditError)
def handle_period_edit_error(exc: PeriodEditError):
    db.session.rollback()
    return exc.to_dict(), exc.status_code


def _company_period(period_id: UUID) -> PayrollPeriod:
    period = db.session.execute(
        select(PayrollPeriod).where(PayrollPeriod.id == period_id, PayrollPeriod.company_id == require_active_company_id())
    ).scalar_one_or_none()
    if period is None:
        abort(404, description="Período no encontrado.")
    return period


def _request_changes() -> dict | None:
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        abort(400, description="El cuerpo de la solicitud debe ser un objeto JSON.")
    return body.get("changes")


@bp.get("/api/periods")
@login_required
@company_required
@view_periods_required
def periods_list():
    company_id = require_active_company_id()
    stmt = select(PayrollPeriod).where(PayrollPeriod.company_id == company_id)
    estado = request.args.get("estado")
    if estado:
        try:
            stmt = stmt.where(PayrollPeriod.estado == PeriodStatus(estado))
        except ValueError:
            abort(400, description="Estado de período inválido.")
    periods = db.session.execute(stmt.order_by(PayrollPeriod.fecha_inicio.desc())).scalars().all()
    return {"periods": [period_to_dict(period) for period in periods]}, 200


@bp.get("/api/periods/<uuid:period_id>")
@login_required
@company_required
@view_periods_required
def period_show(period_id: UUID):
    return period_detail(_company_period(period_id)), 200


@bp.post("/api/periods/<uuid:period_id>/close")
@login_required
@company_required
@close_periods_required
def period_close(period_id: UUID):
    period = _company_period(period_id)
    if period.estado == PeriodStatus.CERRADO:
        abort(409, description="El período ya está cerrado.")

    close_period(period)
    log_audit(
        action="PERIOD_CLOSED",
        entity_type="payroll_periods_real",
        entity_id=period.id,
        payload={"periodo": period.periodo, "total_neto": str(period.total_neto)},
    )
    db.session.commit()
    return {"period": period_to_dict(period)}, 200


@bp.get("/api/periods/<uuid:period_id>/export")
@login_required
@company_required
@export_payroll_required
def period_export(period_id: UUID):
    period = _company_period(period_id)
    form = PeriodExportForm(request.args)
    if not form.validate():
        return {"error": "Formato de exportación inválido.", "errors": form_errors(form)}, 400

    rows = db.session.execute(
        select(Payroll, Employee)
        .join(Employee, Employee.id == Payroll.employee_id)
        .where(Payroll.period_id == period.id)
        .order_by(Employee.apellido.asc(), Employee.nombre.asc())
    ).all()
    table = [
        [
            employee.cedula,
            employee.full_name,
            employee.cargo,
            payroll.salario_base,
            payroll.dias_trabajados,
            payroll.total_devengado,
            payroll.total_deducciones,
            payroll.neto_pagado,
            payroll.estado.value,
        ]
        for payroll, employee in rows
    ]

    export_format = form.format.data
    if export_format == "json":
        body = payroll_json_bytes(
            {
                "period": period_to_dict(period),
                "rows": [dict(zip(EXPORT_HEADERS, row)) for row in table],
            }
        )
    elif export_format == "xlsx":
        body = payroll_xlsx_bytes(EXPORT_HEADERS, table, sheet_name=f"Nómina {period.periodo}")
    else:
        body = payroll_csv_bytes(EXPORT_HEADERS, table)

    mimetype, extension = EXPORT_FORMATS[export_format]
    slug = re.sub(r"[^a-z0-9]+", "_", period.periodo.lower()).strip("_") or str(period.id)
    response = make_response(body)
    response.headers["Content-Type"] = mimetype
    response.headers["Content-Disposition"] = f'attachment; filename="nomina_{slug}.{extension}"'
    current_app.logger.info("Exported period %s as %s (%s rows).", period.id, export_format, len(table))
    return response


@bp.get("/api/periods/<uuid:period_id>/edit-session")
@login_required
@company_required
@view_periods_required
def edit_session_show(period_id: UUID):
    period = _company_period(period_id)
    edit_session = period_editing.get_active_session(period.company_id, period.id)
    return {"session": session_to_dict(edit_session) if edit_session else None}, 200


@bp.post("/api/periods/<uuid:period_id>/edit-session")
@login_required
@company_required
@edit_periods_required
def edit_session_start(period_id: UUID):
    edit_session = period_editing.start_editing_session(require_active_company_id(), period_id, current_user_id())
    return {"session": session_to_dict(edit_session)}, 200


@bp.put("/api/edit-sessions/<uuid:session_id>/changes")
@login_required
@company_required
@edit_periods_required
def edit_session_save(session_id: UUID):
    edit_session = period_editing.save_session_changes(
        require_active_company_id(),
        session_id,
        current_user_id(),
        _request_changes(),
    )
    return {"session": session_to_dict(edit_session)}, 200


@bp.post("/api/edit-sessions/<uuid:session_id>/apply")
@login_required
@company_required
@edit_periods_required
def edit_session_apply(session_id: UUID):
    summary = period_editing.apply_changes(
        require_active_company_id(),
        session_id,
        current_user_id(),
        _request_changes(),
    )
    return summary, 200


@bp.post("/api/edit-sessions/<uuid:session_id>/discard")
@login_required
@company_required
@edit_periods_required
def edit_session_discard(session_id: UUID):
    edit_session = period_editing.discard_changes(require_active_company_id(), session_id, current_user_id())
    return {"session": session_to_dict(edit_session)}, 200
