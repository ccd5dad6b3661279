"""Employee records."""

from __future__ import annotations

from uuid import UUID

from flask import Blueprint, abort, current_app, request
from flask_login import login_required
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from nomina.audit import log_audit
from nomina.authorization import manage_employees_required, view_periods_required
from nomina.company import company_required, require_active_company_id
from nomina.extensions import db
from nomina.forms import EmployeeForm, form_errors
from nomina.models import Employee, EmployeeStatus


bp = Blueprint("employees", __name__)


def employee_to_dict(employee: Employee) -> dict:
    return {
        "id": str(employee.id),
        "cedula": employee.cedula,
        "nombre": employee.nombre,
        "apellido": employee.apellido,
        "full_name": employee.full_name,
        "cargo": employee.cargo,
        "email": employee.email,
        "salario_base": str(employee.salario_base),
        "fecha_ingreso": employee.fecha_ingreso.isoformat(),
        "estado": employee.estado.value,
    }


def _fill_employee(employee: Employee, form: EmployeeForm) -> None:
    employee.cedula = form.cedula.data
    employee.nombre = form.nombre.data
    employee.apellido = form.apellido.data
    employee.cargo = form.cargo.data or None
    employee.email = form.email.data.lower() if form.email.data else None
    employee.salario_base = form.salario_base.data
    employee.fecha_ingreso = form.fecha_ingreso.data
    employee.estado = EmployeeStatus(form.estado.data)


def _audit_employee(action: str, employee: Employee) -> None:
    log_audit(
        action=action,
        entity_type="employees",
        entity_id=employee.id,
        payload={"cedula": employee.cedula, "nombre": employee.full_name, "estado": employee.estado.value},
    )


@bp.get("/api/employees")
@login_required
@company_required
@view_periods_required
def employees_list():
    company_id = require_active_company_id()
    stmt = select(Employee).where(Employee.company_id == company_id)
    estado = request.args.get("estado")
    if estado:
        try:
            stmt = stmt.where(Employee.estado == EmployeeStatus(estado))
        except ValueError:
            abort(400, description="Estado de empleado inválido.")
    employees = db.session.execute(stmt.order_by(Employee.apellido.asc(), Employee.nombre.asc())).scalars().all()
    return {"employees": [employee_to_dict(employee) for employee in employees]}, 200


@bp.post("/api/employees")
@login_required
@company_required
@manage_employees_required
def employees_create():
    form = EmployeeForm()
    if not form.validate_on_submit():
        return {"error": "Datos de empleado inválidos.", "errors": form_errors(form)}, 400

    employee = Employee(company_id=require_active_company_id())
    _fill_employee(employee, form)
    try:
        db.session.add(employee)
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Employee save rejected by constraints.", exc_info=True)
        return {"error": "Ya existe un empleado con esa cédula.", "errors": []}, 409

    _audit_employee("EMPLOYEE_CREATED", employee)
    db.session.commit()
    return {"employee": employee_to_dict(employee)}, 201


@bp.put("/api/employees/<uuid:employee_id>")
@login_required
@company_required
@manage_employees_required
def employees_update(employee_id: UUID):
    company_id = require_active_company_id()
    employee = db.session.execute(
        select(Employee).where(Employee.id == employee_id, Employee.company_id == company_id)
    ).scalar_one_or_none()
    if employee is None:
        abort(404, description="Empleado no encontrado.")

    form = EmployeeForm()
    if not form.validate_on_submit():
        return {"error": "Datos de empleado inválidos.", "errors": form_errors(form)}, 400

    _fill_employee(employee, form)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Employee save rejected by constraints.", exc_info=True)
        return {"error": "Ya existe un empleado con esa cédula.", "errors": []}, 409

    _audit_employee("EMPLOYEE_UPDATED", employee)
    db.session.commit()
    return {"employee": employee_to_dict(employee)}, 200
