"""Editing sessions over closed payroll periods.

A closed period is reopened through a :class:`PeriodEditSession`.  Starting a
session snapshots the period, the session then stores the pending diff, and
applying it re-liquidates the affected payroll rows in a single transaction.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any, Mapping

from flask import current_app
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from nomina.audit import log_audit
from nomina.edit_changes import ChangeAction, EditingChanges, InvalidChangesPayload
from nomina.extensions import db
from nomina.models import (
    EditSessionStatus,
    Employee,
    EmployeeStatus,
    Payroll,
    PayrollNovedad,
    PayrollPeriod,
    PayrollStatus,
    PeriodEditSession,
    PeriodEditSnapshot,
    PeriodStatus,
    now_utc,
)
from nomina.payroll_periods import (
    apply_base_change,
    apply_novedad_delta,
    new_payroll_row,
    novedad_to_dict,
    payroll_to_dict,
    period_novedades,
    period_payrolls,
    period_to_dict,
    recompute_period_totals,
)


class PeriodEditError(Exception):
    def __init__(self, message: str, status_code: int = 400, errors: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "errors": self.errors}


def session_to_dict(edit_session: PeriodEditSession) -> dict[str, Any]:
    return {
        "id": str(edit_session.id),
        "company_id": str(edit_session.company_id),
        "period_id": str(edit_session.period_id),
        "user_id": str(edit_session.user_id) if edit_session.user_id else None,
        "status": edit_session.status.value,
        "started_at": edit_session.created_at.isoformat() if edit_session.created_at else None,
        "last_activity_at": edit_session.last_activity_at.isoformat() if edit_session.last_activity_at else None,
        "completed_at": edit_session.completed_at.isoformat() if edit_session.completed_at else None,
        "error_message": edit_session.error_message,
        "changes": edit_session.changes or {},
    }


def expire_abandoned_sessions(ttl_minutes: int | None = None, *, company_id: uuid.UUID | None = None) -> int:
    """Expire active sessions idle for longer than the TTL. Returns how many."""
    if ttl_minutes is None:
        ttl_minutes = current_app.config["EDIT_SESSION_TTL_MINUTES"]
    cutoff = now_utc() - timedelta(minutes=ttl_minutes)

    stmt = (
        update(PeriodEditSession)
        .where(
            PeriodEditSession.status == EditSessionStatus.ACTIVE,
            PeriodEditSession.last_activity_at < cutoff,
        )
        .values(status=EditSessionStatus.EXPIRED, completed_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if company_id is not None:
        stmt = stmt.where(PeriodEditSession.company_id == company_id)
    expired = db.session.execute(stmt).rowcount or 0
    if expired:
        current_app.logger.info("Expired %s abandoned period edit sessions.", expired)
    return expired


def get_active_session(company_id: uuid.UUID, period_id: uuid.UUID) -> PeriodEditSession | None:
    stmt = select(PeriodEditSession).where(
        PeriodEditSession.company_id == company_id,
        PeriodEditSession.period_id == period_id,
        PeriodEditSession.status == EditSessionStatus.ACTIVE,
    )
    return db.session.execute(stmt).scalar_one_or_none()


def _load_period(company_id: uuid.UUID, period_id: uuid.UUID, *, for_update: bool = False) -> PayrollPeriod:
    stmt = select(PayrollPeriod).where(PayrollPeriod.id == period_id, PayrollPeriod.company_id == company_id)
    if for_update:
        stmt = stmt.with_for_update()
    period = db.session.execute(stmt).scalar_one_or_none()
    if period is None:
        raise PeriodEditError("Período no encontrado", 404)
    return period


def _load_owned_session(company_id: uuid.UUID, session_id: uuid.UUID, user_id: uuid.UUID) -> PeriodEditSession:
    stmt = (
        select(PeriodEditSession)
        .where(PeriodEditSession.id == session_id, PeriodEditSession.company_id == company_id)
        .with_for_update()
    )
    edit_session = db.session.execute(stmt).scalar_one_or_none()
    if edit_session is None:
        raise PeriodEditError("Sesión de edición no encontrada", 404)
    if edit_session.user_id != user_id:
        raise PeriodEditError("La sesión de edición pertenece a otro usuario", 403)
    return edit_session


def _parse_changes(payload: Mapping[str, Any] | None) -> EditingChanges:
    try:
        return EditingChanges.from_payload(payload)
    except InvalidChangesPayload as exc:
        raise PeriodEditError("Cambios inválidos", 422, exc.errors) from exc


def build_snapshot(period: PayrollPeriod) -> dict[str, Any]:
    return {
        "period": period_to_dict(period),
        "payrolls": [payroll_to_dict(payroll) for payroll in period_payrolls(period.id)],
        "novedades": [novedad_to_dict(novedad) for novedad in period_novedades(period.id)],
        "taken_at": now_utc().isoformat(),
    }


def start_editing_session(company_id: uuid.UUID, period_id: uuid.UUID, user_id: uuid.UUID) -> PeriodEditSession:
    """Open an editing session for a closed period.

    A user that already holds the active session gets it back, so a retried
    start does not fail.
    """
    expire_abandoned_sessions(company_id=company_id)
    period = _load_period(company_id, period_id, for_update=True)
    if period.estado != PeriodStatus.CERRADO:
        db.session.rollback()
        raise PeriodEditError("Solo se pueden editar períodos cerrados", 409)

    existing = get_active_session(company_id, period_id)
    if existing is not None:
        if existing.user_id != user_id:
            db.session.rollback()
            raise PeriodEditError("El período ya está siendo editado por otro usuario", 409)
        existing.last_activity_at = now_utc()
        db.session.commit()
        return existing

    edit_session = PeriodEditSession(
        company_id=company_id,
        period_id=period.id,
        user_id=user_id,
        status=EditSessionStatus.ACTIVE,
        changes=EditingChanges().to_payload(),
    )
    db.session.add(edit_session)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise PeriodEditError("El período ya está siendo editado por otro usuario", 409) from exc

    db.session.add(
        PeriodEditSnapshot(
            company_id=company_id,
            period_id=period.id,
            session_id=edit_session.id,
            user_id=user_id,
            snapshot_data=build_snapshot(period),
        )
    )
    log_audit(
        action="PERIOD_EDIT_STARTED",
        entity_type="payroll_periods_real",
        entity_id=period.id,
        payload={"session_id": str(edit_session.id), "periodo": period.periodo},
        company_id=company_id,
        actor_user_id=user_id,
    )
    db.session.commit()
    current_app.logger.info("Period edit session %s started for period %s.", edit_session.id, period.id)
    return edit_session


def save_session_changes(
    company_id: uuid.UUID,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    payload: Mapping[str, Any] | None,
) -> PeriodEditSession:
    edit_session = _load_owned_session(company_id, session_id, user_id)
    if edit_session.status != EditSessionStatus.ACTIVE:
        db.session.rollback()
        raise PeriodEditError("La sesión de edición no está activa", 409)

    changes = _parse_changes(payload)
    edit_session.changes = changes.to_payload()
    edit_session.last_activity_at = now_utc()
    db.session.commit()
    return edit_session


def validate_business_rules(period: PayrollPeriod, changes: EditingChanges) -> list[str]:
    """Check a diff against the stored period. Returns every violation found."""
    errors: list[str] = []
    payrolls = {payroll.employee_id: payroll for payroll in period_payrolls(period.id)}
    composition = set(payrolls)

    for employee_id in changes.employees_removed:
        payroll = payrolls.get(employee_id)
        if payroll is None:
            errors.append(f"El empleado {employee_id} no está en el período")
        elif payroll.estado == PayrollStatus.PAGADA:
            errors.append("No se puede eliminar empleado con pagos procesados")
        else:
            composition.discard(employee_id)

    for employee_id in changes.employees_added:
        employee = db.session.get(Employee, employee_id)
        if employee is None or employee.company_id != period.company_id:
            errors.append(f"Empleado {employee_id} no encontrado")
        elif employee.estado != EmployeeStatus.ACTIVO:
            errors.append(f"El empleado {employee.full_name} está inactivo")
        elif employee_id in payrolls:
            errors.append(f"El empleado {employee.full_name} ya está en el período")
        else:
            composition.add(employee_id)

    existing = {novedad.id: novedad for novedad in period_novedades(period.id)}
    for novedad in changes.novedades_added:
        if novedad.id in existing or db.session.get(PayrollNovedad, novedad.id) is not None:
            errors.append(f"La novedad {novedad.id} ya existe")
        if novedad.employee_id is None:
            errors.append(f"La novedad {novedad.id} no tiene empleado asignado")
        elif novedad.employee_id not in composition:
            errors.append(f"La novedad {novedad.id} no corresponde a un empleado del período")
        if not novedad.valor:
            errors.append("La novedad debe tener un valor definido")

    for novedad in changes.novedades_modified:
        if novedad.id not in existing:
            errors.append(f"La novedad {novedad.id} no existe en el período")
        elif novedad.employee_id is None:
            errors.append(f"La novedad {novedad.id} no tiene empleado asignado")
        elif novedad.employee_id not in composition:
            errors.append(f"La novedad {novedad.id} no corresponde a un empleado del período")
        if not novedad.valor:
            errors.append("La novedad debe tener un valor definido")

    for novedad_id in changes.novedades_deleted:
        if novedad_id not in existing:
            errors.append(f"La novedad {novedad_id} no existe en el período")

    for employee_id in changes.payroll_data:
        if employee_id not in composition:
            errors.append(f"Los datos de nómina del empleado {employee_id} no corresponden al período")

    return errors


def _apply_to_period(period: PayrollPeriod, changes: EditingChanges, user_id: uuid.UUID) -> set[uuid.UUID]:
    """Write the diff to the period and return the ids of the affected employees."""
    payrolls: dict[uuid.UUID, Payroll] = {payroll.employee_id: payroll for payroll in period_payrolls(period.id)}
    novedades = {novedad.id: novedad for novedad in period_novedades(period.id)}
    affected = changes.affected_employee_ids()
    # Modified novelties stay even when their previous owner leaves the period.
    moved = {novedad.id for novedad in changes.novedades_modified}

    for employee_id in changes.employees_removed:
        db.session.delete(payrolls.pop(employee_id))
        owned = [item for item in novedades.values() if item.empleado_id == employee_id and item.id not in moved]
        for novedad in owned:
            db.session.delete(novedades.pop(novedad.id))

    for employee_id in changes.employees_added:
        payroll = new_payroll_row(period, db.session.get(Employee, employee_id))
        db.session.add(payroll)
        payrolls[employee_id] = payroll

    for change in changes.novedad_changes():
        if change.action is ChangeAction.ADD:
            data = change.novedad
            db.session.add(
                PayrollNovedad(
                    id=data.id,
                    company_id=period.company_id,
                    periodo_id=period.id,
                    empleado_id=data.employee_id,
                    tipo_novedad=data.tipo_novedad,
                    subtipo=data.subtipo,
                    valor=data.valor,
                    dias=data.dias,
                    horas=data.horas,
                    fecha_inicio=data.fecha_inicio,
                    fecha_fin=data.fecha_fin,
                    observacion=data.observacion,
                    creado_por=user_id,
                )
            )
            apply_novedad_delta(payrolls[data.employee_id], data.tipo_novedad, data.valor)
        elif change.action is ChangeAction.MODIFY:
            data = change.novedad
            current = novedades[data.id]
            affected.add(current.empleado_id)
            previous_payroll = payrolls.get(current.empleado_id)
            if previous_payroll is not None:
                apply_novedad_delta(previous_payroll, current.tipo_novedad, -Decimal(current.valor))
            current.empleado_id = data.employee_id
            current.tipo_novedad = data.tipo_novedad
            current.subtipo = data.subtipo
            current.valor = data.valor
            current.dias = data.dias
            current.horas = data.horas
            current.fecha_inicio = data.fecha_inicio
            current.fecha_fin = data.fecha_fin
            current.observacion = data.observacion
            apply_novedad_delta(payrolls[data.employee_id], data.tipo_novedad, data.valor)
        else:
            # Novelties of a removed employee are already gone.
            current = novedades.pop(change.novedad_id, None)
            if current is None:
                continue
            affected.add(current.empleado_id)
            payroll = payrolls.get(current.empleado_id)
            if payroll is not None:
                apply_novedad_delta(payroll, current.tipo_novedad, -Decimal(current.valor))
            db.session.delete(current)

    for employee_id, fields in changes.payroll_data.items():
        apply_base_change(
            payrolls[employee_id],
            salario_base=fields.get("salario_base"),
            dias_trabajados=fields.get("dias_trabajados"),
        )

    recompute_period_totals(period)
    period.last_activity_at = now_utc()
    return affected


def _record_failure(session_id: uuid.UUID, message: str) -> None:
    edit_session = db.session.get(PeriodEditSession, session_id)
    if edit_session is None:
        return
    edit_session.status = EditSessionStatus.ACTIVE
    edit_session.error_message = message
    edit_session.last_activity_at = now_utc()
    db.session.commit()


def _totals(period: PayrollPeriod) -> dict[str, Any]:
    return {
        "empleados_count": period.empleados_count,
        "total_devengado": str(period.total_devengado),
        "total_deducciones": str(period.total_deducciones),
        "total_neto": str(period.total_neto),
    }


def apply_changes(
    company_id: uuid.UUID,
    session_id: uuid.UUID,
    user_id: uuid.UUID,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Validate and apply a session's diff to its period.

    When ``payload`` is given it replaces the diff stored on the session.
    Applying an already completed session succeeds again without changes.
    """
    edit_session = _load_owned_session(company_id, session_id, user_id)
    if edit_session.status == EditSessionStatus.COMPLETED:
        period = _load_period(company_id, edit_session.period_id)
        summary = {
            "already_applied": True,
            "session": session_to_dict(edit_session),
            "employees_affected": 0,
            "changes_applied": 0,
            "totals": _totals(period),
        }
        db.session.rollback()
        return summary
    if edit_session.status != EditSessionStatus.ACTIVE:
        db.session.rollback()
        raise PeriodEditError("La sesión de edición ya no está activa", 409)

    try:
        changes = _parse_changes(payload if payload is not None else edit_session.changes)
    except PeriodEditError as exc:
        edit_session.error_message = "; ".join(exc.errors)
        edit_session.last_activity_at = now_utc()
        db.session.commit()
        raise

    period = _load_period(company_id, edit_session.period_id, for_update=True)
    errors = validate_business_rules(period, changes)
    if period.estado != PeriodStatus.CERRADO:
        errors.insert(0, "Solo se pueden editar períodos cerrados")
    if errors:
        edit_session.changes = changes.to_payload()
        edit_session.error_message = "; ".join(errors)
        edit_session.last_activity_at = now_utc()
        db.session.commit()
        raise PeriodEditError("Los cambios no cumplen las reglas de negocio", 422, errors)

    session_uuid = edit_session.id
    try:
        edit_session.status = EditSessionStatus.SAVING
        edit_session.changes = changes.to_payload()
        db.session.flush()

        affected = _apply_to_period(period, changes, user_id)

        edit_session.status = EditSessionStatus.COMPLETED
        edit_session.completed_at = now_utc()
        edit_session.last_activity_at = now_utc()
        edit_session.error_message = None
        db.session.execute(delete(PeriodEditSnapshot).where(PeriodEditSnapshot.session_id == session_uuid))

        summary = {
            "already_applied": False,
            "session": session_to_dict(edit_session),
            "employees_affected": len(affected),
            "changes_applied": changes.total_changes_count(),
            "totals": _totals(period),
        }
        log_audit(
            action="PERIOD_EDIT_APPLIED",
            entity_type="payroll_periods_real",
            entity_id=period.id,
            payload={
                "session_id": str(session_uuid),
                "employees_affected": summary["employees_affected"],
                "changes_applied": summary["changes_applied"],
                "changes": edit_session.changes,
            },
            company_id=company_id,
            actor_user_id=user_id,
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Applying period edit session %s failed.", session_uuid, exc_info=True)
        message = "No se pudieron aplicar los cambios del período"
        _record_failure(session_uuid, message)
        raise PeriodEditError(message, 500) from exc

    current_app.logger.info(
        "Period edit session %s applied %s changes to period %s.",
        session_uuid,
        summary["changes_applied"],
        period.id,
    )
    return summary


def discard_changes(company_id: uuid.UUID, session_id: uuid.UUID, user_id: uuid.UUID) -> PeriodEditSession:
    edit_session = _load_owned_session(company_id, session_id, user_id)
    if edit_session.status == EditSessionStatus.CANCELLED:
        db.session.rollback()
        return edit_session
    if edit_session.status in {EditSessionStatus.COMPLETED, EditSessionStatus.EXPIRED}:
        db.session.rollback()
        raise PeriodEditError("La sesión de edición ya no está activa", 409)

    edit_session.status = EditSessionStatus.CANCELLED
    edit_session.completed_at = now_utc()
    edit_session.last_activity_at = now_utc()
    db.session.execute(delete(PeriodEditSnapshot).where(PeriodEditSnapshot.session_id == edit_session.id))
    log_audit(
        action="PERIOD_EDIT_DISCARDED",
        entity_type="payroll_periods_real",
        entity_id=edit_session.period_id,
        payload={"session_id": str(edit_session.id)},
        company_id=company_id,
        actor_user_id=user_id,
    )
    db.session.commit()
    return edit_session
