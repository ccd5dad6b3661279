"""Payroll figures for periods and their payroll rows.

The amounts here are the approximation the back office uses while a period
is edited: the base accrual is the monthly salary prorated over 30 days and
deductions are estimated at 8% of it.  The legal liquidation runs elsewhere.
"""

from __future__ import annotations

import uuid
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select

from nomina.extensions import db
from nomina.models import (
    Employee,
    Payroll,
    PayrollNovedad,
    PayrollPeriod,
    PayrollStatus,
    PeriodStatus,
    PeriodType,
)
from nomina.novedades import NovedadType, is_deduction

CENT = Decimal("0.01")
DAYS_PER_MONTH = 30
APPROXIMATE_DEDUCTION_RATE = Decimal("0.08")
FIXED_WORKED_DAYS = {PeriodType.QUINCENAL: 15, PeriodType.SEMANAL: 7}


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_worked_days(period: PayrollPeriod) -> int:
    fixed_days = FIXED_WORKED_DAYS.get(period.tipo_periodo)
    if fixed_days is not None:
        return fixed_days
    span = (period.fecha_fin - period.fecha_inicio).days + 1
    return max(1, min(DAYS_PER_MONTH, span))


def base_accrual(salario_base: Decimal, dias_trabajados: int) -> Decimal:
    return _money(Decimal(salario_base) / DAYS_PER_MONTH * dias_trabajados)


def approximate_deductions(devengado: Decimal) -> Decimal:
    return _money(Decimal(devengado) * APPROXIMATE_DEDUCTION_RATE)


def _refresh_net(payroll: Payroll) -> None:
    payroll.neto_pagado = _money(Decimal(payroll.total_devengado) - Decimal(payroll.total_deducciones))


def new_payroll_row(period: PayrollPeriod, employee: Employee) -> Payroll:
    dias = calculate_worked_days(period)
    devengado = base_accrual(employee.salario_base, dias)
    deducciones = approximate_deductions(devengado)
    return Payroll(
        company_id=period.company_id,
        employee_id=employee.id,
        period_id=period.id,
        periodo=period.periodo,
        salario_base=employee.salario_base,
        dias_trabajados=dias,
        total_devengado=devengado,
        total_deducciones=deducciones,
        neto_pagado=_money(devengado - deducciones),
        estado=PayrollStatus.PROCESADA,
    )


def apply_novedad_delta(payroll: Payroll, tipo_novedad: NovedadType | str, delta: Decimal) -> None:
    """Shift a payroll row by the signed value of a novelty change."""
    if not delta:
        return
    if is_deduction(tipo_novedad):
        payroll.total_deducciones = _money(Decimal(payroll.total_deducciones) + delta)
    else:
        payroll.total_devengado = _money(Decimal(payroll.total_devengado) + delta)
    _refresh_net(payroll)


def apply_base_change(payroll: Payroll, *, salario_base: Decimal | None = None, dias_trabajados: int | None = None) -> None:
    old_base = base_accrual(payroll.salario_base, payroll.dias_trabajados)
    if salario_base is not None:
        payroll.salario_base = _money(Decimal(salario_base))
    if dias_trabajados is not None:
        payroll.dias_trabajados = dias_trabajados
    new_base = base_accrual(payroll.salario_base, payroll.dias_trabajados)

    payroll.total_devengado = _money(Decimal(payroll.total_devengado) + new_base - old_base)
    payroll.total_deducciones = _money(
        Decimal(payroll.total_deducciones) + approximate_deductions(new_base) - approximate_deductions(old_base)
    )
    _refresh_net(payroll)


def recompute_payroll_row(payroll: Payroll, novedades: list[PayrollNovedad]) -> None:
    devengado = base_accrual(payroll.salario_base, payroll.dias_trabajados)
    deducciones = approximate_deductions(devengado)
    for novedad in novedades:
        if novedad.is_deduction:
            deducciones += Decimal(novedad.valor)
        else:
            devengado += Decimal(novedad.valor)
    payroll.total_devengado = _money(devengado)
    payroll.total_deducciones = _money(deducciones)
    _refresh_net(payroll)


def period_payrolls(period_id: uuid.UUID) -> list[Payroll]:
    stmt = select(Payroll).where(Payroll.period_id == period_id).order_by(Payroll.created_at.asc(), Payroll.id.asc())
    return list(db.session.execute(stmt).scalars().all())


def period_novedades(period_id: uuid.UUID) -> list[PayrollNovedad]:
    stmt = (
        select(PayrollNovedad)
        .where(PayrollNovedad.periodo_id == period_id)
        .order_by(PayrollNovedad.created_at.asc(), PayrollNovedad.id.asc())
    )
    return list(db.session.execute(stmt).scalars().all())


def recompute_period_totals(period: PayrollPeriod) -> None:
    db.session.flush()
    count, devengado, deducciones, neto = db.session.execute(
        select(
            func.count(Payroll.id),
            func.coalesce(func.sum(Payroll.total_devengado), 0),
            func.coalesce(func.sum(Payroll.total_deducciones), 0),
            func.coalesce(func.sum(Payroll.neto_pagado), 0),
        ).where(Payroll.period_id == period.id)
    ).one()
    period.empleados_count = int(count)
    period.total_devengado = _money(Decimal(str(devengado)))
    period.total_deducciones = _money(Decimal(str(deducciones)))
    period.total_neto = _money(Decimal(str(neto)))


def close_period(period: PayrollPeriod) -> None:
    """Liquidate a draft period and mark it closed.

    Draft payroll rows are recomputed from their base and novelties and move
    to ``procesada``; rows already processed or paid keep their figures.
    """
    novedades_by_employee: dict[uuid.UUID, list[PayrollNovedad]] = {}
    for novedad in period_novedades(period.id):
        novedades_by_employee.setdefault(novedad.empleado_id, []).append(novedad)

    for payroll in period_payrolls(period.id):
        if payroll.estado != PayrollStatus.BORRADOR:
            continue
        recompute_payroll_row(payroll, novedades_by_employee.get(payroll.employee_id, []))
        payroll.estado = PayrollStatus.PROCESADA

    recompute_period_totals(period)
    period.estado = PeriodStatus.CERRADO


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _amount(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def period_to_dict(period: PayrollPeriod) -> dict:
    return {
        "id": str(period.id),
        "company_id": str(period.company_id),
        "periodo": period.periodo,
        "tipo_periodo": period.tipo_periodo.value,
        "fecha_inicio": _iso(period.fecha_inicio),
        "fecha_fin": _iso(period.fecha_fin),
        "estado": period.estado.value,
        "empleados_count": period.empleados_count,
        "total_devengado": _amount(period.total_devengado),
        "total_deducciones": _amount(period.total_deducciones),
        "total_neto": _amount(period.total_neto),
        "last_activity_at": _iso(period.last_activity_at),
    }


def payroll_to_dict(payroll: Payroll) -> dict:
    return {
        "id": str(payroll.id),
        "employee_id": str(payroll.employee_id),
        "period_id": str(payroll.period_id),
        "periodo": payroll.periodo,
        "salario_base": _amount(payroll.salario_base),
        "dias_trabajados": payroll.dias_trabajados,
        "total_devengado": _amount(payroll.total_devengado),
        "total_deducciones": _amount(payroll.total_deducciones),
        "neto_pagado": _amount(payroll.neto_pagado),
        "estado": payroll.estado.value,
    }


def novedad_to_dict(novedad: PayrollNovedad) -> dict:
    return {
        "id": str(novedad.id),
        "employee_id": str(novedad.empleado_id),
        "tipo_novedad": novedad.tipo_novedad.value,
        "subtipo": novedad.subtipo,
        "valor": _amount(novedad.valor),
        "dias": novedad.dias,
        "horas": _amount(novedad.horas),
        "fecha_inicio": _iso(novedad.fecha_inicio),
        "fecha_fin": _iso(novedad.fecha_fin),
        "observacion": novedad.observacion,
    }


def period_detail(period: PayrollPeriod) -> dict:
    return {
        "period": period_to_dict(period),
        "payrolls": [payroll_to_dict(payroll) for payroll in period_payrolls(period.id)],
        "novedades": [novedad_to_dict(novedad) for novedad in period_novedades(period.id)],
    }
