"""Database models."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from flask_login import UserMixin
from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nomina.extensions import db
from nomina.novedades import DEDUCTION_NOVEDAD_TYPES, NovedadType


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    # Stored by value so rows read like the rest of the payroll data ("cerrado", "pagada").
    return Enum(enum_cls, name=name, values_callable=_enum_values, validate_strings=True)


class MembershipRole(str, enum.Enum):
    ADMINISTRADOR = "administrador"
    RRHH = "rrhh"
    CONTADOR = "contador"
    VISUALIZADOR = "visualizador"
    SOPORTE = "soporte"


class EmployeeStatus(str, enum.Enum):
    ACTIVO = "activo"
    INACTIVO = "inactivo"


class PeriodType(str, enum.Enum):
    MENSUAL = "mensual"
    QUINCENAL = "quincenal"
    SEMANAL = "semanal"


class PeriodStatus(str, enum.Enum):
    BORRADOR = "borrador"
    EN_PROCESO = "en_proceso"
    CERRADO = "cerrado"


class PayrollStatus(str, enum.Enum):
    BORRADOR = "borrador"
    PROCESADA = "procesada"
    PAGADA = "pagada"


class EditSessionStatus(str, enum.Enum):
    ACTIVE = "active"
    SAVING = "saving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Company(db.Model):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    nit: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)

    memberships: Mapped[list["Membership"]] = relationship(back_populates="company")


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)

    memberships: Mapped[list["Membership"]] = relationship(back_populates="user")

    def get_id(self) -> str:
        return str(self.id)


class Membership(db.Model):
    __tablename__ = "memberships"
    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_memberships_company_user"),
        Index("ix_memberships_company_user", "company_id", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[MembershipRole] = mapped_column(_enum_column(MembershipRole, "membership_role"), nullable=False)

    company: Mapped[Company] = relationship(back_populates="memberships")
    user: Mapped[User] = relationship(back_populates="memberships")


class Employee(db.Model):
    __tablename__ = "employees"
    __table_args__ = (
        Index("ix_employees_company_apellido", "company_id", "apellido"),
        UniqueConstraint("company_id", "cedula", name="uq_employees_company_cedula"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    cedula: Mapped[str] = mapped_column(String(32), nullable=False)
    nombre: Mapped[str] = mapped_column(String(128), nullable=False)
    apellido: Mapped[str] = mapped_column(String(128), nullable=False)
    cargo: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    salario_base: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    fecha_ingreso: Mapped[date] = mapped_column(Date, nullable=False)
    estado: Mapped[EmployeeStatus] = mapped_column(
        _enum_column(EmployeeStatus, "employee_status"),
        nullable=False,
        default=EmployeeStatus.ACTIVO,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    @property
    def full_name(self) -> str:
        return f"{self.nombre} {self.apellido}".strip()


class PayrollPeriod(db.Model):
    __tablename__ = "payroll_periods_real"
    __table_args__ = (Index("ix_payroll_periods_company_inicio", "company_id", "fecha_inicio"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    periodo: Mapped[str] = mapped_column(String(128), nullable=False)
    tipo_periodo: Mapped[PeriodType] = mapped_column(
        _enum_column(PeriodType, "period_type"),
        nullable=False,
        default=PeriodType.MENSUAL,
    )
    fecha_inicio: Mapped[date] = mapped_column(Date, nullable=False)
    fecha_fin: Mapped[date] = mapped_column(Date, nullable=False)
    estado: Mapped[PeriodStatus] = mapped_column(
        _enum_column(PeriodStatus, "period_status"),
        nullable=False,
        default=PeriodStatus.BORRADOR,
    )
    empleados_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_devengado: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    total_deducciones: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    total_neto: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Payroll(db.Model):
    __tablename__ = "payrolls"
    __table_args__ = (
        UniqueConstraint("period_id", "employee_id", name="uq_payrolls_period_employee"),
        Index("ix_payrolls_company_period", "company_id", "period_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    employee_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payroll_periods_real.id", ondelete="CASCADE"), nullable=False
    )
    periodo: Mapped[str] = mapped_column(String(128), nullable=False)
    salario_base: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    dias_trabajados: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    total_devengado: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_deducciones: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    neto_pagado: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    estado: Mapped[PayrollStatus] = mapped_column(
        _enum_column(PayrollStatus, "payroll_status"),
        nullable=False,
        default=PayrollStatus.BORRADOR,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)


class PayrollNovedad(db.Model):
    __tablename__ = "payroll_novedades"
    __table_args__ = (Index("ix_payroll_novedades_periodo_empleado", "periodo_id", "empleado_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    periodo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payroll_periods_real.id", ondelete="CASCADE"), nullable=False
    )
    empleado_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    tipo_novedad: Mapped[NovedadType] = mapped_column(_enum_column(NovedadType, "novedad_type"), nullable=False)
    subtipo: Mapped[str | None] = mapped_column(String(64), nullable=True)
    valor: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    dias: Mapped[int | None] = mapped_column(Integer, nullable=True)
    horas: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    fecha_inicio: Mapped[date | None] = mapped_column(Date, nullable=True)
    fecha_fin: Mapped[date | None] = mapped_column(Date, nullable=True)
    observacion: Mapped[str | None] = mapped_column(Text, nullable=True)
    creado_por: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    @property
    def is_deduction(self) -> bool:
        return self.tipo_novedad in DEDUCTION_NOVEDAD_TYPES


class PeriodEditSession(db.Model):
    __tablename__ = "period_edit_sessions"
    __table_args__ = (
        Index("ix_period_edit_sessions_company_period", "company_id", "period_id"),
        Index(
            "uq_period_edit_sessions_active_period",
            "period_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payroll_periods_real.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status: Mapped[EditSessionStatus] = mapped_column(
        _enum_column(EditSessionStatus, "edit_session_status"),
        nullable=False,
        default=EditSessionStatus.ACTIVE,
    )
    changes: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PeriodEditSnapshot(db.Model):
    __tablename__ = "period_edit_snapshots"
    __table_args__ = (Index("ix_period_edit_snapshots_period", "period_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payroll_periods_real.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("period_edit_sessions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    snapshot_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)


class AuditLog(db.Model):
    __tablename__ = "audit_log"
    __table_args__ = (Index("ix_audit_log_company_ts", "company_id", "ts"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    payload_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
