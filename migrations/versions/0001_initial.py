"""Initial payroll schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-12
"""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


membership_role = sa.Enum("administrador", "rrhh", "contador", "visualizador", "soporte", name="membership_role")
employee_status = sa.Enum("activo", "inactivo", name="employee_status")
period_type = sa.Enum("mensual", "quincenal", "semanal", name="period_type")
period_status = sa.Enum("borrador", "en_proceso", "cerrado", name="period_status")
payroll_status = sa.Enum("borrador", "procesada", "pagada", name="payroll_status")
novedad_type = sa.Enum(
    "horas_extra",
    "recargo_nocturno",
    "vacaciones",
    "licencia_remunerada",
    "incapacidad",
    "bonificacion",
    "comision",
    "prima",
    "otros_ingresos",
    "salud",
    "pension",
    "fondo_solidaridad",
    "retencion_fuente",
    "libranza",
    "ausencia",
    "multa",
    "descuento_voluntario",
    "licencia_no_remunerada",
    name="novedad_type",
)


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("nit", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nit"),
    )
    op.create_index("ix_companies_nit", "companies", ["nit"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "memberships",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", membership_role, nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "user_id", name="uq_memberships_company_user"),
    )
    op.create_index("ix_memberships_company_user", "memberships", ["company_id", "user_id"], unique=False)

    op.create_table(
        "employees",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("cedula", sa.String(length=32), nullable=False),
        sa.Column("nombre", sa.String(length=128), nullable=False),
        sa.Column("apellido", sa.String(length=128), nullable=False),
        sa.Column("cargo", sa.String(length=128), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("salario_base", sa.Numeric(14, 2), nullable=False),
        sa.Column("fecha_ingreso", sa.Date(), nullable=False),
        sa.Column("estado", employee_status, nullable=False, server_default=sa.text("'activo'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "cedula", name="uq_employees_company_cedula"),
    )
    op.create_index("ix_employees_company_apellido", "employees", ["company_id", "apellido"], unique=False)

    op.create_table(
        "payroll_periods_real",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("periodo", sa.String(length=128), nullable=False),
        sa.Column("tipo_periodo", period_type, nullable=False, server_default=sa.text("'mensual'")),
        sa.Column("fecha_inicio", sa.Date(), nullable=False),
        sa.Column("fecha_fin", sa.Date(), nullable=False),
        sa.Column("estado", period_status, nullable=False, server_default=sa.text("'borrador'")),
        sa.Column("empleados_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_devengado", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_deducciones", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_neto", sa.Numeric(16, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_payroll_periods_company_inicio", "payroll_periods_real", ["company_id", "fecha_inicio"], unique=False
    )

    op.create_table(
        "payrolls",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("period_id", sa.Uuid(), nullable=False),
        sa.Column("periodo", sa.String(length=128), nullable=False),
        sa.Column("salario_base", sa.Numeric(14, 2), nullable=False),
        sa.Column("dias_trabajados", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("total_devengado", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_deducciones", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("neto_pagado", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("estado", payroll_status, nullable=False, server_default=sa.text("'borrador'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["period_id"], ["payroll_periods_real.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("period_id", "employee_id", name="uq_payrolls_period_employee"),
    )
    op.create_index("ix_payrolls_company_period", "payrolls", ["company_id", "period_id"], unique=False)

    op.create_table(
        "payroll_novedades",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("periodo_id", sa.Uuid(), nullable=False),
        sa.Column("empleado_id", sa.Uuid(), nullable=False),
        sa.Column("tipo_novedad", novedad_type, nullable=False),
        sa.Column("subtipo", sa.String(length=64), nullable=True),
        sa.Column("valor", sa.Numeric(14, 2), nullable=False),
        sa.Column("dias", sa.Integer(), nullable=True),
        sa.Column("horas", sa.Numeric(8, 2), nullable=True),
        sa.Column("fecha_inicio", sa.Date(), nullable=True),
        sa.Column("fecha_fin", sa.Date(), nullable=True),
        sa.Column("observacion", sa.Text(), nullable=True),
        sa.Column("creado_por", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["periodo_id"], ["payroll_periods_real.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["empleado_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["creado_por"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_payroll_novedades_periodo_empleado", "payroll_novedades", ["periodo_id", "empleado_id"], unique=False
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_company_ts", "audit_log", ["company_id", "ts"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_log_company_ts", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_payroll_novedades_periodo_empleado", table_name="payroll_novedades")
    op.drop_table("payroll_novedades")
    op.drop_index("ix_payrolls_company_period", table_name="payrolls")
    op.drop_table("payrolls")
    op.drop_index("ix_payroll_periods_company_inicio", table_name="payroll_periods_real")
    op.drop_table("payroll_periods_real")
    op.drop_index("ix_employees_company_apellido", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_memberships_company_user", table_name="memberships")
    op.drop_table("memberships")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_companies_nit", table_name="companies")
    op.drop_table("companies")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_type in (novedad_type, payroll_status, period_status, period_type, employee_status, membership_role):
            enum_type.drop(bind, checkfirst=True)
