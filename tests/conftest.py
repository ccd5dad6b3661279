from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterator
import uuid

import pytest
from sqlalchemy.pool import StaticPool

from nomina import create_app
from nomina.config import Config
from nomina.extensions import db
from nomina.models import (
    Company,
    Employee,
    EmployeeStatus,
    Membership,
    MembershipRole,
    Payroll,
    PayrollNovedad,
    PayrollPeriod,
    PayrollStatus,
    PeriodStatus,
    PeriodType,
    User,
)
from nomina.novedades import NovedadType
from nomina.security import hash_password


PASSWORD = "password123"


class TestConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }
    PERIOD_EDIT_API_URL = "http://testserver"
    PERIOD_EDIT_RETRY_BACKOFF_SECONDS = 0.0


def _user(email: str) -> User:
    return User(id=uuid.uuid4(), email=email, password_hash=hash_password(PASSWORD), is_active=True)


@pytest.fixture()
def app() -> Iterator:
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()

        company_a = Company(id=uuid.uuid4(), name="Acme Nómina", nit="900123456-1")
        company_b = Company(id=uuid.uuid4(), name="Beta Servicios", nit="900654321-2")
        users = {
            "admin": _user("admin@example.com"),
            "admin2": _user("admin2@example.com"),
            "rrhh": _user("rrhh@example.com"),
            "contador": _user("contador@example.com"),
            "viewer": _user("viewer@example.com"),
            "multi": _user("multi@example.com"),
            "beta": _user("beta@example.com"),
        }
        db.session.add_all([company_a, company_b, *users.values()])
        db.session.flush()
        db.session.add_all(
            [
                Membership(company_id=company_a.id, user_id=users["admin"].id, role=MembershipRole.ADMINISTRADOR),
                Membership(company_id=company_a.id, user_id=users["admin2"].id, role=MembershipRole.ADMINISTRADOR),
                Membership(company_id=company_a.id, user_id=users["rrhh"].id, role=MembershipRole.RRHH),
                Membership(company_id=company_a.id, user_id=users["contador"].id, role=MembershipRole.CONTADOR),
                Membership(company_id=company_a.id, user_id=users["viewer"].id, role=MembershipRole.VISUALIZADOR),
                Membership(company_id=company_a.id, user_id=users["multi"].id, role=MembershipRole.ADMINISTRADOR),
                Membership(company_id=company_b.id, user_id=users["multi"].id, role=MembershipRole.RRHH),
                Membership(company_id=company_b.id, user_id=users["beta"].id, role=MembershipRole.ADMINISTRADOR),
            ]
        )
        db.session.commit()
        app.config["TEST_COMPANY_IDS"] = {"a": company_a.id, "b": company_b.id}
        app.config["TEST_USER_IDS"] = {key: user.id for key, user in users.items()}

    # Requests push their own app context, so each one gets a fresh `g` and session.
    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login():
    def _login(client, email: str = "admin@example.com", company_id: uuid.UUID | None = None):
        response = client.post("/login", json={"email": email, "password": PASSWORD})
        assert response.status_code == 200, response.get_json()
        if company_id is not None:
            selected = client.post("/select-company", json={"company_id": str(company_id)})
            assert selected.status_code == 200, selected.get_json()
        return response

    return _login


@pytest.fixture()
def payroll_context(app) -> dict:
    """A closed January period with two paid-out rows and a draft February period."""
    company_id = app.config["TEST_COMPANY_IDS"]["a"]
    company_b_id = app.config["TEST_COMPANY_IDS"]["b"]
    with app.app_context():
        ana = Employee(
            id=uuid.uuid4(),
            company_id=company_id,
            cedula="1010",
            nombre="Ana",
            apellido="Gómez",
            cargo="Analista",
            salario_base=Decimal("1500000.00"),
            fecha_ingreso=date(2024, 3, 1),
        )
        bruno = Employee(
            id=uuid.uuid4(),
            company_id=company_id,
            cedula="2020",
            nombre="Bruno",
            apellido="Díaz",
            cargo="Operario",
            salario_base=Decimal("2000000.00"),
            fecha_ingreso=date(2023, 7, 15),
        )
        carla = Employee(
            id=uuid.uuid4(),
            company_id=company_id,
            cedula="3030",
            nombre="Carla",
            apellido="Ruiz",
            cargo="Auxiliar",
            salario_base=Decimal("1800000.00"),
            fecha_ingreso=date(2025, 12, 1),
        )
        diego = Employee(
            id=uuid.uuid4(),
            company_id=company_id,
            cedula="4040",
            nombre="Diego",
            apellido="Mora",
            salario_base=Decimal("1300000.00"),
            fecha_ingreso=date(2022, 1, 10),
            estado=EmployeeStatus.INACTIVO,
        )
        eva = Employee(
            id=uuid.uuid4(),
            company_id=company_b_id,
            cedula="5050",
            nombre="Eva",
            apellido="Luna",
            salario_base=Decimal("1600000.00"),
            fecha_ingreso=date(2024, 5, 2),
        )
        db.session.add_all([ana, bruno, carla, diego, eva])
        db.session.flush()

        january = PayrollPeriod(
            id=uuid.uuid4(),
            company_id=company_id,
            periodo="Enero 2026",
            tipo_periodo=PeriodType.MENSUAL,
            fecha_inicio=date(2026, 1, 1),
            fecha_fin=date(2026, 1, 31),
            estado=PeriodStatus.CERRADO,
            empleados_count=2,
            total_devengado=Decimal("3600000.00"),
            total_deducciones=Decimal("280000.00"),
            total_neto=Decimal("3320000.00"),
        )
        february = PayrollPeriod(
            id=uuid.uuid4(),
            company_id=company_id,
            periodo="Febrero 2026",
            tipo_periodo=PeriodType.MENSUAL,
            fecha_inicio=date(2026, 2, 1),
            fecha_fin=date(2026, 2, 28),
            estado=PeriodStatus.BORRADOR,
        )
        beta_period = PayrollPeriod(
            id=uuid.uuid4(),
            company_id=company_b_id,
            periodo="Enero 2026",
            tipo_periodo=PeriodType.QUINCENAL,
            fecha_inicio=date(2026, 1, 1),
            fecha_fin=date(2026, 1, 15),
            estado=PeriodStatus.CERRADO,
        )
        db.session.add_all([january, february, beta_period])
        db.session.flush()

        ana_payroll = Payroll(
            company_id=company_id,
            employee_id=ana.id,
            period_id=january.id,
            periodo=january.periodo,
            salario_base=Decimal("1500000.00"),
            dias_trabajados=30,
            total_devengado=Decimal("1600000.00"),
            total_deducciones=Decimal("120000.00"),
            neto_pagado=Decimal("1480000.00"),
            estado=PayrollStatus.PROCESADA,
        )
        bruno_payroll = Payroll(
            company_id=company_id,
            employee_id=bruno.id,
            period_id=january.id,
            periodo=january.periodo,
            salario_base=Decimal("2000000.00"),
            dias_trabajados=30,
            total_devengado=Decimal("2000000.00"),
            total_deducciones=Decimal("160000.00"),
            neto_pagado=Decimal("1840000.00"),
            estado=PayrollStatus.PAGADA,
        )
        ana_february = Payroll(
            company_id=company_id,
            employee_id=ana.id,
            period_id=february.id,
            periodo=february.periodo,
            salario_base=Decimal("1500000.00"),
            dias_trabajados=30,
            estado=PayrollStatus.BORRADOR,
        )
        bonus = PayrollNovedad(
            id=uuid.uuid4(),
            company_id=company_id,
            periodo_id=january.id,
            empleado_id=ana.id,
            tipo_novedad=NovedadType.BONIFICACION,
            valor=Decimal("100000.00"),
            observacion="Bono de cumplimiento",
        )
        february_overtime = PayrollNovedad(
            id=uuid.uuid4(),
            company_id=company_id,
            periodo_id=february.id,
            empleado_id=ana.id,
            tipo_novedad=NovedadType.HORAS_EXTRA,
            valor=Decimal("50000.00"),
            horas=Decimal("6"),
        )
        db.session.add_all([ana_payroll, bruno_payroll, ana_february, bonus, february_overtime])
        db.session.commit()

        return {
            "company_id": company_id,
            "company_b_id": company_b_id,
            "january_id": january.id,
            "february_id": february.id,
            "beta_period_id": beta_period.id,
            "ana_id": ana.id,
            "bruno_id": bruno.id,
            "carla_id": carla.id,
            "diego_id": diego.id,
            "eva_id": eva.id,
            "bonus_id": bonus.id,
            "admin_id": app.config["TEST_USER_IDS"]["admin"],
            "admin2_id": app.config["TEST_USER_IDS"]["admin2"],
        }
