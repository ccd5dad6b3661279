from __future__ import annotations

from sqlalchemy import select

from nomina.extensions import db
from nomina.models import AuditLog, Employee


def _employee_payload(**overrides) -> dict:
    payload = {
        "cedula": "6060",
        "nombre": "Fabio",
        "apellido": "Castro",
        "cargo": "Contador junior",
        "email": "Fabio.Castro@Example.com",
        "salario_base": "1750000",
        "fecha_ingreso": "2026-01-12",
        "estado": "activo",
    }
    payload.update(overrides)
    return payload


def test_list_employees_is_company_scoped(client, login, payroll_context):
    login(client)

    response = client.get("/api/employees")

    assert response.status_code == 200
    names = [employee["full_name"] for employee in response.get_json()["employees"]]
    assert names == ["Bruno Díaz", "Ana Gómez", "Diego Mora", "Carla Ruiz"]


def test_list_employees_filters_by_estado(client, login, payroll_context):
    login(client)

    inactive = client.get("/api/employees?estado=inactivo").get_json()["employees"]

    assert [employee["cedula"] for employee in inactive] == ["4040"]
    assert client.get("/api/employees?estado=jubilado").status_code == 400


def test_create_employee(client, login, app, payroll_context):
    login(client)

    response = client.post("/api/employees", json=_employee_payload())

    assert response.status_code == 201
    employee = response.get_json()["employee"]
    assert employee["email"] == "fabio.castro@example.com"
    assert employee["salario_base"] == "1750000.00"
    with app.app_context():
        stored = db.session.execute(select(Employee).where(Employee.cedula == "6060")).scalar_one()
        assert stored.company_id == payroll_context["company_id"]
        audit = db.session.execute(select(AuditLog).where(AuditLog.action == "EMPLOYEE_CREATED")).scalar_one()
        assert audit.payload_json["cedula"] == "6060"


def test_create_employee_rejects_duplicate_cedula(client, login, payroll_context):
    login(client)

    response = client.post("/api/employees", json=_employee_payload(cedula="1010"))

    assert response.status_code == 409
    assert response.get_json()["error"] == "Ya existe un empleado con esa cédula."


def test_same_cedula_is_allowed_in_another_company(client, login, payroll_context):
    login(client, email="beta@example.com")

    response = client.post("/api/employees", json=_employee_payload(cedula="1010"))

    assert response.status_code == 201


def test_create_employee_validates_fields(client, login, payroll_context):
    login(client)

    response = client.post("/api/employees", json=_employee_payload(salario_base="0", estado="jubilado", nombre=""))

    assert response.status_code == 400
    fields = {error.split(":")[0] for error in response.get_json()["errors"]}
    assert {"salario_base", "estado", "nombre"} <= fields


def test_update_employee(client, login, app, payroll_context):
    login(client)

    response = client.put(
        f"/api/employees/{payroll_context['carla_id']}",
        json=_employee_payload(cedula="3030", nombre="Carla", apellido="Ruiz", estado="inactivo"),
    )

    assert response.status_code == 200
    assert response.get_json()["employee"]["estado"] == "inactivo"
    with app.app_context():
        assert db.session.get(Employee, payroll_context["carla_id"]).salario_base == 1750000


def test_update_employee_of_another_company_is_not_found(client, login, payroll_context):
    login(client)

    response = client.put(f"/api/employees/{payroll_context['eva_id']}", json=_employee_payload())

    assert response.status_code == 404
