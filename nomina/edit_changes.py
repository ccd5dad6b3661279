"""Pending changes of a closed-period edit.

An :class:`EditingChanges` diff keeps at most one pending change per employee
and per novelty.  Contradictory pairs are resolved as they are recorded:

* adding an employee that is pending removal cancels the removal (and the
  other way round);
* deleting a novelty added in the same edit cancels the addition, deleting a
  modified novelty turns the modification into a deletion;
* modifying a novelty that is pending deletion is rejected with
  :class:`ConflictingChangeError`.

The same module defines the JSON wire format shared by the period-editing
service and its HTTP client.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from nomina.novedades import NovedadType, is_deduction

EDITABLE_PAYROLL_FIELDS = ("dias_trabajados", "salario_base")
MAX_DIAS_TRABAJADOS = 31


class InvalidChangeError(ValueError):
    """A change that cannot be recorded in the diff."""


class ConflictingChangeError(InvalidChangeError):
    """A change that contradicts another pending change."""


class InvalidChangesPayload(ValueError):
    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors) or "Cambios inválidos")
        self.errors = errors


class ChangeAction(str, enum.Enum):
    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"
    REMOVE = "remove"


class NovedadData(BaseModel):
    """A novelty record as carried inside an edit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    # Checked against the period composition when the edit is applied.
    employee_id: uuid.UUID | None = None
    tipo_novedad: NovedadType
    valor: Decimal
    subtipo: str | None = Field(default=None, max_length=64)
    dias: int | None = Field(default=None, ge=0, le=366)
    horas: Decimal | None = Field(default=None, ge=0)
    fecha_inicio: date | None = None
    fecha_fin: date | None = None
    observacion: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _check_date_order(self) -> "NovedadData":
        if self.fecha_inicio and self.fecha_fin and self.fecha_inicio > self.fecha_fin:
            raise ValueError("La fecha de inicio no puede ser mayor a la fecha de fin")
        return self

    @property
    def is_deduction(self) -> bool:
        return is_deduction(self.tipo_novedad)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


@dataclass(frozen=True)
class NovedadChange:
    action: ChangeAction
    novedad_id: uuid.UUID
    novedad: NovedadData | None = None


class _EmployeeChangesPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    added: list[uuid.UUID] = []
    removed: list[uuid.UUID] = []


class _NovedadChangesPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    added: list[NovedadData] = []
    modified: list[NovedadData] = []
    deleted: list[uuid.UUID] = []


class EditingChangesPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    employees: _EmployeeChangesPayload = Field(default_factory=_EmployeeChangesPayload)
    novedades: _NovedadChangesPayload = Field(default_factory=_NovedadChangesPayload)
    payroll_data: dict[uuid.UUID, dict[str, Any]] = {}


def _coerce_payroll_value(field_name: str, value: Any) -> int | Decimal:
    if field_name not in EDITABLE_PAYROLL_FIELDS:
        raise InvalidChangeError(f"Campo de nómina no editable: {field_name}")

    if field_name == "dias_trabajados":
        try:
            days = int(value)
        except (TypeError, ValueError) as exc:
            raise InvalidChangeError("Los días trabajados deben ser un número entero") from exc
        if days < 0 or days > MAX_DIAS_TRABAJADOS:
            raise InvalidChangeError(f"Los días trabajados deben estar entre 0 y {MAX_DIAS_TRABAJADOS}")
        return days

    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidChangeError("El salario base debe ser numérico") from exc
    if not amount.is_finite() or amount <= 0:
        raise InvalidChangeError("El salario base debe ser mayor a cero")
    return amount


def validation_messages(exc: ValidationError) -> list[str]:
    return [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()]


class EditingChanges:
    def __init__(self) -> None:
        self._employees: dict[uuid.UUID, ChangeAction] = {}
        self._novedades: dict[uuid.UUID, NovedadChange] = {}
        self._payroll_data: dict[uuid.UUID, dict[str, int | Decimal]] = {}

    # Views matching the five change lists of the wire format.

    @property
    def employees_added(self) -> list[uuid.UUID]:
        return [employee_id for employee_id, action in self._employees.items() if action is ChangeAction.ADD]

    @property
    def employees_removed(self) -> list[uuid.UUID]:
        return [employee_id for employee_id, action in self._employees.items() if action is ChangeAction.REMOVE]

    @property
    def novedades_added(self) -> list[NovedadData]:
        return [change.novedad for change in self._novedades.values() if change.action is ChangeAction.ADD]

    @property
    def novedades_modified(self) -> list[NovedadData]:
        return [change.novedad for change in self._novedades.values() if change.action is ChangeAction.MODIFY]

    @property
    def novedades_deleted(self) -> list[uuid.UUID]:
        return [change.novedad_id for change in self._novedades.values() if change.action is ChangeAction.DELETE]

    @property
    def payroll_data(self) -> dict[uuid.UUID, dict[str, int | Decimal]]:
        return {employee_id: dict(fields) for employee_id, fields in self._payroll_data.items()}

    def novedad_changes(self) -> list[NovedadChange]:
        return list(self._novedades.values())

    def pending_employee_action(self, employee_id: uuid.UUID) -> ChangeAction | None:
        return self._employees.get(employee_id)

    # Mutations.

    def add_employee(self, employee_id: uuid.UUID) -> None:
        if self._employees.get(employee_id) is ChangeAction.REMOVE:
            del self._employees[employee_id]
            return
        self._employees[employee_id] = ChangeAction.ADD

    def remove_employee(self, employee_id: uuid.UUID) -> None:
        self._payroll_data.pop(employee_id, None)
        if self._employees.get(employee_id) is ChangeAction.ADD:
            del self._employees[employee_id]
            return
        self._employees[employee_id] = ChangeAction.REMOVE

    def add_novedad(self, novedad: NovedadData) -> uuid.UUID:
        existing = self._novedades.get(novedad.id)
        if existing is not None and existing.action is not ChangeAction.ADD:
            raise ConflictingChangeError("La novedad ya tiene cambios pendientes")
        self._novedades[novedad.id] = NovedadChange(ChangeAction.ADD, novedad.id, novedad)
        return novedad.id

    def modify_novedad(self, novedad: NovedadData) -> None:
        existing = self._novedades.get(novedad.id)
        if existing is not None and existing.action is ChangeAction.DELETE:
            raise ConflictingChangeError("No se puede modificar una novedad marcada para eliminación")
        if existing is not None and existing.action is ChangeAction.ADD:
            self._novedades[novedad.id] = NovedadChange(ChangeAction.ADD, novedad.id, novedad)
            return
        self._novedades[novedad.id] = NovedadChange(ChangeAction.MODIFY, novedad.id, novedad)

    def remove_novedad(self, novedad_id: uuid.UUID) -> None:
        existing = self._novedades.get(novedad_id)
        if existing is not None and existing.action is ChangeAction.ADD:
            del self._novedades[novedad_id]
            return
        self._novedades[novedad_id] = NovedadChange(ChangeAction.DELETE, novedad_id)

    def set_payroll_value(self, employee_id: uuid.UUID, field_name: str, value: Any) -> None:
        if self._employees.get(employee_id) is ChangeAction.REMOVE:
            raise ConflictingChangeError("El empleado está marcado para retiro del período")
        self._payroll_data.setdefault(employee_id, {})[field_name] = _coerce_payroll_value(field_name, value)

    def clear(self) -> None:
        self._employees.clear()
        self._novedades.clear()
        self._payroll_data.clear()

    # Derived values.

    def total_changes_count(self) -> int:
        payroll_edits = sum(len(fields) for fields in self._payroll_data.values())
        return len(self._employees) + len(self._novedades) + payroll_edits

    def has_changes(self) -> bool:
        return self.total_changes_count() > 0

    def affected_employee_ids(self) -> set[uuid.UUID]:
        affected = set(self._employees) | set(self._payroll_data)
        affected.update(
            change.novedad.employee_id
            for change in self._novedades.values()
            if change.novedad is not None and change.novedad.employee_id is not None
        )
        return affected

    # Wire format.

    def to_payload(self) -> dict[str, Any]:
        return {
            "employees": {
                "added": [str(employee_id) for employee_id in self.employees_added],
                "removed": [str(employee_id) for employee_id in self.employees_removed],
            },
            "novedades": {
                "added": [novedad.to_payload() for novedad in self.novedades_added],
                "modified": [novedad.to_payload() for novedad in self.novedades_modified],
                "deleted": [str(novedad_id) for novedad_id in self.novedades_deleted],
            },
            "payroll_data": {
                str(employee_id): {
                    field_name: str(value) if isinstance(value, Decimal) else value
                    for field_name, value in fields.items()
                }
                for employee_id, fields in self._payroll_data.items()
            },
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "EditingChanges":
        """Build a diff from its JSON form.

        Entries are replayed through the mutation methods, so a payload that
        lists the same id as both added and removed collapses to no change.
        """
        try:
            parsed = EditingChangesPayload.model_validate(payload or {})
        except ValidationError as exc:
            raise InvalidChangesPayload(validation_messages(exc)) from exc

        changes = cls()
        try:
            for employee_id in parsed.employees.added:
                changes.add_employee(employee_id)
            for employee_id in parsed.employees.removed:
                changes.remove_employee(employee_id)
            for novedad in parsed.novedades.added:
                changes.add_novedad(novedad)
            for novedad in parsed.novedades.modified:
                changes.modify_novedad(novedad)
            for novedad_id in parsed.novedades.deleted:
                changes.remove_novedad(novedad_id)
            for employee_id, fields in parsed.payroll_data.items():
                for field_name, value in fields.items():
                    changes.set_payroll_value(employee_id, field_name, value)
        except InvalidChangeError as exc:
            raise InvalidChangesPayload([str(exc)]) from exc
        return changes

    def copy(self) -> "EditingChanges":
        return EditingChanges.from_payload(self.to_payload())

    def __repr__(self) -> str:
        return f"<EditingChanges total={self.total_changes_count()}>"


@dataclass
class EditingSession:
    """Client copy of a remote editing session."""

    id: uuid.UUID
    period_id: uuid.UUID
    company_id: uuid.UUID
    user_id: uuid.UUID | None
    status: str
    started_at: datetime | None
    changes: EditingChanges = field(default_factory=EditingChanges)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "EditingSession":
        user_id = payload.get("user_id")
        started_at = payload.get("started_at")
        return cls(
            id=uuid.UUID(str(payload["id"])),
            period_id=uuid.UUID(str(payload["period_id"])),
            company_id=uuid.UUID(str(payload["company_id"])),
            user_id=uuid.UUID(str(user_id)) if user_id else None,
            status=str(payload.get("status") or "active"),
            started_at=datetime.fromisoformat(started_at) if started_at else None,
            changes=EditingChanges.from_payload(payload.get("changes")),
        )
