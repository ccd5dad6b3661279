from __future__ import annotations

from decimal import Decimal
from typing import Callable
import uuid

import pytest

from nomina.edit_changes import EditingChanges, EditingSession, NovedadData
from nomina.notifications import NotificationVariant
from nomina.novedades import NovedadType
from nomina.period_edit_client import PeriodEditingError, PeriodEditingUnavailable
from nomina.period_edit_controller import PeriodEditController, PeriodEditState, StalledOperation


class FakeEditingService:
    """In-memory stand-in for the editing client."""

    def __init__(self) -> None:
        self.active: EditingSession | None = None
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.applied: list[dict] = []
        self.hooks: dict[str, Callable[[], None]] = {}

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        hook = self.hooks.get(name)
        if hook is not None:
            hook()
        failure = self.failures.pop(name, None)
        if failure is not None:
            raise failure

    def _new_session(self, period_id: uuid.UUID) -> EditingSession:
        return EditingSession(
            id=uuid.uuid4(),
            period_id=period_id,
            company_id=uuid.uuid4(),
            user_id=uuid.uuid4(),
            status="active",
            started_at=None,
        )

    def get_active_session(self, period_id):
        self._maybe_fail("get")
        return self.active

    def start_editing_session(self, period_id):
        self._maybe_fail("start")
        if self.active is None:
            self.active = self._new_session(period_id)
        return self.active

    def save_changes(self, session_id, changes):
        self._maybe_fail("save")
        self.active.changes = changes.copy()
        return self.active

    def apply_changes(self, session_id, changes):
        self._maybe_fail("apply")
        self.applied.append(changes.to_payload())
        self.active = None
        return {
            "already_applied": False,
            "changes_applied": changes.total_changes_count(),
            "employees_affected": len(changes.affected_employee_ids()),
        }

    def discard_changes(self, session_id):
        self._maybe_fail("discard")
        self.active = None


@pytest.fixture()
def service() -> FakeEditingService:
    return FakeEditingService()


@pytest.fixture()
def controller(service) -> PeriodEditController:
    return PeriodEditController(uuid.uuid4(), service)


def _bonus(employee_id: uuid.UUID | None = None) -> dict:
    return {
        "employee_id": str(employee_id or uuid.uuid4()),
        "tipo_novedad": "bonificacion",
        "valor": "200000",
    }


def test_start_add_and_apply(controller, service):
    assert controller.start_editing() is True
    assert controller.state is PeriodEditState.EDITING
    assert controller.notifications.last.title == "Modo edición activado"

    controller.add_novedad(_bonus())
    assert controller.total_changes_count() == 1

    assert controller.apply_changes() is True

    assert controller.state is PeriodEditState.CLOSED
    assert controller.total_changes_count() == 0
    assert controller.session is None
    assert controller.context.last_summary["changes_applied"] == 1
    assert controller.notifications.last.title == "✅ Cambios aplicados"
    assert controller.notifications.last.variant is NotificationVariant.SUCCESS
    assert len(service.applied[0]["novedades"]["added"]) == 1


def test_apply_rejection_returns_to_editing_with_diff(controller, service):
    controller.start_editing()
    controller.add_novedad(_bonus())
    service.failures["apply"] = PeriodEditingError(
        "Los cambios no cumplen las reglas de negocio",
        422,
        ["No se puede eliminar empleado con pagos procesados"],
    )

    assert controller.apply_changes() is False

    assert controller.state is PeriodEditState.EDITING
    assert controller.total_changes_count() == 1
    assert controller.context.validation_errors == ["No se puede eliminar empleado con pagos procesados"]
    assert controller.notifications.last.title == "❌ Error aplicando cambios"
    assert controller.notifications.last.variant is NotificationVariant.DESTRUCTIVE


def test_rejected_start_stays_closed(controller, service):
    service.failures["start"] = PeriodEditingError("El período ya está siendo editado por otro usuario", 409)

    assert controller.start_editing() is False

    assert controller.state is PeriodEditState.CLOSED
    assert controller.context.last_error == "El período ya está siendo editado por otro usuario"
    assert controller.notifications.last.title == "Error al iniciar edición"


def test_mutations_are_ignored_outside_editing(controller):
    employee_id = uuid.uuid4()

    assert controller.add_employee(employee_id) is False
    assert controller.remove_employee(employee_id) is False
    assert controller.add_novedad(_bonus()) is None
    assert controller.remove_novedad(uuid.uuid4()) is False
    assert controller.set_payroll_value(employee_id, "dias_trabajados", 10) is False
    assert controller.apply_changes() is False
    assert controller.discard_changes() is False
    assert controller.has_changes() is False
    assert controller.notifications.items == []


def _try_every_mutation(controller, employee_id: uuid.UUID) -> list:
    return [
        controller.add_employee(uuid.uuid4()),
        controller.remove_employee(employee_id),
        controller.add_novedad(_bonus()),
        controller.modify_novedad(_bonus()),
        controller.remove_novedad(uuid.uuid4()),
        controller.set_payroll_value(employee_id, "dias_trabajados", 10),
    ]


@pytest.mark.parametrize(
    "operation, in_flight_state",
    [("apply", PeriodEditState.SAVING), ("discard", PeriodEditState.DISCARDING)],
)
def test_mutations_are_ignored_while_a_request_is_in_flight(controller, service, operation, in_flight_state):
    controller.start_editing()
    employee_id = uuid.uuid4()
    controller.add_employee(employee_id)
    seen: dict = {}

    def mutate() -> None:
        seen["state"] = controller.state
        seen["results"] = _try_every_mutation(controller, employee_id)
        seen["count"] = controller.total_changes_count()

    service.hooks[operation] = mutate
    run = controller.apply_changes if operation == "apply" else controller.discard_changes

    assert run() is True

    assert seen["state"] is in_flight_state
    assert seen["results"] == [False, False, None, False, False, False]
    assert seen["count"] == 1
    if operation == "apply":
        assert service.applied[0]["employees"]["added"] == [str(employee_id)]
        assert service.applied[0]["novedades"]["added"] == []


def test_mutations_are_ignored_while_stalled(controller, service):
    controller.start_editing()
    employee_id = uuid.uuid4()
    controller.add_employee(employee_id)
    service.failures["apply"] = PeriodEditingUnavailable("timeout")
    controller.apply_changes()
    assert controller.state is PeriodEditState.STALLED

    assert _try_every_mutation(controller, employee_id) == [False, False, None, False, False, False]

    assert controller.total_changes_count() == 1
    assert controller.changes.employees_added == [employee_id]
    assert controller.checkpoint() is False
    assert controller.start_editing() is False


def test_add_novedad_without_employee_is_recorded(controller, service):
    controller.start_editing()

    novedad_id = controller.add_novedad({"tipo_novedad": "bonificacion", "valor": 200000})

    assert novedad_id is not None
    assert controller.total_changes_count() == 1
    assert controller.apply_changes() is True
    assert controller.state is PeriodEditState.CLOSED
    assert controller.total_changes_count() == 0
    assert service.applied[0]["novedades"]["added"][0]["employee_id"] is None


def test_invalid_novedad_payload_is_rejected_with_notification(controller):
    controller.start_editing()

    assert controller.add_novedad({"tipo_novedad": "bono", "valor": "abc"}) is None
    assert controller.modify_novedad({"valor": "1"}) is False

    assert controller.has_changes() is False
    assert controller.notifications.last.title == "Cambio no permitido"
    assert controller.notifications.last.variant is NotificationVariant.DESTRUCTIVE
    assert "tipo_novedad" in controller.context.last_error


def test_start_only_from_closed(controller, service):
    controller.start_editing()

    assert controller.start_editing() is False
    assert service.calls == ["start"]


def test_discard_clears_diff(controller, service):
    controller.start_editing()
    controller.add_employee(uuid.uuid4())

    assert controller.discard_changes() is True

    assert controller.state is PeriodEditState.CLOSED
    assert controller.has_changes() is False
    assert service.active is None
    assert controller.notifications.last.title == "Cambios descartados"


def test_discard_rejection_keeps_editing(controller, service):
    controller.start_editing()
    controller.add_employee(uuid.uuid4())
    service.failures["discard"] = PeriodEditingError("La sesión de edición ya no está activa", 409)

    assert controller.discard_changes() is False

    assert controller.state is PeriodEditState.EDITING
    assert controller.total_changes_count() == 1
    assert controller.notifications.last.title == "Error descartando cambios"


def test_conflicting_change_is_rejected_with_notification(controller):
    controller.start_editing()
    novedad = NovedadData.model_validate(_bonus())
    controller.remove_novedad(novedad.id)

    assert controller.modify_novedad(novedad) is False

    assert controller.total_changes_count() == 1
    assert controller.notifications.last.title == "Cambio no permitido"
    assert controller.context.last_error == "No se puede modificar una novedad marcada para eliminación"


def test_invalid_payroll_value_is_rejected(controller):
    controller.start_editing()

    assert controller.set_payroll_value(uuid.uuid4(), "dias_trabajados", 40) is False
    assert controller.has_changes() is False


def test_unreachable_apply_stalls_until_reconciled(controller, service):
    controller.start_editing()
    employee_id = uuid.uuid4()
    controller.add_employee(employee_id)
    service.failures["apply"] = PeriodEditingUnavailable("El servicio de edición no respondió tras 3 intentos")

    assert controller.apply_changes() is False
    assert controller.state is PeriodEditState.STALLED
    assert controller.context.stalled_operation is StalledOperation.APPLY
    assert controller.notifications.last.variant is NotificationVariant.WARNING
    assert controller.add_employee(uuid.uuid4()) is False

    # The apply never reached the server: the session is still active.
    assert controller.reconcile() is PeriodEditState.EDITING
    assert controller.changes.employees_added == [employee_id]
    assert controller.context.stalled_operation is None


def test_reconcile_after_apply_that_landed_closes(controller, service):
    controller.start_editing()
    controller.add_employee(uuid.uuid4())
    service.failures["apply"] = PeriodEditingUnavailable("timeout")
    controller.apply_changes()
    service.active = None

    assert controller.reconcile() is PeriodEditState.CLOSED
    assert controller.has_changes() is False


def test_unreachable_start_reconciles_to_server_session(controller, service):
    service.failures["start"] = PeriodEditingUnavailable("timeout")

    assert controller.start_editing() is False
    assert controller.state is PeriodEditState.STALLED
    assert controller.context.stalled_operation is StalledOperation.START

    service.active = service._new_session(controller.context.period_id)
    service.active.changes.add_employee(uuid.uuid4())

    assert controller.reconcile() is PeriodEditState.EDITING
    assert controller.session.id == service.active.id
    assert controller.total_changes_count() == 1


def test_reconcile_keeps_stalled_when_lookup_fails(controller, service):
    service.failures["discard"] = PeriodEditingUnavailable("timeout")
    controller.start_editing()
    controller.discard_changes()
    service.failures["get"] = PeriodEditingUnavailable("timeout")

    assert controller.reconcile() is PeriodEditState.STALLED
    assert controller.context.last_error == "timeout"


def test_mount_resumes_active_session(service):
    period_id = uuid.uuid4()
    service.active = service._new_session(period_id)
    service.active.changes.remove_novedad(uuid.uuid4())
    controller = PeriodEditController(period_id, service)

    assert controller.mount() is PeriodEditState.EDITING
    assert controller.total_changes_count() == 1


def test_mount_without_session_stays_closed(controller):
    assert controller.mount() is PeriodEditState.CLOSED


def test_checkpoint_stores_diff_on_server(controller, service):
    controller.start_editing()
    controller.set_payroll_value(uuid.uuid4(), "salario_base", "1800000")

    assert controller.checkpoint() is True

    assert service.active.changes.total_changes_count() == 1


def test_notifications_reach_subscribers(controller):
    received = []
    controller.notifications.subscribe(received.append)

    controller.start_editing()
    controller.add_novedad(NovedadData(employee_id=uuid.uuid4(), tipo_novedad=NovedadType.PRIMA, valor=Decimal("1")))

    assert [notification.title for notification in received] == ["Modo edición activado", "Novedad agregada"]


def test_context_changes_are_independent_between_controllers(service):
    first = PeriodEditController(uuid.uuid4(), service)
    second = PeriodEditController(uuid.uuid4(), FakeEditingService())

    first.start_editing()
    second.start_editing()
    first.add_employee(uuid.uuid4())

    assert first.total_changes_count() == 1
    assert second.total_changes_count() == 0
    assert isinstance(first.changes, EditingChanges)


def test_mount_keeps_an_edit_in_progress(controller, service):
    controller.start_editing()
    controller.add_employee(uuid.uuid4())

    assert controller.mount() is PeriodEditState.EDITING

    assert controller.total_changes_count() == 1
    assert "get" not in service.calls
