"""Editing controller for closed payroll periods.

The controller owns a :class:`PeriodEditContext` and moves it through

    closed -> editing -> saving | discarding -> closed

talking to the remote service through any object that implements
:class:`PeriodEditingService` (normally :class:`~nomina.period_edit_client.PeriodEditingClient`).
A remote call whose outcome is unknown after the client gave up leaves the
context ``stalled`` until :meth:`PeriodEditController.reconcile` finds out
what happened.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from pydantic import ValidationError

from nomina.edit_changes import (
    EditingChanges,
    EditingSession,
    InvalidChangeError,
    NovedadData,
    validation_messages,
)
from nomina.notifications import NotificationCenter, NotificationVariant
from nomina.period_edit_client import PeriodEditingError, PeriodEditingUnavailable

logger = logging.getLogger(__name__)


class PeriodEditState(str, enum.Enum):
    CLOSED = "closed"
    EDITING = "editing"
    SAVING = "saving"
    DISCARDING = "discarding"
    STALLED = "stalled"


class StalledOperation(str, enum.Enum):
    START = "start"
    APPLY = "apply"
    DISCARD = "discard"


class PeriodEditingService(Protocol):
    def get_active_session(self, period_id: uuid.UUID) -> EditingSession | None: ...

    def start_editing_session(self, period_id: uuid.UUID) -> EditingSession: ...

    def save_changes(self, session_id: uuid.UUID, changes: EditingChanges) -> EditingSession: ...

    def apply_changes(self, session_id: uuid.UUID, changes: EditingChanges) -> dict[str, Any]: ...

    def discard_changes(self, session_id: uuid.UUID) -> None: ...


@dataclass
class PeriodEditContext:
    period_id: uuid.UUID
    state: PeriodEditState = PeriodEditState.CLOSED
    session: EditingSession | None = None
    changes: EditingChanges = field(default_factory=EditingChanges)
    validation_errors: list[str] = field(default_factory=list)
    last_error: str | None = None
    stalled_operation: StalledOperation | None = None
    last_summary: dict[str, Any] | None = None

    @property
    def is_editing(self) -> bool:
        return self.state is PeriodEditState.EDITING


class PeriodEditController:
    def __init__(
        self,
        period_id: uuid.UUID,
        service: PeriodEditingService,
        notifications: NotificationCenter | None = None,
    ) -> None:
        self.context = PeriodEditContext(period_id=period_id)
        self._service = service
        self.notifications = notifications or NotificationCenter()

    @property
    def state(self) -> PeriodEditState:
        return self.context.state

    @property
    def session(self) -> EditingSession | None:
        return self.context.session

    @property
    def changes(self) -> EditingChanges:
        return self.context.changes

    # Internal transitions.

    def _close(self) -> None:
        self.context.state = PeriodEditState.CLOSED
        self.context.session = None
        self.context.changes = EditingChanges()
        self.context.validation_errors = []
        self.context.stalled_operation = None

    def _resume(self, session: EditingSession) -> None:
        self.context.state = PeriodEditState.EDITING
        self.context.session = session
        self.context.stalled_operation = None

    def _stall(self, operation: StalledOperation, exc: PeriodEditingUnavailable) -> None:
        logger.warning("Period %s edit %s stalled: %s", self.context.period_id, operation.value, exc.message)
        self.context.state = PeriodEditState.STALLED
        self.context.stalled_operation = operation
        self.context.last_error = exc.message
        self.notifications.notify(
            "Sin respuesta del servicio",
            "No se pudo confirmar la operación. Verifica el estado antes de continuar.",
            NotificationVariant.WARNING,
        )

    # Lifecycle.

    def mount(self) -> PeriodEditState:
        """Resume an active session for the period, if the service has one.

        Only a closed context is resumed; an edit in progress keeps its diff.
        """
        if self.context.state is not PeriodEditState.CLOSED:
            return self.context.state
        try:
            session = self._service.get_active_session(self.context.period_id)
        except PeriodEditingError as exc:
            logger.warning("Could not look up edit session for period %s: %s", self.context.period_id, exc.message)
            self.context.last_error = exc.message
            return self.context.state

        if session is not None:
            self._resume(session)
            self.context.changes = session.changes
        return self.context.state

    def start_editing(self) -> bool:
        if self.context.state is not PeriodEditState.CLOSED:
            return False

        try:
            session = self._service.start_editing_session(self.context.period_id)
        except PeriodEditingUnavailable as exc:
            self._stall(StalledOperation.START, exc)
            return False
        except PeriodEditingError as exc:
            logger.info("Start editing period %s rejected: %s", self.context.period_id, exc.message)
            self._close()
            self.context.last_error = exc.message
            self.notifications.notify("Error al iniciar edición", exc.message, NotificationVariant.DESTRUCTIVE)
            return False

        self._resume(session)
        self.context.changes = session.changes
        self.context.last_error = None
        self.notifications.notify(
            "Modo edición activado",
            "Los cambios se guardarán cuando los apliques.",
            NotificationVariant.INFO,
        )
        return True

    def apply_changes(self) -> bool:
        if self.context.state is not PeriodEditState.EDITING or self.context.session is None:
            return False

        self.context.state = PeriodEditState.SAVING
        self.context.validation_errors = []
        try:
            summary = self._service.apply_changes(self.context.session.id, self.context.changes)
        except PeriodEditingUnavailable as exc:
            self._stall(StalledOperation.APPLY, exc)
            return False
        except PeriodEditingError as exc:
            logger.info("Applying edit of period %s rejected: %s", self.context.period_id, exc.message)
            self.context.state = PeriodEditState.EDITING
            self.context.validation_errors = list(exc.errors)
            self.context.last_error = exc.message
            description = "; ".join(exc.errors) if exc.errors else exc.message
            self.notifications.notify("❌ Error aplicando cambios", description, NotificationVariant.DESTRUCTIVE)
            return False

        self._close()
        self.context.last_error = None
        self.context.last_summary = summary
        self.notifications.notify(
            "✅ Cambios aplicados",
            f"{summary.get('changes_applied', 0)} cambios aplicados a {summary.get('employees_affected', 0)} empleados.",
            NotificationVariant.SUCCESS,
        )
        return True

    def discard_changes(self) -> bool:
        if self.context.state is not PeriodEditState.EDITING or self.context.session is None:
            return False

        self.context.state = PeriodEditState.DISCARDING
        try:
            self._service.discard_changes(self.context.session.id)
        except PeriodEditingUnavailable as exc:
            self._stall(StalledOperation.DISCARD, exc)
            return False
        except PeriodEditingError as exc:
            logger.info("Discarding edit of period %s rejected: %s", self.context.period_id, exc.message)
            self.context.state = PeriodEditState.EDITING
            self.context.last_error = exc.message
            self.notifications.notify("Error descartando cambios", exc.message, NotificationVariant.DESTRUCTIVE)
            return False

        self._close()
        self.context.last_error = None
        self.notifications.notify("Cambios descartados", "El período volvió a su estado original.", NotificationVariant.INFO)
        return True

    def reconcile(self) -> PeriodEditState:
        """Settle a stalled context by asking the service for the active session."""
        if self.context.state is not PeriodEditState.STALLED:
            return self.context.state

        try:
            session = self._service.get_active_session(self.context.period_id)
        except PeriodEditingError as exc:
            logger.warning("Reconcile of period %s failed: %s", self.context.period_id, exc.message)
            self.context.last_error = exc.message
            return self.context.state

        operation = self.context.stalled_operation
        if session is not None:
            keep_local = operation is not StalledOperation.START and self.context.session is not None
            self._resume(session)
            if not keep_local:
                self.context.changes = session.changes
        else:
            self._close()
        self.context.last_error = None
        logger.info(
            "Period %s reconciled after stalled %s: %s",
            self.context.period_id,
            operation.value if operation else "operation",
            self.context.state.value,
        )
        return self.context.state

    def checkpoint(self) -> bool:
        """Store the pending diff on the server session."""
        if self.context.state is not PeriodEditState.EDITING or self.context.session is None:
            return False
        try:
            self.context.session = self._service.save_changes(self.context.session.id, self.context.changes)
        except PeriodEditingError as exc:
            logger.warning("Checkpoint of period %s failed: %s", self.context.period_id, exc.message)
            self.context.last_error = exc.message
            return False
        return True

    # Pending changes.

    def _reject(self, message: str) -> bool:
        self.context.last_error = message
        self.notifications.notify("Cambio no permitido", message, NotificationVariant.DESTRUCTIVE)
        return False

    def _parse_novedad(self, novedad: NovedadData | dict[str, Any]) -> NovedadData | None:
        if isinstance(novedad, NovedadData):
            return novedad
        try:
            return NovedadData.model_validate(novedad)
        except ValidationError as exc:
            self._reject("; ".join(validation_messages(exc)))
            return None

    def add_employee(self, employee_id: uuid.UUID) -> bool:
        if not self.context.is_editing:
            return False
        self.context.changes.add_employee(employee_id)
        return True

    def remove_employee(self, employee_id: uuid.UUID) -> bool:
        if not self.context.is_editing:
            return False
        self.context.changes.remove_employee(employee_id)
        return True

    def add_novedad(self, novedad: NovedadData | dict[str, Any]) -> uuid.UUID | None:
        if not self.context.is_editing:
            return None
        novedad = self._parse_novedad(novedad)
        if novedad is None:
            return None
        try:
            novedad_id = self.context.changes.add_novedad(novedad)
        except InvalidChangeError as exc:
            self._reject(str(exc))
            return None
        self.notifications.notify("Novedad agregada", f"{novedad.tipo_novedad.value}: {novedad.valor}", NotificationVariant.SUCCESS)
        return novedad_id

    def modify_novedad(self, novedad: NovedadData | dict[str, Any]) -> bool:
        if not self.context.is_editing:
            return False
        novedad = self._parse_novedad(novedad)
        if novedad is None:
            return False
        try:
            self.context.changes.modify_novedad(novedad)
        except InvalidChangeError as exc:
            return self._reject(str(exc))
        return True

    def remove_novedad(self, novedad_id: uuid.UUID) -> bool:
        if not self.context.is_editing:
            return False
        self.context.changes.remove_novedad(novedad_id)
        self.notifications.notify("Novedad marcada para eliminación", str(novedad_id), NotificationVariant.INFO)
        return True

    def set_payroll_value(self, employee_id: uuid.UUID, field_name: str, value: int | Decimal | str) -> bool:
        if not self.context.is_editing:
            return False
        try:
            self.context.changes.set_payroll_value(employee_id, field_name, value)
        except InvalidChangeError as exc:
            return self._reject(str(exc))
        return True

    def has_changes(self) -> bool:
        return self.context.changes.has_changes()

    def total_changes_count(self) -> int:
        return self.context.changes.total_changes_count()
