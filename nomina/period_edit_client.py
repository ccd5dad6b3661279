"""HTTP client for the period-editing service."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Mapping

import httpx

from nomina.edit_changes import EditingChanges, EditingSession

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})
CSRF_HEADER = "X-CSRFToken"


class PeriodEditingError(Exception):
    """The service rejected a request."""

    def __init__(self, message: str, status_code: int | None = None, errors: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []


class PeriodEditingUnavailable(PeriodEditingError):
    """The service could not be reached within the retry budget.

    The outcome of the request is unknown: it may or may not have been
    applied on the server.
    """


def _error_from_response(response: httpx.Response) -> PeriodEditingError:
    message = f"Error {response.status_code} del servicio de edición"
    errors: list[str] = []
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = str(body.get("error") or message)
        errors = [str(item) for item in body.get("errors") or []]
    return PeriodEditingError(message, response.status_code, errors)


class PeriodEditingClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._csrf_token: str | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **kwargs: Any) -> "PeriodEditingClient":
        return cls(
            config["PERIOD_EDIT_API_URL"],
            timeout=float(config["PERIOD_EDIT_TIMEOUT_SECONDS"]),
            max_attempts=int(config["PERIOD_EDIT_MAX_ATTEMPTS"]),
            backoff_seconds=float(config["PERIOD_EDIT_RETRY_BACKOFF_SECONDS"]),
            **kwargs,
        )

    def __enter__(self) -> "PeriodEditingClient":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def _send(self, method: str, path: str, payload: Any | None) -> httpx.Response:
        headers = {}
        if method != "GET":
            if self._csrf_token is None:
                # A failed token fetch is handled like a failed request.
                token_response = self._http.get("/csrf-token")
                if token_response.is_error:
                    return token_response
                self._csrf_token = str(token_response.json()["csrf_token"])
            headers[CSRF_HEADER] = self._csrf_token
        return self._http.request(method, path, json=payload, headers=headers)

    def _request(self, method: str, path: str, payload: Any | None = None) -> Any:
        """Send a request, retrying transport failures and gateway errors.

        Raises :class:`PeriodEditingUnavailable` once every attempt failed and
        :class:`PeriodEditingError` for any other error response.
        """
        last_failure = ""
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = self._send(method, path, payload)
            except httpx.TransportError as exc:
                last_failure = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Period edit request %s %s failed (attempt %s/%s): %s",
                    method,
                    path,
                    attempt,
                    self._max_attempts,
                    last_failure,
                )
            else:
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    if response.is_error:
                        raise _error_from_response(response)
                    return response.json()
                last_failure = f"HTTP {response.status_code}"
                logger.warning(
                    "Period edit request %s %s got %s (attempt %s/%s)",
                    method,
                    path,
                    response.status_code,
                    attempt,
                    self._max_attempts,
                )

            if attempt < self._max_attempts:
                self._sleep(self._backoff_seconds * 2 ** (attempt - 1))

        raise PeriodEditingUnavailable(
            f"El servicio de edición no respondió tras {self._max_attempts} intentos ({last_failure})"
        )

    # Session auth.

    def login(self, email: str, password: str) -> dict[str, Any]:
        self._csrf_token = None
        return self._request("POST", "/login", {"email": email, "password": password})

    def select_company(self, company_id: uuid.UUID) -> dict[str, Any]:
        return self._request("POST", "/select-company", {"company_id": str(company_id)})

    # Period editing contract.

    def get_active_session(self, period_id: uuid.UUID) -> EditingSession | None:
        body = self._request("GET", f"/api/periods/{period_id}/edit-session")
        session_payload = body.get("session")
        return EditingSession.from_payload(session_payload) if session_payload else None

    def start_editing_session(self, period_id: uuid.UUID) -> EditingSession:
        body = self._request("POST", f"/api/periods/{period_id}/edit-session")
        return EditingSession.from_payload(body["session"])

    def save_changes(self, session_id: uuid.UUID, changes: EditingChanges) -> EditingSession:
        body = self._request("PUT", f"/api/edit-sessions/{session_id}/changes", {"changes": changes.to_payload()})
        return EditingSession.from_payload(body["session"])

    def apply_changes(self, session_id: uuid.UUID, changes: EditingChanges) -> dict[str, Any]:
        return self._request("POST", f"/api/edit-sessions/{session_id}/apply", {"changes": changes.to_payload()})

    def discard_changes(self, session_id: uuid.UUID) -> None:
        self._request("POST", f"/api/edit-sessions/{session_id}/discard", {})
