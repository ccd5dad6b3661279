"""Audit logging helper."""

from __future__ import annotations

import uuid
from typing import Any

from nomina.company import current_user_id, get_active_company_id
from nomina.extensions import db
from nomina.models import AuditLog


def log_audit(
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | None,
    payload: dict[str, Any] | None = None,
    *,
    company_id: uuid.UUID | None = None,
    actor_user_id: uuid.UUID | None = None,
) -> None:
    """Queue an audit row on the current session.

    Company and actor default to the request's active company and logged-in
    user; nothing is recorded when no company can be resolved.
    """
    company_uuid = company_id or get_active_company_id()
    if company_uuid is None:
        return

    db.session.add(
        AuditLog(
            company_id=company_uuid,
            actor_user_id=actor_user_id or current_user_id(),
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload_json=payload or {},
        )
    )
