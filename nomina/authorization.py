"""Authorization capabilities and semantic permission decorators."""

from __future__ import annotations

import functools
from typing import Callable

from flask import abort

from nomina.company import current_membership
from nomina.models import Membership, MembershipRole

PAYROLL_EDITOR_ROLES = {MembershipRole.ADMINISTRADOR, MembershipRole.RRHH}
PAYROLL_EXPORT_ROLES = PAYROLL_EDITOR_ROLES | {MembershipRole.CONTADOR}


def can_view_periods(role: MembershipRole) -> bool:
    return role in set(MembershipRole)


def can_edit_closed_periods(role: MembershipRole) -> bool:
    return role in PAYROLL_EDITOR_ROLES


def can_close_periods(role: MembershipRole) -> bool:
    return role in PAYROLL_EDITOR_ROLES


def can_manage_employees(role: MembershipRole) -> bool:
    return role in PAYROLL_EDITOR_ROLES


def can_export_payroll(role: MembershipRole) -> bool:
    return role in PAYROLL_EXPORT_ROLES


def _membership_role_predicate(check: Callable[[MembershipRole], bool]) -> Callable[[Membership], bool]:
    def predicate(membership: Membership) -> bool:
        return check(membership.role)

    return predicate


def permission_required(permission_name: str, check: Callable[[Membership], bool]):
    def decorator(view: Callable):
        @functools.wraps(view)
        def wrapped(*args, **kwargs):
            membership = current_membership()
            if membership is None or not check(membership):
                abort(403, description=f"Permisos insuficientes: {permission_name}.")
            return view(*args, **kwargs)

        return wrapped

    return decorator


view_periods_required = permission_required("view_periods", _membership_role_predicate(can_view_periods))
edit_periods_required = permission_required("edit_closed_periods", _membership_role_predicate(can_edit_closed_periods))
close_periods_required = permission_required("close_periods", _membership_role_predicate(can_close_periods))
manage_employees_required = permission_required("manage_employees", _membership_role_predicate(can_manage_employees))
export_payroll_required = permission_required("export_payroll", _membership_role_predicate(can_export_payroll))
