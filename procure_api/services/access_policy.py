"""
Access control policy: role, ownership and department gate in front of
every workflow action.

Roles:
  USER      own requests only (create, view, edit/delete while editable, submit)
  MANAGER   manager-approve / reject / return for their own department; views it
  APPROVER  final approve / reject / return and reopen, any department
  ADMIN     stands in for MANAGER and APPROVER actions (except reopen),
            edits/deletes any editable request, owns master data

Every check fails closed: an unknown role, a missing department or a
department mismatch raises NotAuthorizedError.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from procure_api.exceptions import NotAuthorizedError
from procure_api.models.enums import Role
from procure_api.services.state_machine import (
    APPROVER_ACTIONS,
    MANAGER_ACTIONS,
    Action,
    available_actions,
)


@dataclass(frozen=True)
class Actor:
    """Already-authenticated identity performing an operation."""

    id: uuid.UUID
    name: str
    role: str
    department_id: Optional[uuid.UUID] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def _role_of(actor: Optional[Actor]) -> Role:
    if actor is None:
        raise NotAuthorizedError("Not authorized: no authenticated actor")
    try:
        return Role(actor.role)
    except ValueError:
        raise NotAuthorizedError(f"Not authorized: unknown role '{actor.role}'")


def _same(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def is_owner(actor: Actor, request: Any) -> bool:
    return _same(actor.id, request.user_id)


def ensure_can_create(actor: Optional[Actor]) -> None:
    _role_of(actor)
    if actor.department_id is None:
        raise NotAuthorizedError("User has no department and cannot create requests")


def can_view(actor: Optional[Actor], request: Any) -> bool:
    try:
        role = _role_of(actor)
    except NotAuthorizedError:
        return False
    if role in (Role.APPROVER, Role.ADMIN):
        return True
    if role == Role.MANAGER:
        return _same(actor.department_id, request.department_id) or is_owner(actor, request)
    return is_owner(actor, request)


def ensure_can_view(actor: Optional[Actor], request: Any) -> None:
    if not can_view(actor, request):
        raise NotAuthorizedError("Not authorized to view this request")


def authorize(actor: Optional[Actor], action: Action, request: Any) -> None:
    """Raise NotAuthorizedError unless ``actor`` may perform ``action`` on ``request``.

    Independent of the request's workflow state; the state guard runs after.
    """
    role = _role_of(actor)

    if action in MANAGER_ACTIONS:
        if role == Role.ADMIN:
            return
        if role != Role.MANAGER:
            raise NotAuthorizedError("Only department managers can use this action")
        if not _same(actor.department_id, request.department_id):
            raise NotAuthorizedError(
                "You can only act on requests from your own department"
            )
        return

    if action in APPROVER_ACTIONS:
        if role not in (Role.APPROVER, Role.ADMIN):
            raise NotAuthorizedError("Only approvers can use this action")
        return

    if action == Action.REOPEN:
        if role != Role.APPROVER:
            raise NotAuthorizedError("Only approvers can reopen requests")
        return

    if action in (Action.SUBMIT, Action.EDIT, Action.DELETE):
        if role == Role.ADMIN or is_owner(actor, request):
            return
        raise NotAuthorizedError(
            f"You do not have permission to {action.value} this request"
        )

    raise NotAuthorizedError(f"Not authorized for action '{action}'")


def require_admin(actor: Optional[Actor]) -> None:
    if _role_of(actor) != Role.ADMIN:
        raise NotAuthorizedError("Only administrators can manage master data")


def permitted_actions(actor: Optional[Actor], request: Any) -> list[Action]:
    """Actions both the state guard and this policy would accept right now."""
    allowed = []
    for action in available_actions(request.node):
        try:
            authorize(actor, action, request)
        except NotAuthorizedError:
            continue
        allowed.append(action)
    return allowed
