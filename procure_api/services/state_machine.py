"""
Request approval state machine.

The (status, manager_status, approver_status) triple of a request is modelled
as a single closed enum, ``WorkflowNode``; every valid combination is exactly
one member and nothing else can be written back to a request.

Transitions:
  DRAFT / RETURNED_*  --submit-->           AWAITING_MANAGER
  AWAITING_MANAGER    --manager-approve-->  AWAITING_APPROVER
                      --manager-reject-->   DENIED_BY_MANAGER   (terminal)
                      --manager-return-->   RETURNED_BY_MANAGER
  AWAITING_APPROVER   --approve-->          APPROVED            (terminal)
                      --reject-->           REJECTED_BY_APPROVER (terminal)
                      --return-->           RETURNED_BY_APPROVER
  APPROVED            --reopen-->           REOPENED
  REOPENED            behaves like AWAITING_MANAGER for manager actions
  edit / delete       allowed while status is OPEN or PENDING_MANAGER_APPROVAL

Pure module: no I/O, no session, no actor. Authorization lives in
``access_policy``; persistence in ``request_service``.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from procure_api.exceptions import InvalidStateError
from procure_api.models.enums import ApproverStatus, ManagerStatus, RequestStatus


class WorkflowNode(enum.Enum):
    DRAFT = (RequestStatus.OPEN, None, None)
    RETURNED_BY_MANAGER = (RequestStatus.OPEN, ManagerStatus.RETURN, None)
    RETURNED_BY_APPROVER = (
        RequestStatus.OPEN,
        ManagerStatus.PENDING_AUTHORIZATION,
        ApproverStatus.RETURN,
    )
    AWAITING_MANAGER = (
        RequestStatus.PENDING_MANAGER_APPROVAL,
        ManagerStatus.PENDING_AUTHORIZATION,
        None,
    )
    AWAITING_APPROVER = (
        RequestStatus.PENDING_APPROVAL,
        ManagerStatus.AUTHORIZE,
        ApproverStatus.PENDING_APPROVAL,
    )
    DENIED_BY_MANAGER = (RequestStatus.REJECTED, ManagerStatus.DENY, None)
    APPROVED = (
        RequestStatus.APPROVED,
        ManagerStatus.AUTHORIZE,
        ApproverStatus.APPROVE,
    )
    REJECTED_BY_APPROVER = (
        RequestStatus.REJECTED,
        ManagerStatus.AUTHORIZE,
        ApproverStatus.REJECT,
    )
    REOPENED = (
        RequestStatus.REOPENED,
        ManagerStatus.PENDING_AUTHORIZATION,
        ApproverStatus.PENDING_APPROVAL,
    )

    @property
    def status(self) -> RequestStatus:
        return self.value[0]

    @property
    def manager_status(self) -> Optional[ManagerStatus]:
        return self.value[1]

    @property
    def approver_status(self) -> Optional[ApproverStatus]:
        return self.value[2]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_NODES

    def as_dict(self) -> dict[str, Optional[str]]:
        return {
            "status": self.status.value,
            "manager_status": self.manager_status.value if self.manager_status else None,
            "approver_status": self.approver_status.value if self.approver_status else None,
        }

    @classmethod
    def from_statuses(
        cls,
        status: Optional[str],
        manager_status: Optional[str],
        approver_status: Optional[str],
    ) -> "WorkflowNode":
        """Resolve stored column values to a node. Unknown triples are a data error."""
        try:
            key = (
                RequestStatus(status),
                ManagerStatus(manager_status) if manager_status else None,
                ApproverStatus(approver_status) if approver_status else None,
            )
            return cls(key)
        except ValueError:
            raise InvalidStateError(
                "Request is in an unrecognised workflow state",
                current_state={
                    "status": status,
                    "manager_status": manager_status,
                    "approver_status": approver_status,
                },
            )


TERMINAL_NODES = frozenset(
    {
        WorkflowNode.APPROVED,
        WorkflowNode.DENIED_BY_MANAGER,
        WorkflowNode.REJECTED_BY_APPROVER,
    }
)

OPEN_NODES = frozenset(
    {
        WorkflowNode.DRAFT,
        WorkflowNode.RETURNED_BY_MANAGER,
        WorkflowNode.RETURNED_BY_APPROVER,
    }
)

EDITABLE_NODES = OPEN_NODES | {WorkflowNode.AWAITING_MANAGER}

EDITABLE_STATUSES = frozenset(
    {RequestStatus.OPEN, RequestStatus.PENDING_MANAGER_APPROVAL}
)

MANAGER_PENDING_NODES = frozenset(
    {WorkflowNode.AWAITING_MANAGER, WorkflowNode.REOPENED}
)


class Action(str, enum.Enum):
    SUBMIT = "submit"
    MANAGER_APPROVE = "manager-approve"
    MANAGER_REJECT = "manager-reject"
    MANAGER_RETURN = "manager-return"
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    REOPEN = "reopen"
    EDIT = "edit"
    DELETE = "delete"


MANAGER_ACTIONS = frozenset(
    {Action.MANAGER_APPROVE, Action.MANAGER_REJECT, Action.MANAGER_RETURN}
)
APPROVER_ACTIONS = frozenset({Action.APPROVE, Action.REJECT, Action.RETURN})

CREATED_LABEL = "Criada"
# Recorded as new_status of the history row written just before deletion.
DELETED_STATUS = "CANCELLED"


@dataclass(frozen=True)
class Transition:
    action: Action
    sources: frozenset
    # None keeps the current node (edit) or removes the request (delete).
    target: Optional[WorkflowNode]
    label: str
    requires_reason: bool = False

    def next_node(self, current: WorkflowNode) -> Optional[WorkflowNode]:
        if self.action == Action.DELETE:
            return None
        return self.target or current


TRANSITIONS: dict[Action, Transition] = {
    Action.SUBMIT: Transition(
        Action.SUBMIT, OPEN_NODES, WorkflowNode.AWAITING_MANAGER, "Submitted"
    ),
    Action.MANAGER_APPROVE: Transition(
        Action.MANAGER_APPROVE,
        MANAGER_PENDING_NODES,
        WorkflowNode.AWAITING_APPROVER,
        "Autorizada pelo Gestor",
    ),
    Action.MANAGER_REJECT: Transition(
        Action.MANAGER_REJECT,
        MANAGER_PENDING_NODES,
        WorkflowNode.DENIED_BY_MANAGER,
        "Negada pelo Gestor",
        requires_reason=True,
    ),
    Action.MANAGER_RETURN: Transition(
        Action.MANAGER_RETURN,
        MANAGER_PENDING_NODES,
        WorkflowNode.RETURNED_BY_MANAGER,
        "Devolvida pelo Gestor",
        requires_reason=True,
    ),
    Action.APPROVE: Transition(
        Action.APPROVE,
        frozenset({WorkflowNode.AWAITING_APPROVER}),
        WorkflowNode.APPROVED,
        "Aprovação Final",
    ),
    Action.REJECT: Transition(
        Action.REJECT,
        frozenset({WorkflowNode.AWAITING_APPROVER}),
        WorkflowNode.REJECTED_BY_APPROVER,
        "Rejeitada pelo Aprovador",
        requires_reason=True,
    ),
    Action.RETURN: Transition(
        Action.RETURN,
        frozenset({WorkflowNode.AWAITING_APPROVER}),
        WorkflowNode.RETURNED_BY_APPROVER,
        "Devolvida pelo Aprovador",
        requires_reason=True,
    ),
    Action.REOPEN: Transition(
        Action.REOPEN,
        frozenset({WorkflowNode.APPROVED}),
        WorkflowNode.REOPENED,
        "REOPENED",
        requires_reason=True,
    ),
    Action.EDIT: Transition(Action.EDIT, EDITABLE_NODES, None, "Editada"),
    Action.DELETE: Transition(Action.DELETE, EDITABLE_NODES, None, "Excluída"),
}

_missing = set(Action) - set(TRANSITIONS)
if _missing:
    raise RuntimeError(f"Actions without a transition: {sorted(a.value for a in _missing)}")


def _rejection_reason(node: WorkflowNode, action: Action) -> str:
    if action == Action.SUBMIT:
        return "Only open requests can be submitted"

    if action in MANAGER_ACTIONS:
        if node.manager_status != ManagerStatus.PENDING_AUTHORIZATION:
            return "Request was already processed by the manager"
        return "Request must be resubmitted before the manager can act on it"

    if action in APPROVER_ACTIONS:
        if node.manager_status != ManagerStatus.AUTHORIZE:
            return "Request must first be authorized by the department manager"
        return "Request was already processed by the approver"

    if action == Action.REOPEN:
        return "Only approved requests can be reopened"

    verb = "edited" if action == Action.EDIT else "deleted"
    return (
        f"Requests can only be {verb} while {RequestStatus.OPEN.value} "
        f"or {RequestStatus.PENDING_MANAGER_APPROVAL.value}"
    )


def check_transition(
    node: WorkflowNode,
    action: Action,
    processed_by: Optional[str] = None,
) -> Transition:
    """Return the transition for ``action`` from ``node`` or raise InvalidStateError.

    ``processed_by`` names whoever last moved the request; it is attached to
    the error when the guard fails because someone got there first.
    """
    transition = TRANSITIONS[action]
    if node in transition.sources:
        return transition

    message = _rejection_reason(node, action)
    already_processed = message.startswith("Request was already processed")
    if already_processed and processed_by:
        message = f"{message} ({processed_by})"
    raise InvalidStateError(
        message,
        current_state=node.as_dict(),
        processed_by=processed_by if already_processed else None,
    )


def available_actions(node: WorkflowNode) -> list[Action]:
    """Actions whose state guard accepts ``node``, in declaration order."""
    return [a for a, t in TRANSITIONS.items() if node in t.sources]
