"""
Unit tests for procure_api/services/state_machine.py

Tests: node <-> status triple mapping, the transition table, guard messages
       (manager-first, already processed, reopen), available_actions.
"""

import pytest

from procure_api.exceptions import InvalidStateError
from procure_api.services.state_machine import (
    OPEN_NODES,
    TRANSITIONS,
    Action,
    WorkflowNode,
    available_actions,
    check_transition,
)


EXPECTED_TARGETS = {
    (WorkflowNode.DRAFT, Action.SUBMIT): WorkflowNode.AWAITING_MANAGER,
    (WorkflowNode.RETURNED_BY_MANAGER, Action.SUBMIT): WorkflowNode.AWAITING_MANAGER,
    (WorkflowNode.RETURNED_BY_APPROVER, Action.SUBMIT): WorkflowNode.AWAITING_MANAGER,
    (WorkflowNode.AWAITING_MANAGER, Action.MANAGER_APPROVE): WorkflowNode.AWAITING_APPROVER,
    (WorkflowNode.AWAITING_MANAGER, Action.MANAGER_REJECT): WorkflowNode.DENIED_BY_MANAGER,
    (WorkflowNode.AWAITING_MANAGER, Action.MANAGER_RETURN): WorkflowNode.RETURNED_BY_MANAGER,
    (WorkflowNode.REOPENED, Action.MANAGER_APPROVE): WorkflowNode.AWAITING_APPROVER,
    (WorkflowNode.REOPENED, Action.MANAGER_REJECT): WorkflowNode.DENIED_BY_MANAGER,
    (WorkflowNode.REOPENED, Action.MANAGER_RETURN): WorkflowNode.RETURNED_BY_MANAGER,
    (WorkflowNode.AWAITING_APPROVER, Action.APPROVE): WorkflowNode.APPROVED,
    (WorkflowNode.AWAITING_APPROVER, Action.REJECT): WorkflowNode.REJECTED_BY_APPROVER,
    (WorkflowNode.AWAITING_APPROVER, Action.RETURN): WorkflowNode.RETURNED_BY_APPROVER,
    (WorkflowNode.APPROVED, Action.REOPEN): WorkflowNode.REOPENED,
}


# ---------------------------------------------------------------------------
# Node mapping
# ---------------------------------------------------------------------------


def test_stored_columns_resolve_back_to_the_same_node():
    for node in WorkflowNode:
        columns = node.as_dict()
        assert WorkflowNode.from_statuses(
            columns["status"], columns["manager_status"], columns["approver_status"]
        ) is node


def test_returned_by_approver_keeps_manager_pending():
    """Approver return sends the request back through the manager."""
    assert WorkflowNode.RETURNED_BY_APPROVER.as_dict() == {
        "status": "OPEN",
        "manager_status": "PENDING_AUTHORIZATION",
        "approver_status": "RETURN",
    }


def test_unknown_triple_is_a_data_error():
    with pytest.raises(InvalidStateError) as exc:
        WorkflowNode.from_statuses("APPROVED", "DENY", None)
    assert exc.value.current_state["manager_status"] == "DENY"


def test_unknown_status_value_is_a_data_error():
    with pytest.raises(InvalidStateError):
        WorkflowNode.from_statuses("ARCHIVED", None, None)


def test_terminal_nodes():
    terminal = {n for n in WorkflowNode if n.is_terminal}
    assert terminal == {
        WorkflowNode.APPROVED,
        WorkflowNode.DENIED_BY_MANAGER,
        WorkflowNode.REJECTED_BY_APPROVER,
    }


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("node,action", list(EXPECTED_TARGETS))
def test_accepted_transitions_reach_expected_node(node, action):
    transition = check_transition(node, action)
    assert transition.next_node(node) is EXPECTED_TARGETS[(node, action)]


def test_every_other_workflow_action_is_rejected():
    workflow_actions = [a for a in Action if a not in (Action.EDIT, Action.DELETE)]
    for node in WorkflowNode:
        for action in workflow_actions:
            if (node, action) in EXPECTED_TARGETS:
                continue
            with pytest.raises(InvalidStateError):
                check_transition(node, action)


def test_edit_keeps_node_and_delete_removes_request():
    edit = check_transition(WorkflowNode.AWAITING_MANAGER, Action.EDIT)
    assert edit.next_node(WorkflowNode.AWAITING_MANAGER) is WorkflowNode.AWAITING_MANAGER

    delete = check_transition(WorkflowNode.DRAFT, Action.DELETE)
    assert delete.next_node(WorkflowNode.DRAFT) is None


@pytest.mark.parametrize(
    "node",
    [
        WorkflowNode.AWAITING_APPROVER,
        WorkflowNode.APPROVED,
        WorkflowNode.DENIED_BY_MANAGER,
        WorkflowNode.REJECTED_BY_APPROVER,
        WorkflowNode.REOPENED,
    ],
)
def test_edit_and_delete_refused_once_manager_has_acted(node):
    for action in (Action.EDIT, Action.DELETE):
        with pytest.raises(InvalidStateError) as exc:
            check_transition(node, action)
        assert "OPEN or PENDING_MANAGER_APPROVAL" in exc.value.message


def test_reasons_required_for_rejections_returns_and_reopen():
    needs_reason = {a for a, t in TRANSITIONS.items() if t.requires_reason}
    assert needs_reason == {
        Action.MANAGER_REJECT,
        Action.MANAGER_RETURN,
        Action.REJECT,
        Action.RETURN,
        Action.REOPEN,
    }


def test_history_labels():
    assert TRANSITIONS[Action.SUBMIT].label == "Submitted"
    assert TRANSITIONS[Action.MANAGER_APPROVE].label == "Autorizada pelo Gestor"
    assert TRANSITIONS[Action.APPROVE].label == "Aprovação Final"
    assert TRANSITIONS[Action.REOPEN].label == "REOPENED"


# ---------------------------------------------------------------------------
# Guard messages
# ---------------------------------------------------------------------------


def test_approve_before_manager_authorization_explains_why():
    with pytest.raises(InvalidStateError) as exc:
        check_transition(WorkflowNode.AWAITING_MANAGER, Action.APPROVE)
    assert "authorized by the department manager" in exc.value.message
    assert exc.value.details["current_state"] == WorkflowNode.AWAITING_MANAGER.as_dict()


def test_second_manager_decision_names_who_processed_it():
    with pytest.raises(InvalidStateError) as exc:
        check_transition(
            WorkflowNode.AWAITING_APPROVER,
            Action.MANAGER_APPROVE,
            processed_by="Carla Mendes",
        )
    assert "already processed by the manager" in exc.value.message
    assert exc.value.processed_by == "Carla Mendes"
    assert exc.value.details["processed_by"] == "Carla Mendes"


def test_processed_by_not_attached_when_request_never_reached_manager():
    with pytest.raises(InvalidStateError) as exc:
        check_transition(
            WorkflowNode.RETURNED_BY_APPROVER,
            Action.MANAGER_APPROVE,
            processed_by="Carla Mendes",
        )
    assert exc.value.processed_by is None
    assert "resubmitted" in exc.value.message


def test_reopen_only_from_approved():
    for node in WorkflowNode:
        if node is WorkflowNode.APPROVED:
            continue
        with pytest.raises(InvalidStateError) as exc:
            check_transition(node, Action.REOPEN)
        assert exc.value.message == "Only approved requests can be reopened"


# ---------------------------------------------------------------------------
# available_actions
# ---------------------------------------------------------------------------


def test_available_actions_for_open_nodes():
    for node in OPEN_NODES:
        assert available_actions(node) == [Action.SUBMIT, Action.EDIT, Action.DELETE]


def test_available_actions_while_awaiting_manager():
    assert available_actions(WorkflowNode.AWAITING_MANAGER) == [
        Action.MANAGER_APPROVE,
        Action.MANAGER_REJECT,
        Action.MANAGER_RETURN,
        Action.EDIT,
        Action.DELETE,
    ]


def test_reopened_offers_manager_actions_only():
    assert available_actions(WorkflowNode.REOPENED) == [
        Action.MANAGER_APPROVE,
        Action.MANAGER_REJECT,
        Action.MANAGER_RETURN,
    ]


def test_dead_ends():
    assert available_actions(WorkflowNode.DENIED_BY_MANAGER) == []
    assert available_actions(WorkflowNode.REJECTED_BY_APPROVER) == []
    assert available_actions(WorkflowNode.APPROVED) == [Action.REOPEN]
