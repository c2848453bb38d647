"""
Unit tests for procure_api/services/notification_service.py

Tests: plan_notifications recipient sets per action, de-duplication,
       reason interpolation, resolve_recipients lookups, dispatch failure
       isolation.
"""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from procure_api.models.enums import NotificationType
from procure_api.services.notification_service import (
    NotificationDraft,
    Recipients,
    dispatch_notifications,
    plan_notifications,
    resolve_recipients,
)
from procure_api.services.state_machine import Action


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_request(**overrides):
    values = {
        "id": uuid.uuid4(),
        "request_number": "REQ-2026-007",
        "user_id": uuid.uuid4(),
        "department_id": uuid.uuid4(),
        "manager_approved_by": None,
        "manager_approved_by_id": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _mock_session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    return session


def _session_factory(session) -> MagicMock:
    """Mimics ``async_sessionmaker``: calling it yields an async context manager."""
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context)


# ---------------------------------------------------------------------------
# plan_notifications
# ---------------------------------------------------------------------------


def test_submit_notifies_every_department_manager_once():
    request = _make_request()
    m1, m2 = uuid.uuid4(), uuid.uuid4()
    recipients = Recipients(request.user_id, department_manager_ids=(m1, m2, m1))

    drafts = plan_notifications(Action.SUBMIT, request, recipients)

    assert [d.user_id for d in drafts] == [m1, m2]
    assert {d.type for d in drafts} == {NotificationType.REQUEST_CREATED}
    assert all("REQ-2026-007" in d.message for d in drafts)
    assert all(d.request_id == request.id for d in drafts)


def test_submit_without_managers_notifies_nobody():
    request = _make_request()
    assert plan_notifications(Action.SUBMIT, request, Recipients(request.user_id)) == []


def test_manager_return_notifies_requester_with_reason():
    request = _make_request()
    drafts = plan_notifications(
        Action.MANAGER_RETURN,
        request,
        Recipients(request.user_id, department_manager_ids=(uuid.uuid4(),)),
        reason="budget exceeded",
    )

    assert len(drafts) == 1
    assert drafts[0].user_id == request.user_id
    assert drafts[0].type == NotificationType.STATUS_CHANGED
    assert "budget exceeded" in drafts[0].message


@pytest.mark.parametrize(
    "action,expected_type",
    [
        (Action.MANAGER_APPROVE, NotificationType.STATUS_CHANGED),
        (Action.MANAGER_REJECT, NotificationType.REQUEST_REJECTED),
        (Action.APPROVE, NotificationType.REQUEST_APPROVED),
        (Action.REJECT, NotificationType.REQUEST_REJECTED),
        (Action.RETURN, NotificationType.STATUS_CHANGED),
    ],
)
def test_decisions_notify_requester_only(action, expected_type):
    request = _make_request()
    drafts = plan_notifications(action, request, Recipients(request.user_id), reason="x")
    assert [(d.user_id, d.type) for d in drafts] == [(request.user_id, expected_type)]


def test_reopen_notifies_requester_and_previous_manager():
    request = _make_request()
    manager_id = uuid.uuid4()
    drafts = plan_notifications(
        Action.REOPEN,
        request,
        Recipients(request.user_id, previous_manager_id=manager_id),
        reason="re-evaluate pricing",
    )

    assert [d.user_id for d in drafts] == [request.user_id, manager_id]
    assert all("re-evaluate pricing" in d.message for d in drafts)


def test_reopen_does_not_notify_same_person_twice():
    request = _make_request()
    drafts = plan_notifications(
        Action.REOPEN,
        request,
        Recipients(request.user_id, previous_manager_id=request.user_id),
        reason="r",
    )
    assert len(drafts) == 1


@pytest.mark.parametrize("action", [Action.EDIT, Action.DELETE])
def test_edit_and_delete_notify_nobody(action):
    request = _make_request()
    assert plan_notifications(action, request, Recipients(request.user_id)) == []


# ---------------------------------------------------------------------------
# resolve_recipients
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reopen_uses_stored_manager_id_without_query():
    manager_id = uuid.uuid4()
    request = _make_request(manager_approved_by_id=manager_id, manager_approved_by="Carla")
    session = _mock_session()

    recipients = await resolve_recipients(session, Action.REOPEN, request)

    assert recipients.previous_manager_id == manager_id
    session.execute.assert_not_called()


@pytest.mark.asyncio
async def test_reopen_without_manager_record_has_no_previous_manager():
    session = _mock_session()
    recipients = await resolve_recipients(session, Action.REOPEN, _make_request())
    assert recipients.previous_manager_id is None


@pytest.mark.asyncio
async def test_approve_needs_no_lookup():
    session = _mock_session()
    request = _make_request()
    recipients = await resolve_recipients(session, Action.APPROVE, request)
    assert recipients.requester_id == request.user_id
    assert recipients.department_manager_ids == ()
    session.execute.assert_not_called()


# ---------------------------------------------------------------------------
# dispatch_notifications
# ---------------------------------------------------------------------------


def _draft() -> NotificationDraft:
    return NotificationDraft(
        user_id=uuid.uuid4(),
        request_id=uuid.uuid4(),
        type=NotificationType.STATUS_CHANGED,
        title="t",
        message="m",
    )


@pytest.mark.asyncio
async def test_dispatch_inserts_each_draft_and_commits():
    session = _mock_session()
    stored = await dispatch_notifications([_draft(), _draft()], _session_factory(session))

    assert stored == 2
    assert session.add.call_count == 2
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_dispatch_failure_is_swallowed_and_reported():
    session = _mock_session()
    session.commit.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))

    stored = await dispatch_notifications([_draft()], _session_factory(session))

    assert stored == 0


@pytest.mark.asyncio
async def test_dispatch_nothing_opens_no_session():
    factory = MagicMock()
    assert await dispatch_notifications([], factory) == 0
    factory.assert_not_called()
