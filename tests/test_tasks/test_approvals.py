"""Tests for approval creation and resolution."""

from __future__ import annotations

import pytest

from festflow.errors import ApprovalNotFoundError
from festflow.tasks.approvals import (
    Decision,
    add_pending_approval,
    create_approval,
    drop_task_approvals,
    resolve_approval,
)
from festflow.tasks.models import ORCHESTRATOR, AgentName, ApprovalStatus, TaskStatus
from tests.conftest import make_task


@pytest.fixture
def awaiting():
    task = make_task(
        "post",
        agent=AgentName.MARKETING,
        status=TaskStatus.AWAITING_APPROVAL,
        progress=100,
        retries=2,
        title="Save the date post",
    )
    approval = create_approval(task, "Join us!")
    return (task,), (approval,)


def test_create_approval(awaiting):
    (task,), (approval,) = awaiting
    assert approval.task_id == task.id
    assert approval.agent == AgentName.MARKETING
    assert approval.title == "Approval for: Save the date post"
    assert approval.status == ApprovalStatus.PENDING


def test_add_pending_replaces_previous_for_same_task(awaiting):
    (task,), approvals = awaiting
    newer = create_approval(task, "Join us again!")
    other = create_approval(make_task("x", agent=AgentName.MARKETING), "Other")
    result = add_pending_approval((*approvals, other), newer)
    assert [a.content for a in result] == ["Other", "Join us again!"]


def test_drop_task_approvals(awaiting):
    _, approvals = awaiting
    assert drop_task_approvals(approvals, "post") == ()


def test_approve_completes_task(awaiting):
    tasks, approvals = awaiting
    result = resolve_approval(tasks, approvals, approvals[0].id, Decision.APPROVED)
    assert result.task.status == TaskStatus.COMPLETED
    assert result.task.progress == 100
    assert result.task.approved_content == "Join us!"
    assert result.approvals == ()
    assert result.logs[0].agent == ORCHESTRATOR
    assert result.logs[0].message == 'Decision received for "Save the date post": APPROVED'
    assert result.logs[1].agent == AgentName.MARKETING


def test_approve_with_edited_content(awaiting):
    tasks, approvals = awaiting
    result = resolve_approval(
        tasks, approvals, approvals[0].id, "approved", edited_content="Join us, friends!"
    )
    assert result.task.approved_content == "Join us, friends!"


def test_reject_resets_counters(awaiting):
    tasks, approvals = awaiting
    result = resolve_approval(tasks, approvals, approvals[0].id, Decision.REJECTED)
    task = result.task
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.retries == 0
    assert task.progress == 0
    assert task.custom_prompt is None
    assert task.approved_content is None
    assert result.logs[1].message == 'Task rejected: "Save the date post". Will attempt to regenerate.'


def test_reject_with_instruction(awaiting):
    tasks, approvals = awaiting
    result = resolve_approval(
        tasks, approvals, approvals[0].id, Decision.REJECTED, instruction="Make it shorter"
    )
    assert result.task.custom_prompt == "Make it shorter"
    assert "new prompt" in result.logs[1].message


def test_reject_instruction_ignored_when_disabled(awaiting):
    tasks, approvals = awaiting
    result = resolve_approval(
        tasks,
        approvals,
        approvals[0].id,
        Decision.REJECTED,
        instruction="Make it shorter",
        allow_instruction=False,
    )
    assert result.task.custom_prompt is None


def test_second_resolution_fails(awaiting):
    tasks, approvals = awaiting
    result = resolve_approval(tasks, approvals, approvals[0].id, Decision.APPROVED)
    with pytest.raises(ApprovalNotFoundError):
        resolve_approval(result.tasks, result.approvals, approvals[0].id, Decision.APPROVED)


def test_unknown_approval(awaiting):
    tasks, approvals = awaiting
    with pytest.raises(ApprovalNotFoundError):
        resolve_approval(tasks, approvals, "approval-nope", Decision.REJECTED)


def test_approval_for_missing_task_is_dropped(awaiting):
    _, approvals = awaiting
    result = resolve_approval((), approvals, approvals[0].id, Decision.APPROVED)
    assert result.task is None
    assert result.approvals == ()
    assert result.logs == ()
