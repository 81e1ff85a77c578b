"""Tests for the workflow engine: transitions, tasks and capability checks."""
import pytest

from ideaflow_core.database import create_session_factory
from ideaflow_core.exceptions import DiscussionLockedError, InvalidTransitionError, NotFoundError, PermissionDeniedError
from ideaflow_core.models import DiscussionOwnerType, IdeaStatus, Priority, TaskStatus, TrailEventType
from ideaflow_core.permissions import Capability
from ideaflow_core.schemas import (
    ApprovalAction,
    IdeaCreate,
    MessageCreate,
    NotificationType,
    TaskCreate,
    TaskUpdate,
    UserRef,
)
from ideaflow_core.services import build_services
from ideaflow_core.store import SqlAlchemyEntityStore


async def _trail_types(workflow, idea_id):
    events = await workflow.trail.collect(idea_id=idea_id)
    return [e.event_type for e in events]


class TestSubmitIdea:
    """Test idea submission."""

    async def test_submit_creates_pending_idea(self, workflow, contributor):
        idea = await workflow.submit_idea(
            IdeaCreate(title="Dark mode", category="UI", priority=Priority.HIGH),
            contributor,
        )
        assert idea.status == IdeaStatus.PENDING_APPROVAL
        assert idea.created_by.id == contributor.id
        assert idea.approved_by is None
        assert idea.attachments == []

        events = await workflow.trail.collect(idea_id=idea.id)
        assert len(events) == 1
        assert events[0].event_type == TrailEventType.SUBMITTED.value
        assert events[0].metadata == {"category": "UI", "priority": "high", "has_attachments": False}
        assert events[0].actor == {"id": contributor.id, "name": contributor.name}

    async def test_submit_with_files(self, workflow, contributor, test_settings):
        idea = await workflow.submit_idea(
            IdeaCreate(title="Faster builds"),
            contributor,
            files=[("plan.txt", b"cache the dependencies")],
        )
        assert [a.file_name for a in idea.attachments] == ["plan.txt"]
        assert idea.attachments[0].url == f"/attachments/idea/{idea.id}/plan.txt"

        events = await workflow.trail.collect(idea_id=idea.id)
        assert events[0].metadata["has_attachments"] is True

    async def test_submit_survives_failed_upload(self, test_settings, test_engine, kv, contributor):
        """An attachment that cannot be stored does not undo the submission."""
        store = SqlAlchemyEntityStore(create_session_factory(test_engine))  # no attachment storage
        services = build_services(test_settings, store, kv=kv)

        idea = await services.workflow.submit_idea(
            IdeaCreate(title="Faster builds"),
            contributor,
            files=[("plan.txt", b"cache the dependencies")],
        )
        assert idea.status == IdeaStatus.PENDING_APPROVAL
        assert idea.attachments == []

        events = await services.trail.collect(idea_id=idea.id)
        assert [e.event_type for e in events] == ["submitted"]
        assert events[0].metadata["has_attachments"] is True

        notification = services.notifications.recent(1)[0]
        assert notification.type == NotificationType.SUCCESS
        assert "1 attachment(s) could not be stored" in notification.message

    async def test_submit_requires_capability(self, workflow, outsider):
        with pytest.raises(PermissionDeniedError) as exc_info:
            await workflow.submit_idea(IdeaCreate(title="Nope"), outsider)
        assert exc_info.value.capability == Capability.SUBMIT_IDEA

    async def test_attach_file_appends(self, workflow, pending_idea, contributor):
        attachment = await workflow.attach_file(pending_idea.id, "mockup.png", b"\x89PNG", contributor)
        assert attachment.file_name == "mockup.png"

        idea = await workflow.get_idea(pending_idea.id)
        assert [a.file_name for a in idea.attachments] == ["mockup.png"]


class TestIdeaTransitions:
    """Test idea transitions through the engine."""

    async def test_approve_sets_reviewer(self, workflow, pending_idea, approver):
        idea = await workflow.transition(pending_idea.id, IdeaStatus.APPROVED, approver)
        assert idea.status == IdeaStatus.APPROVED
        assert idea.approved_by.id == approver.id
        assert idea.approved_at is not None

        events = await workflow.trail.collect(idea_id=idea.id)
        assert events[0].event_type == TrailEventType.APPROVED.value
        assert events[0].previous_status == "pending_approval"
        assert events[0].new_status == "approved"

    async def test_reject_sets_reviewer(self, workflow, pending_idea, approver):
        idea = await workflow.transition(pending_idea.id, IdeaStatus.REJECTED, approver)
        assert idea.status == IdeaStatus.REJECTED
        assert idea.approved_by.id == approver.id
        assert (await _trail_types(workflow, idea.id))[0] == "rejected"

    async def test_direct_return_to_pending_blocked(self, workflow, approved_idea, admin):
        with pytest.raises(InvalidTransitionError):
            await workflow.transition(approved_idea.id, IdeaStatus.PENDING_APPROVAL, admin)

        idea = await workflow.get_idea(approved_idea.id)
        assert idea.status == IdeaStatus.APPROVED

    async def test_direct_return_to_pending_blocked_for_reviewer(self, workflow, approved_idea, approver, outsider):
        """The graph is checked before capabilities, so every actor gets the same answer."""
        for actor in (approver, outsider):
            with pytest.raises(InvalidTransitionError) as exc_info:
                await workflow.transition(approved_idea.id, IdeaStatus.PENDING_APPROVAL, actor)
            assert exc_info.value.requested_status == IdeaStatus.PENDING_APPROVAL
        assert (await workflow.get_idea(approved_idea.id)).status == IdeaStatus.APPROVED

    async def test_direct_start_of_implementation_blocked(self, workflow, approved_idea, admin):
        """in_progress is entered by creating the first task, not by request."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            await workflow.transition(approved_idea.id, IdeaStatus.IN_PROGRESS, admin)
        assert "first task" in str(exc_info.value)
        assert (await workflow.get_idea(approved_idea.id)).status == IdeaStatus.APPROVED

    async def test_same_status_request_blocked(self, workflow, approved_idea, admin):
        with pytest.raises(InvalidTransitionError):
            await workflow.transition(approved_idea.id, IdeaStatus.APPROVED, admin)

    async def test_failed_transition_writes_no_event(self, workflow, pending_idea, admin):
        before = await _trail_types(workflow, pending_idea.id)
        with pytest.raises(InvalidTransitionError):
            await workflow.transition(pending_idea.id, IdeaStatus.COMPLETED, admin)
        assert await _trail_types(workflow, pending_idea.id) == before

    async def test_contributor_cannot_approve(self, workflow, pending_idea, contributor):
        with pytest.raises(PermissionDeniedError):
            await workflow.transition(pending_idea.id, IdeaStatus.APPROVED, contributor)

    async def test_approver_cannot_complete(self, workflow, approved_idea, approver):
        with pytest.raises(PermissionDeniedError):
            await workflow.transition(approved_idea.id, IdeaStatus.COMPLETED, approver)

    async def test_missing_idea(self, workflow, admin):
        with pytest.raises(NotFoundError) as exc_info:
            await workflow.transition(999, IdeaStatus.APPROVED, admin)
        assert str(exc_info.value) == "Idea #999 not found"

    async def test_complete_without_tasks(self, workflow, approved_idea, admin):
        """An idea with no tasks can be completed directly."""
        idea = await workflow.transition(approved_idea.id, IdeaStatus.COMPLETED, admin)
        assert idea.status == IdeaStatus.COMPLETED
        # approved_by is only kept while the idea is in a reviewed status
        assert idea.approved_by is None

    async def test_complete_requires_all_tasks_completed(self, workflow, approved_idea, admin, task_data):
        first = await workflow.create_task(approved_idea.id, task_data, admin)
        second = await workflow.create_task(approved_idea.id, TaskCreate(title="Record walkthrough"), admin)
        await workflow.update_task(first.id, TaskUpdate(status=TaskStatus.COMPLETED), admin)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await workflow.transition(approved_idea.id, IdeaStatus.COMPLETED, admin)
        assert f"#{second.id}" in str(exc_info.value)
        assert (await workflow.get_idea(approved_idea.id)).status == IdeaStatus.IN_PROGRESS

        await workflow.update_task(second.id, TaskUpdate(status=TaskStatus.COMPLETED), admin)
        idea = await workflow.transition(approved_idea.id, IdeaStatus.COMPLETED, admin)
        assert idea.status == IdeaStatus.COMPLETED

    async def test_completion_locks_task_threads(self, workflow, approved_idea, admin, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        await workflow.update_task(task.id, TaskUpdate(status=TaskStatus.COMPLETED), admin)
        thread = await workflow.discussions.get_thread_for_owner(DiscussionOwnerType.TASK, task.id)
        assert thread.locked is False

        await workflow.transition(approved_idea.id, IdeaStatus.COMPLETED, admin)
        assert await workflow.discussions.is_locked(thread.id)

    async def test_completion_lock_can_be_disabled(self, workflow, approved_idea, admin, task_data):
        workflow.lock_discussions_on_completion = False
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        await workflow.update_task(task.id, TaskUpdate(status=TaskStatus.COMPLETED), admin)
        await workflow.transition(approved_idea.id, IdeaStatus.COMPLETED, admin)

        thread = await workflow.discussions.get_thread_for_owner(DiscussionOwnerType.TASK, task.id)
        assert thread.locked is False

    async def test_lock_failure_does_not_undo_completion(self, workflow, approved_idea, admin, task_data, monkeypatch):
        from ideaflow_core.exceptions import StoreFailureError

        task = await workflow.create_task(approved_idea.id, task_data, admin)
        await workflow.update_task(task.id, TaskUpdate(status=TaskStatus.COMPLETED), admin)

        async def failing_lock(task_ids):
            raise StoreFailureError("database is locked", operation="update")

        monkeypatch.setattr(workflow.discussions, "lock_threads_for_tasks", failing_lock)
        idea = await workflow.transition(approved_idea.id, IdeaStatus.COMPLETED, admin)
        assert idea.status == IdeaStatus.COMPLETED


class TestRestore:
    """Test the undo primitive."""

    async def test_restore_returns_to_pending(self, workflow, approved_idea, approver):
        idea = await workflow.restore(
            approved_idea.id,
            original_status=IdeaStatus.PENDING_APPROVAL,
            expected_status=IdeaStatus.APPROVED,
            actor=approver,
        )
        assert idea.status == IdeaStatus.PENDING_APPROVAL
        assert idea.approved_by is None
        assert idea.approved_at is None

        events = await workflow.trail.collect(idea_id=idea.id)
        assert events[0].event_type == TrailEventType.REVERTED.value
        assert events[0].previous_status == "approved"
        assert events[0].new_status == "pending_approval"

    async def test_restore_refused_after_later_change(self, workflow, approved_idea, admin, task_data):
        await workflow.create_task(approved_idea.id, task_data, admin)  # moves idea to in_progress

        with pytest.raises(InvalidTransitionError) as exc_info:
            await workflow.restore(approved_idea.id, IdeaStatus.PENDING_APPROVAL, IdeaStatus.APPROVED, admin)
        assert "in_progress" in str(exc_info.value)


class TestTasks:
    """Test task creation and updates."""

    async def test_first_task_starts_implementation(self, workflow, approved_idea, admin, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        assert task.status == TaskStatus.NOT_STARTED
        assert task.idea_id == approved_idea.id

        idea = await workflow.get_idea(approved_idea.id)
        assert idea.status == IdeaStatus.IN_PROGRESS

        types = await _trail_types(workflow, approved_idea.id)
        # Most recent first: implicit status change after task creation
        assert types[:2] == ["status_changed", "task_created"]

        thread = await workflow.discussions.get_thread_for_owner(DiscussionOwnerType.TASK, task.id)
        assert thread is not None
        assert thread.idea_id == approved_idea.id

    async def test_second_task_does_not_transition_again(self, workflow, approved_idea, admin, task_data):
        await workflow.create_task(approved_idea.id, task_data, admin)
        before = await _trail_types(workflow, approved_idea.id)
        await workflow.create_task(approved_idea.id, TaskCreate(title="Second"), admin)
        after = await _trail_types(workflow, approved_idea.id)
        assert len(after) == len(before) + 1
        assert after[0] == "task_created"

    async def test_task_created_metadata(self, workflow, approved_idea, admin, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        events = await workflow.trail.collect(idea_id=approved_idea.id)
        created = next(e for e in events if e.event_type == "task_created")
        assert created.task_id == task.id
        assert created.metadata["task_title"] == "Write setup checklist"
        assert created.metadata["assigned_to"] == ["Casey Contributor"]

    async def test_tasks_need_approved_idea(self, workflow, pending_idea, admin, task_data):
        with pytest.raises(InvalidTransitionError):
            await workflow.create_task(pending_idea.id, task_data, admin)

    async def test_only_admins_create_tasks(self, workflow, approved_idea, approver, task_data):
        with pytest.raises(PermissionDeniedError):
            await workflow.create_task(approved_idea.id, task_data, approver)

    async def test_status_change_event(self, workflow, approved_idea, admin, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        await workflow.update_task(task.id, TaskUpdate(status=TaskStatus.ON_HOLD), admin)

        event = (await workflow.trail.collect(idea_id=approved_idea.id))[0]
        assert event.event_type == "status_changed"
        assert event.task_id == task.id
        assert event.previous_status == "not_started"
        assert event.new_status == "on_hold"

    async def test_any_task_status_may_follow_any_other(self, workflow, approved_idea, admin, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        for status in [TaskStatus.COMPLETED, TaskStatus.NOT_STARTED, TaskStatus.ON_HOLD, TaskStatus.IN_PROGRESS]:
            task = await workflow.update_task(task.id, TaskUpdate(status=status), admin)
            assert task.status == status

    async def test_field_update_event(self, workflow, approved_idea, admin, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        updated = await workflow.update_task(task.id, TaskUpdate(title="Write the checklist", percent_complete=40), admin)
        assert updated.title == "Write the checklist"

        event = (await workflow.trail.collect(idea_id=approved_idea.id))[0]
        assert event.event_type == "task_updated"
        assert event.metadata["changed_fields"] == ["percent_complete", "title"]
        assert event.previous_status == event.new_status == "not_started"

    async def test_assignee_updates_progress(self, workflow, approved_idea, admin, contributor, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        updated = await workflow.update_task(
            task.id,
            TaskUpdate(status=TaskStatus.IN_PROGRESS, percent_complete=50),
            contributor,
        )
        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.percent_complete == 50

    async def test_assignee_cannot_edit_other_fields(self, workflow, approved_idea, admin, contributor, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        with pytest.raises(PermissionDeniedError) as exc_info:
            await workflow.update_task(task.id, TaskUpdate(title="Renamed"), contributor)
        assert "title" in str(exc_info.value)

    async def test_non_assignee_cannot_update(self, workflow, approved_idea, admin, contributor):
        task = await workflow.create_task(approved_idea.id, TaskCreate(title="Unassigned"), admin)
        with pytest.raises(PermissionDeniedError):
            await workflow.update_task(task.id, TaskUpdate(percent_complete=10), contributor)

    async def test_empty_update_is_noop(self, workflow, approved_idea, admin, task_data):
        task = await workflow.create_task(approved_idea.id, task_data, admin)
        before = await _trail_types(workflow, approved_idea.id)
        unchanged = await workflow.update_task(task.id, TaskUpdate(), admin)
        assert unchanged.id == task.id
        assert await _trail_types(workflow, approved_idea.id) == before


class TestNotifications:
    """Test that each mutation resolves to exactly one notification."""

    async def test_success_emits_one_notification(self, workflow, services, pending_idea, approver):
        before = len(services.notifications)
        await workflow.transition(pending_idea.id, IdeaStatus.APPROVED, approver)
        assert len(services.notifications) == before + 1

        notification = services.notifications.recent(1)[0]
        assert notification.type == NotificationType.SUCCESS
        assert notification.title == "Idea approved"

    async def test_blocked_completion_emits_error(self, workflow, services, approved_idea, admin, task_data):
        await workflow.create_task(approved_idea.id, task_data, admin)
        before = len(services.notifications)

        with pytest.raises(InvalidTransitionError):
            await workflow.transition(approved_idea.id, IdeaStatus.COMPLETED, admin)

        assert len(services.notifications) == before + 1
        notification = services.notifications.recent(1)[0]
        assert notification.type == NotificationType.ERROR
        assert notification.title == "Could not change idea status"
        assert "not completed" in notification.message
        assert "try again" in notification.message.lower()

    async def test_locked_thread_emits_error(self, workflow, services, pending_idea, admin, contributor):
        thread = await workflow.discussions.create_thread(DiscussionOwnerType.IDEA, pending_idea.id)
        await workflow.set_discussion_lock(thread.id, True, admin)
        assert services.notifications.recent(1)[0].title == "Discussion locked"

        before = len(services.notifications)
        with pytest.raises(DiscussionLockedError):
            await workflow.post_message(thread.id, MessageCreate(body="Anyone?"), contributor)

        assert len(services.notifications) == before + 1
        notification = services.notifications.recent(1)[0]
        assert notification.type == NotificationType.ERROR
        assert notification.title == "Could not post message"

    async def test_missing_task_emits_error(self, workflow, services, admin):
        with pytest.raises(NotFoundError):
            await workflow.update_task(404, TaskUpdate(percent_complete=10), admin)
        assert services.notifications.recent(1)[0].title == "Could not update task"

    async def test_reviewer_action_is_not_reported_twice(self, coordinator, services, pending_idea, approver):
        before = len(services.notifications)
        await coordinator.handle_approval_action(pending_idea, ApprovalAction.APPROVE, approver)
        assert len(services.notifications) == before + 1


class TestListing:
    """Test listing helpers."""

    async def test_list_ideas_groups_by_status(self, workflow, pending_idea, approver, contributor):
        second = await workflow.submit_idea(IdeaCreate(title="Second"), contributor)
        await workflow.transition(pending_idea.id, IdeaStatus.APPROVED, approver)

        ideas, total = await workflow.list_ideas()
        assert total == 2
        assert [i.id for i in ideas] == [second.id, pending_idea.id]

        approved, total = await workflow.list_ideas(status=IdeaStatus.APPROVED)
        assert total == 1
        assert approved[0].id == pending_idea.id

    async def test_list_ideas_by_submitter(self, workflow, pending_idea, admin, contributor):
        await workflow.submit_idea(IdeaCreate(title="Admin idea"), admin)
        newer = await workflow.submit_idea(IdeaCreate(title="Another of mine"), contributor)

        mine, total = await workflow.list_ideas(created_by=contributor.id)
        assert total == 2
        assert [i.id for i in mine] == [newer.id, pending_idea.id]

        page, total = await workflow.list_ideas(created_by=contributor.id, limit=1, offset=1)
        assert total == 2
        assert [i.id for i in page] == [pending_idea.id]

        none, total = await workflow.list_ideas(created_by=contributor.id, status=IdeaStatus.APPROVED)
        assert (none, total) == ([], 0)

    async def test_list_tasks_for_user(self, workflow, approved_idea, admin, contributor, task_data):
        from datetime import datetime

        later = await workflow.create_task(
            approved_idea.id, task_data.model_copy(update={"due_date": datetime(2026, 5, 1)}), admin
        )
        undated = await workflow.create_task(approved_idea.id, task_data, admin)
        sooner = await workflow.create_task(
            approved_idea.id, task_data.model_copy(update={"due_date": datetime(2026, 4, 1)}), admin
        )
        await workflow.create_task(
            approved_idea.id,
            TaskCreate(title="Someone else's", assigned_to=[UserRef(id=admin.id, name=admin.name)]),
            admin,
        )

        tasks = await workflow.list_tasks_for_user(contributor.id)
        assert [t.id for t in tasks] == [sooner.id, later.id, undated.id]

        await workflow.update_task(sooner.id, TaskUpdate(status=TaskStatus.COMPLETED), contributor)
        done = await workflow.list_tasks_for_user(contributor.id, status=TaskStatus.COMPLETED)
        assert [t.id for t in done] == [sooner.id]

    async def test_list_threads_by_participant(self, workflow, pending_idea, approver, contributor):
        other = await workflow.submit_idea(IdeaCreate(title="Quiet idea"), contributor)
        thread = await workflow.discussions.create_thread(DiscussionOwnerType.IDEA, pending_idea.id)
        await workflow.discussions.create_thread(DiscussionOwnerType.IDEA, other.id)
        await workflow.post_message(thread.id, MessageCreate(body="Question for the author"), approver)

        mine = await workflow.discussions.list_threads(participant_id=approver.id)
        assert [t.id for t in mine] == [thread.id]
        assert await workflow.discussions.list_threads(participant_id=contributor.id) == []

    async def test_list_tasks_for_missing_idea(self, workflow):
        with pytest.raises(NotFoundError):
            await workflow.list_tasks(404)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
