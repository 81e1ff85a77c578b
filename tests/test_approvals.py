"""Tests for the approval coordinator: single-flight review actions and undo."""
import asyncio

import pytest

from ideaflow_core.exceptions import BusyError, InvalidTransitionError, PermissionDeniedError
from ideaflow_core.models import IdeaStatus
from ideaflow_core.schemas import ApprovalAction, IdeaCreate, NotificationType


@pytest.fixture
async def queue(workflow, coordinator, contributor):
    """Three pending ideas loaded into the coordinator, oldest first."""
    ideas = []
    for title in ["First idea", "Second idea", "Third idea"]:
        ideas.append(await workflow.submit_idea(IdeaCreate(title=title), contributor))
    await coordinator.refresh_pending()
    return ideas


class TestApprovalActions:
    """Test approve and reject."""

    async def test_refresh_loads_oldest_first(self, coordinator, queue):
        assert [i.title for i in coordinator.pending] == ["First idea", "Second idea", "Third idea"]

    async def test_approve_removes_from_pending(self, coordinator, queue, approver, services):
        response = await coordinator.handle_approval_action(queue[1], ApprovalAction.APPROVE, approver)

        assert response.idea.status == IdeaStatus.APPROVED
        assert response.undo_available is True
        assert response.notification.type == NotificationType.SUCCESS
        assert response.notification.duration_ms == 4000
        assert [i.id for i in coordinator.pending] == [queue[0].id, queue[2].id]
        assert coordinator.busy is False

        record = coordinator.undo_cache.peek()
        assert record.idea_id == queue[1].id
        assert record.action == ApprovalAction.APPROVE
        assert record.original_status == IdeaStatus.PENDING_APPROVAL
        assert record.snapshot.status == IdeaStatus.PENDING_APPROVAL
        assert services.notifications.recent(1)[0].title == "Idea approved"

    async def test_reject(self, coordinator, queue, approver):
        response = await coordinator.handle_approval_action(queue[0], ApprovalAction.REJECT, approver)
        assert response.idea.status == IdeaStatus.REJECTED
        assert "rejected" in response.notification.message

    async def test_failed_action_keeps_idea_pending(self, coordinator, queue, contributor, services):
        with pytest.raises(PermissionDeniedError):
            await coordinator.handle_approval_action(queue[0], ApprovalAction.APPROVE, contributor)

        assert coordinator.busy is False
        assert [i.id for i in coordinator.pending] == [i.id for i in queue]
        assert coordinator.undo_cache.peek() is None

        notification = services.notifications.recent(1)[0]
        assert notification.type == NotificationType.ERROR
        assert notification.duration_ms == 6000
        assert "try again" in notification.message.lower()

    async def test_failed_action_keeps_previous_undo_record(self, coordinator, queue, approver, workflow):
        await coordinator.handle_approval_action(queue[0], ApprovalAction.APPROVE, approver)
        stale = await workflow.get_idea(queue[0].id)  # already approved

        with pytest.raises(InvalidTransitionError):
            await coordinator.handle_approval_action(stale, ApprovalAction.REJECT, approver)
        assert coordinator.undo_cache.peek().idea_id == queue[0].id

    async def test_concurrent_actions_single_flight(self, coordinator, queue, approver, workflow, services):
        """Approve and reject at the same time: one applies, the other is Busy."""
        idea = queue[0]
        results = await asyncio.gather(
            coordinator.handle_approval_action(idea, ApprovalAction.APPROVE, approver),
            coordinator.handle_approval_action(idea, ApprovalAction.REJECT, approver),
            return_exceptions=True,
        )

        busy = [r for r in results if isinstance(r, BusyError)]
        applied = [r for r in results if not isinstance(r, Exception)]
        assert len(busy) == 1
        assert len(applied) == 1
        assert (await workflow.get_idea(idea.id)).status == IdeaStatus.APPROVED

        review_events = [
            e for e in await workflow.trail.collect(idea_id=idea.id)
            if e.event_type in ("approved", "rejected")
        ]
        assert len(review_events) == 1
        assert coordinator.busy is False


class TestUndo:
    """Test undoing the last review action."""

    async def test_undo_restores_and_reinserts_first(self, coordinator, queue, approver, workflow):
        await coordinator.handle_approval_action(queue[2], ApprovalAction.APPROVE, approver)
        response = await coordinator.handle_undo(approver)

        assert response.idea.status == IdeaStatus.PENDING_APPROVAL
        assert response.notification.type == NotificationType.SUCCESS
        assert [i.id for i in coordinator.pending] == [queue[2].id, queue[0].id, queue[1].id]
        assert coordinator.undo_cache.peek() is None

        idea = await workflow.get_idea(queue[2].id)
        assert idea.status == IdeaStatus.PENDING_APPROVAL
        assert idea.approved_by is None

        events = await workflow.trail.collect(idea_id=idea.id)
        assert [e.event_type for e in events[:2]] == ["reverted", "approved"]

    async def test_undo_reject(self, coordinator, queue, approver):
        await coordinator.handle_approval_action(queue[0], ApprovalAction.REJECT, approver)
        response = await coordinator.handle_undo(approver)
        assert response.idea.status == IdeaStatus.PENDING_APPROVAL

    async def test_nothing_to_undo(self, coordinator, queue, approver):
        response = await coordinator.handle_undo(approver)
        assert response.idea is None
        assert response.notification.type == NotificationType.INFO
        assert response.notification.title == "Nothing to undo"
        assert coordinator.busy is False

    async def test_undo_is_single_use(self, coordinator, queue, approver):
        await coordinator.handle_approval_action(queue[0], ApprovalAction.APPROVE, approver)
        await coordinator.handle_undo(approver)
        second = await coordinator.handle_undo(approver)
        assert second.idea is None

    async def test_only_last_action_can_be_undone(self, coordinator, queue, approver, workflow):
        await coordinator.handle_approval_action(queue[0], ApprovalAction.APPROVE, approver)
        await coordinator.handle_approval_action(queue[1], ApprovalAction.REJECT, approver)
        await coordinator.handle_undo(approver)

        assert (await workflow.get_idea(queue[0].id)).status == IdeaStatus.APPROVED
        assert (await workflow.get_idea(queue[1].id)).status == IdeaStatus.PENDING_APPROVAL

    async def test_failed_undo_still_consumes_record(self, coordinator, queue, approver, admin, workflow):
        from ideaflow_core.schemas import TaskCreate

        await coordinator.handle_approval_action(queue[0], ApprovalAction.APPROVE, approver)
        await workflow.create_task(queue[0].id, TaskCreate(title="Started already"), admin)

        with pytest.raises(InvalidTransitionError):
            await coordinator.handle_undo(approver)
        assert coordinator.undo_cache.peek() is None
        assert coordinator.busy is False

    async def test_undo_requires_reviewer(self, coordinator, queue, approver, contributor, services):
        await coordinator.handle_approval_action(queue[0], ApprovalAction.APPROVE, approver)
        with pytest.raises(PermissionDeniedError):
            await coordinator.handle_undo(contributor)
        assert services.notifications.recent(1)[0].title == "Could not undo"
        # The reviewer can still undo
        assert coordinator.undo_cache.peek() is not None

    async def test_undo_while_busy(self, coordinator, queue, approver):
        coordinator._busy = True
        with pytest.raises(BusyError):
            await coordinator.handle_undo(approver)


class TestPendingSet:
    """Test tracking of newly submitted ideas."""

    async def test_add_pending_appends_once(self, coordinator, queue, workflow, contributor):
        idea = await workflow.submit_idea(IdeaCreate(title="Late idea"), contributor)
        coordinator.add_pending(idea)
        coordinator.add_pending(idea)
        assert [i.title for i in coordinator.pending][-1] == "Late idea"
        assert len(coordinator.pending) == 4


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
