# tests/test_notifications.py

from __future__ import annotations

import pytest

from taskflow_api.app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from taskflow_api.app.schemas.notification import MarkReadRequest, NotificationCreate, NotificationType
from taskflow_api.app.schemas.workspace import MemberRole
from taskflow_api.app.services.notification_service import NotificationService, mention_message

from . import factories


@pytest.fixture()
def member(workspace: dict) -> dict:
    user = factories.create_user("maria@example.com", "Maria Santos")
    factories.add_member(workspace, user, MemberRole.MEMBER)
    return user


@pytest.fixture()
def task(workspace: dict, owner: dict) -> dict:
    return factories.create_task(workspace, "Fix pump", creator=owner)


def mention_body(workspace: dict, recipient: dict, **extra) -> NotificationCreate:
    return NotificationCreate(
        user_id=recipient["user_id"],
        type=NotificationType.MENTION,
        title="Heads up",
        message="Please look at this",
        workspace_id=workspace["id"],
        **extra,
    )


def test_mention_message_preview() -> None:
    short = mention_message("Olivia", "Fix pump", "hi")
    long = mention_message("Olivia", "Fix pump", "x" * 150)

    assert short == 'Olivia mentioned you in task "Fix pump": hi'
    assert long.endswith("x" * 100 + "...")
    assert mention_message("Olivia", "T", "y" * 100).endswith("y" * 100)


@pytest.mark.asyncio
async def test_create_notification_defaults_mentioner(workspace: dict, owner: dict, member: dict, task: dict) -> None:
    created = await NotificationService.create_notification(
        mention_body(workspace, member, task_id=task["id"]), owner
    )

    assert created.user_id == member["user_id"]
    assert created.mentioned_by == owner["user_id"]
    assert created.mentioner_name == "Olivia Owner"
    assert created.workspace_name == "Facilities"
    assert created.task_name == "Fix pump"
    assert created.is_read is False


@pytest.mark.asyncio
async def test_create_notification_rejects_outsiders(workspace: dict, owner: dict, member: dict) -> None:
    outsider = factories.create_user("out@example.com", "Outsider")

    with pytest.raises(PermissionDeniedError):
        await NotificationService.create_notification(mention_body(workspace, member), outsider)
    with pytest.raises(NotFoundError):
        await NotificationService.create_notification(mention_body(workspace, outsider), owner)


@pytest.mark.asyncio
async def test_create_notification_rejects_foreign_task(workspace: dict, owner: dict, member: dict) -> None:
    other_owner = factories.create_user("other@example.com", "Other Owner")
    other = factories.create_workspace("Other", other_owner)
    foreign_task = factories.create_task(other, "Elsewhere", creator=other_owner)

    with pytest.raises(PermissionDeniedError):
        await NotificationService.create_notification(
            mention_body(workspace, member, task_id=foreign_task["id"]), owner
        )


@pytest.mark.asyncio
async def test_notify_mentions_skips_author(workspace: dict, owner: dict, member: dict, task: dict) -> None:
    members = [
        {"id": workspace["owner_member_id"], "user_id": owner["user_id"], "name": "Olivia Owner"},
        {"id": 0, "user_id": member["user_id"], "name": "Maria Santos"},
    ]

    notified = await NotificationService.notify_mentions(task, None, "@olivia @maria see this", owner, members)

    assert notified == [member["user_id"]]
    page = await NotificationService.list_notifications(member["user_id"])
    (notification,) = page.documents
    assert notification.type == NotificationType.MENTION
    assert notification.title == "Olivia Owner mentioned you"


@pytest.mark.asyncio
async def test_self_assignment_is_silent(workspace: dict, owner: dict, member: dict, task: dict) -> None:
    assert await NotificationService.notify_task_assigned(task, owner["user_id"], owner) is None
    assert await NotificationService.notify_task_assigned(task, member["user_id"], owner) is not None

    page = await NotificationService.list_notifications(member["user_id"])
    assert [n.message for n in page.documents] == ['Olivia Owner assigned you to task "Fix pump"']


@pytest.mark.asyncio
async def test_pagination(workspace: dict, owner: dict, member: dict, task: dict) -> None:
    for _ in range(5):
        await NotificationService.notify_task_assigned(task, member["user_id"], owner)
    await NotificationService.notify_reviewer_assigned(task, member["user_id"], owner)

    first = await NotificationService.list_notifications(member["user_id"], page=1, limit=4)
    second = await NotificationService.list_notifications(member["user_id"], page=2, limit=4)
    reviewer_only = await NotificationService.list_notifications(
        member["user_id"], type_=NotificationType.REVIEWER_ASSIGNED
    )

    assert (first.total, first.total_pages, first.has_next, first.has_prev) == (6, 2, True, False)
    assert len(first.documents) == 4
    assert (len(second.documents), second.has_next, second.has_prev) == (2, False, True)
    # Newest first.
    assert first.documents[0].type == NotificationType.REVIEWER_ASSIGNED
    assert reviewer_only.total == 1


@pytest.mark.asyncio
async def test_mark_as_read_selectors(workspace: dict, owner: dict, member: dict, task: dict) -> None:
    other_task = factories.create_task(workspace, "Other", creator=owner)
    first = await NotificationService.notify_task_assigned(task, member["user_id"], owner)
    await NotificationService.notify_reviewer_assigned(task, member["user_id"], owner)
    await NotificationService.notify_task_assigned(other_task, member["user_id"], owner)
    user_id = member["user_id"]

    assert await NotificationService.mark_as_read(user_id, MarkReadRequest(notification_ids=[first])) == 1
    assert await NotificationService.unread_count(user_id) == 2
    # Already read notifications are not counted again.
    assert await NotificationService.mark_as_read(user_id, MarkReadRequest(task_id=task["id"])) == 1
    assert await NotificationService.mark_as_read(user_id, MarkReadRequest(mark_all=True)) == 1
    assert await NotificationService.unread_count(user_id) == 0


@pytest.mark.asyncio
async def test_mark_as_read_only_touches_own(workspace: dict, owner: dict, member: dict, task: dict) -> None:
    notification_id = await NotificationService.notify_task_assigned(task, member["user_id"], owner)

    updated = await NotificationService.mark_as_read(
        owner["user_id"], MarkReadRequest(notification_ids=[notification_id])
    )

    assert updated == 0
    assert await NotificationService.unread_count(member["user_id"]) == 1


@pytest.mark.asyncio
async def test_mark_as_read_requires_selector(member: dict) -> None:
    with pytest.raises(ValidationError, match="Must specify notification IDs, task ID, or mark all"):
        await NotificationService.mark_as_read(member["user_id"], MarkReadRequest())
