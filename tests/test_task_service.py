# tests/test_task_service.py

from __future__ import annotations

import pytest

from taskflow_api.app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from taskflow_api.app.schemas.task import TaskCreate, TaskMessageCreate, TaskStatus, TaskUpdate
from taskflow_api.app.schemas.workspace import MemberRole
from taskflow_api.app.services.history_service import TaskHistoryService
from taskflow_api.app.services.message_service import TaskMessageService
from taskflow_api.app.services.notification_service import NotificationService
from taskflow_api.app.services.task_service import TaskService

from . import factories


@pytest.fixture()
def john(workspace: dict) -> dict:
    user = factories.create_user("john@example.com", "John Smith")
    user["member"] = factories.add_member(workspace, user, MemberRole.MEMBER)
    return user


@pytest.fixture()
def visitor(workspace: dict) -> dict:
    user = factories.create_user("vic@example.com", "Vic Visitor")
    user["member"] = factories.add_member(workspace, user, MemberRole.VISITOR)
    return user


def new_task(workspace: dict, name: str = "Fix pump", **fields) -> TaskCreate:
    return TaskCreate(name=name, workspace_id=workspace["id"], **fields)


@pytest.mark.asyncio
async def test_create_task_numbers_and_positions(workspace: dict, owner: dict) -> None:
    first = await TaskService.create_task(new_task(workspace, "First"), owner)
    second = await TaskService.create_task(new_task(workspace, "Second"), owner)
    backlog = await TaskService.create_task(new_task(workspace, "Later", status=TaskStatus.BACKLOG), owner)

    assert (first.task_number, second.task_number) == ("Task #0000001", "Task #0000002")
    assert (first.position, second.position) == (1000, 2000)
    assert backlog.position == 1000
    # The creator follows their own task.
    assert first.followed_ids == [workspace["owner_member_id"]]


@pytest.mark.asyncio
async def test_create_task_notifies_assignee_and_logs_history(workspace: dict, owner: dict, john: dict) -> None:
    task = await TaskService.create_task(new_task(workspace, assignee_id=john["member"]["id"]), owner)

    page = await NotificationService.list_notifications(john["user_id"])
    assert [n.title for n in page.documents] == ["Task assigned to you"]
    history = await TaskHistoryService.list_history(task.id)
    assert [h.action.value for h in history] == ["CREATED"]


@pytest.mark.asyncio
async def test_create_task_rejects_foreign_member(workspace: dict, owner: dict) -> None:
    other_owner = factories.create_user("other@example.com", "Other Owner")
    other = factories.create_workspace("Other", other_owner)

    with pytest.raises(ValidationError):
        await TaskService.create_task(new_task(workspace, assignee_id=other["owner_member_id"]), owner)


@pytest.mark.asyncio
async def test_visitor_cannot_create_or_edit(workspace: dict, owner: dict, visitor: dict) -> None:
    task = factories.create_task(workspace, "Followed", creator=owner, followed_ids=[visitor["member"]["id"]])

    with pytest.raises(PermissionDeniedError):
        await TaskService.create_task(new_task(workspace), visitor)
    with pytest.raises(PermissionDeniedError):
        await TaskService.update_task(task["id"], TaskUpdate(name="Renamed"), visitor)


@pytest.mark.asyncio
async def test_visitor_only_sees_followed_tasks(workspace: dict, owner: dict, visitor: dict) -> None:
    followed = factories.create_task(workspace, "Followed", creator=owner, followed_ids=[visitor["member"]["id"]])
    hidden = factories.create_task(workspace, "Hidden", creator=owner)

    tasks = await TaskService.list_tasks(workspace["id"], visitor)

    assert [t.id for t in tasks] == [followed["id"]]
    with pytest.raises(PermissionDeniedError):
        await TaskService.get_task(hidden["id"], visitor)


@pytest.mark.asyncio
async def test_confidential_task_visibility(workspace: dict, owner: dict, john: dict, super_admin: dict) -> None:
    secret = factories.create_task(workspace, "Secret", creator=owner, is_confidential=True)

    assert (await TaskService.get_task(secret["id"], owner)).name == "Secret"
    assert (await TaskService.get_task(secret["id"], super_admin)).name == "Secret"
    with pytest.raises(PermissionDeniedError):
        await TaskService.get_task(secret["id"], john)
    assert await TaskService.list_tasks(workspace["id"], john) == []


@pytest.mark.asyncio
async def test_non_member_is_forbidden(workspace: dict, owner: dict) -> None:
    task = factories.create_task(workspace, "Fix pump", creator=owner)
    outsider = factories.create_user("out@example.com", "Outsider")

    with pytest.raises(PermissionDeniedError):
        await TaskService.get_task(task["id"], outsider)
    with pytest.raises(NotFoundError):
        await TaskService.get_task(9999, owner)


@pytest.mark.asyncio
async def test_status_change_moves_to_bottom_and_logs(workspace: dict, owner: dict) -> None:
    factories.create_task(workspace, "Done already", creator=owner, status="DONE", position=5000)
    task = factories.create_task(workspace, "Fix pump", creator=owner)

    updated = await TaskService.update_task(task["id"], TaskUpdate(status=TaskStatus.DONE), owner)

    assert updated.status == TaskStatus.DONE
    assert updated.position == 6000
    history = await TaskHistoryService.list_history(task["id"])
    (entry,) = history
    assert (entry.action.value, entry.field, entry.old_value, entry.new_value) == (
        "STATUS_CHANGED",
        "status",
        "TODO",
        "DONE",
    )


@pytest.mark.asyncio
async def test_unchanged_fields_are_not_logged(workspace: dict, owner: dict) -> None:
    task = factories.create_task(workspace, "Fix pump", creator=owner)

    await TaskService.update_task(task["id"], TaskUpdate(name="Fix pump"), owner)

    assert await TaskHistoryService.list_history(task["id"]) == []


@pytest.mark.asyncio
async def test_assign_reviewer_notifies(workspace: dict, owner: dict, john: dict) -> None:
    task = factories.create_task(workspace, "Fix pump", creator=owner)

    updated = await TaskService.update_task(task["id"], TaskUpdate(reviewer_id=john["member"]["id"]), owner)

    assert updated.reviewer_id == john["member"]["id"]
    page = await NotificationService.list_notifications(john["user_id"])
    assert [n.type.value for n in page.documents] == ["REVIEWER_ASSIGNED"]


@pytest.mark.asyncio
async def test_archive_rules(workspace: dict, owner: dict, john: dict) -> None:
    task = factories.create_task(workspace, "Fix pump", creator=owner)

    with pytest.raises(PermissionDeniedError):
        await TaskService.archive_task(task["id"], john)
    archived = await TaskService.archive_task(task["id"], owner)

    assert archived.status == TaskStatus.ARCHIVED
    assert await TaskService.list_tasks(workspace["id"], owner) == []
    assert len(await TaskService.list_tasks(workspace["id"], owner, include_archived=True)) == 1


@pytest.mark.asyncio
async def test_message_mentions_notify_members(workspace: dict, owner: dict, john: dict) -> None:
    task = factories.create_task(workspace, "Fix pump", creator=owner)

    message = await TaskMessageService.create_message(
        task["id"], TaskMessageCreate(content="@john can you check? cc @olivia"), owner
    )

    assert message.sender_name == "Olivia Owner"
    assert message.mentioned_user_ids == [john["user_id"]]
    page = await NotificationService.list_notifications(john["user_id"])
    (notification,) = page.documents
    assert notification.message_id == message.id
    assert notification.message == 'Olivia Owner mentioned you in task "Fix pump": @john can you check? cc @olivia'


@pytest.mark.asyncio
async def test_message_all_mention(workspace: dict, owner: dict, john: dict, visitor: dict) -> None:
    task = factories.create_task(workspace, "Fix pump", creator=owner)

    message = await TaskMessageService.create_message(task["id"], TaskMessageCreate(content="@all heads up"), owner)

    assert sorted(message.mentioned_user_ids) == sorted([john["user_id"], visitor["user_id"]])
    messages = await TaskMessageService.list_messages(task["id"], owner)
    assert [m.id for m in messages] == [message.id]
