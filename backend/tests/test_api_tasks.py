"""task API: 관리자 CRUD + 사용자 accept/reject/submit 흐름"""

from datetime import datetime, timezone

import pytest

from app.crud import users as users_crud
from app.models.task import parse_iso_datetime

SIGNATURE_TASK = {
    "title": "Collect signature",
    "description": "Get the client's signature on the contract",
    "assign_type": "role",
    "assigned_role": "salesman",
    "fields": [{"label": "Signature", "type": "file", "required": True}],
}


async def _create(client, admin_headers, **overrides):
    body = {**SIGNATURE_TASK, **overrides}
    resp = await client.post("/api/tasks", json=body, headers=admin_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _pending_ids(client, headers):
    resp = await client.get("/api/users/me/pending-tasks", headers=headers)
    assert resp.status_code == 200
    return [t["id"] for t in resp.json()]


async def test_collect_signature_end_to_end(client, admin_headers, make_user, headers_for):
    task = await _create(client, admin_headers)
    assert task["assignment_status"] == "pending"
    assert task["status"] == "pending"
    assert task["assigned_to"] == []
    assert task["next_notification"] is not None

    alice = await make_user("salesman")
    bob = await make_user("salesman")
    alice_h, bob_h = headers_for(alice), headers_for(bob)

    assert task["id"] in await _pending_ids(client, alice_h)
    assert task["id"] in await _pending_ids(client, bob_h)

    resp = await client.post(f"/api/tasks/{task['id']}/accept", headers=alice_h)
    assert resp.status_code == 200
    accepted = resp.json()
    assert accepted["assigned_to"] == [alice.id]
    assert accepted["assignment_status"] == "accepted"
    assert accepted["status"] == "in-progress"

    assert task["id"] not in await _pending_ids(client, bob_h)
    assert task["id"] not in await _pending_ids(client, alice_h)

    # bob이 뒤늦게 accept 시도 -> 충돌
    late = await client.post(f"/api/tasks/{task['id']}/accept", headers=bob_h)
    assert late.status_code == 409
    assert late.json() == {"detail": "task is no longer available", "code": "conflict"}

    assigned = (await client.get("/api/users/me/assigned-tasks", headers=alice_h)).json()
    assert [t["id"] for t in assigned] == [task["id"]]
    mine = (await client.get("/api/tasks/my-tasks", headers=alice_h)).json()
    assert [t["id"] for t in mine] == [task["id"]]

    resp = await client.post(
        f"/api/tasks/{task['id']}/submit",
        json={"fields": [{"label": "Signature", "type": "file", "value": "/uploads/123-sig.png", "required": True}]},
        headers=alice_h,
    )
    assert resp.status_code == 200, resp.text
    done = resp.json()
    assert done["status"] == "completed"
    assert done["fields"] == [
        {"label": "Signature", "type": "file", "required": True, "value": "/uploads/123-sig.png"}
    ]
    assert [h["action"] for h in done["history"]] == [
        "created",
        "accepted",
        "submitted",
        "status changed from in-progress to completed",
    ]

    stats = (await client.get("/api/tasks/stats", headers=admin_headers)).json()
    assert stats == {"total": 1, "pending": 0, "in_progress": 0, "completed": 1}

    per_user = (await client.get("/api/tasks/stats/users", headers=admin_headers)).json()
    assert per_user == [{"user_id": alice.id, "total": 1, "pending": 0, "in_progress": 0, "completed": 1}]

    my_stats = (await client.get("/api/users/me/stats", headers=alice_h)).json()
    assert my_stats == {"pending": 0, "in_progress": 0, "completed": 1}


@pytest.mark.parametrize(
    "overrides, detail",
    [
        ({"title": ""}, "Title and description are required"),
        ({"description": None}, "Title and description are required"),
        ({"assigned_role": "manager"}, "Invalid role selected"),
        ({"assigned_role": None}, "Assigned role is required when assignment type is role"),
        ({"assign_type": "user", "assigned_to": []}, "Assigned user is required when assignment type is user"),
    ],
)
async def test_create_validation(client, admin_headers, overrides, detail):
    resp = await client.post("/api/tasks", json={**SIGNATURE_TASK, **overrides}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == detail


async def test_create_rejects_bad_field_formats(client, admin_headers):
    fields = [
        {"label": "Phone", "type": "number", "value": "0101234"},
        {"label": "Due", "type": "date", "value": "tomorrow"},
    ]
    resp = await client.post("/api/tasks", json={**SIGNATURE_TASK, "fields": fields}, headers=admin_headers)

    assert resp.status_code == 400
    body = resp.json()
    assert body["detail"] == "Phone must be a valid phone number"
    assert body["errors"] == ["Phone must be a valid phone number", "Due must be a valid date"]


async def test_create_rejects_out_of_range_interval(client, admin_headers):
    frequency = {"type": "recurring", "interval": "custom", "custom_interval": {"hours": 25, "minutes": 0}}
    resp = await client.post(
        "/api/tasks", json={**SIGNATURE_TASK, "notification_frequency": frequency}, headers=admin_headers
    )
    assert resp.status_code == 422


async def test_list_filters_and_search(client, admin_headers):
    await _create(client, admin_headers)
    await _create(client, admin_headers, title="Order paper", description="A4, 10 boxes", priority="high",
                  assigned_role="purchaseman")

    def titles(resp):
        return sorted(t["title"] for t in resp.json())

    assert titles(await client.get("/api/tasks", headers=admin_headers)) == ["Collect signature", "Order paper"]
    assert titles(await client.get("/api/tasks?search=SIGNATURE", headers=admin_headers)) == ["Collect signature"]
    assert titles(await client.get("/api/tasks?search=a4,", headers=admin_headers)) == ["Order paper"]
    assert titles(await client.get("/api/tasks?priority=high", headers=admin_headers)) == ["Order paper"]
    assert titles(await client.get("/api/tasks?role=salesman", headers=admin_headers)) == ["Collect signature"]
    assert titles(await client.get("/api/tasks?search=.*", headers=admin_headers)) == []


async def test_patch_changes_only_supplied_keys(client, admin_headers):
    task = await _create(client, admin_headers)

    resp = await client.patch(f"/api/tasks/{task['id']}", json={"title": "Collect two signatures"}, headers=admin_headers)

    assert resp.status_code == 200
    updated = resp.json()
    assert updated["title"] == "Collect two signatures"
    assert updated["description"] == task["description"]
    assert updated["assigned_role"] == "salesman"
    assert [h["action"] for h in updated["history"]] == ["created"]


async def test_reassignment_resets_acceptance_and_back_references(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    bob = await make_user("purchaseman")
    task = await _create(client, admin_headers, assign_type="user", assigned_to=[alice.id], assigned_role=None)

    await client.post(f"/api/tasks/{task['id']}/accept", headers=headers_for(alice))
    assert (await users_crud.require_user(alice.id)).assigned_tasks == [task["id"]]

    resp = await client.patch(
        f"/api/tasks/{task['id']}",
        json={"assign_type": "user", "assigned_to": [bob.id]},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    updated = resp.json()
    assert updated["assigned_to"] == [bob.id]
    assert updated["assignment_status"] == "pending"
    assert updated["status"] == "in-progress"
    assert updated["history"][-1]["action"] == "reassigned"

    assert (await users_crud.require_user(alice.id)).assigned_tasks == []
    assert task["id"] in await _pending_ids(client, headers_for(bob))


async def test_patch_cannot_force_acceptance(client, admin_headers):
    task = await _create(client, admin_headers)
    resp = await client.patch(f"/api/tasks/{task['id']}", json={"assignment_status": "accepted"}, headers=admin_headers)
    assert resp.status_code == 400


async def test_completed_task_cannot_be_reopened(client, admin_headers, test_settings, monkeypatch):
    task = await _create(client, admin_headers)
    await client.patch(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=admin_headers)

    resp = await client.patch(f"/api/tasks/{task['id']}", json={"status": "pending"}, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Completed task cannot be reopened"

    monkeypatch.setattr(test_settings, "ALLOW_TASK_REOPEN", True)
    resp = await client.patch(f"/api/tasks/{task['id']}", json={"status": "pending"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"


async def test_reject_direct_assignment(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    task = await _create(client, admin_headers, assign_type="user", assigned_to=[alice.id], assigned_role=None)

    resp = await client.post(f"/api/tasks/{task['id']}/reject", headers=headers_for(alice))

    assert resp.status_code == 200
    rejected = resp.json()
    assert rejected["assignment_status"] == "pending"
    assert rejected["assigned_to"] == []
    assert rejected["history"][-1]["action"] == "rejected"
    assert task["id"] not in await _pending_ids(client, headers_for(alice))


async def test_reject_after_accept_releases_back_reference(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    task = await _create(client, admin_headers)

    await client.post(f"/api/tasks/{task['id']}/accept", headers=headers_for(alice))
    resp = await client.post(f"/api/tasks/{task['id']}/reject", headers=headers_for(alice))

    assert resp.status_code == 200
    assert resp.json()["assignment_status"] == "pending"
    assert (await users_crud.require_user(alice.id)).assigned_tasks == []


async def test_status_updates_by_assignee_only(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    bob = await make_user("salesman")
    task = await _create(client, admin_headers)
    await client.post(f"/api/tasks/{task['id']}/accept", headers=headers_for(alice))

    denied = await client.patch(f"/api/tasks/{task['id']}/status", json={"status": "completed"}, headers=headers_for(bob))
    assert denied.status_code == 403

    invalid = await client.patch(f"/api/tasks/{task['id']}/status", json={"status": "done"}, headers=headers_for(alice))
    assert invalid.status_code == 400

    ok = await client.patch(f"/api/tasks/{task['id']}/status", json={"status": "completed"}, headers=headers_for(alice))
    assert ok.json()["status"] == "completed"


async def test_submit_validation(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    bob = await make_user("salesman")
    task = await _create(client, admin_headers)
    await client.post(f"/api/tasks/{task['id']}/accept", headers=headers_for(alice))
    url = f"/api/tasks/{task['id']}/submit"

    missing = await client.post(url, json={"fields": [{"label": "Signature", "value": ""}]}, headers=headers_for(alice))
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Signature is required"

    unknown = await client.post(url, json={"fields": [{"label": "Stamp", "value": "x"}]}, headers=headers_for(alice))
    assert unknown.status_code == 400

    other = await client.post(url, json={"fields": [{"label": "Signature", "value": "/uploads/1-a.png"}]},
                              headers=headers_for(bob))
    assert other.status_code == 403

    # 실패한 제출은 아무것도 바꾸지 않음
    current = (await client.get(f"/api/tasks/{task['id']}", headers=admin_headers)).json()
    assert current["status"] == "in-progress"
    assert current["fields"][0]["value"] is None


async def test_delete_releases_back_references(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    task = await _create(client, admin_headers)
    await client.post(f"/api/tasks/{task['id']}/accept", headers=headers_for(alice))

    resp = await client.delete(f"/api/tasks/{task['id']}", headers=admin_headers)
    assert resp.status_code == 200

    assert (await client.get(f"/api/tasks/{task['id']}", headers=admin_headers)).status_code == 404
    assert (await users_crud.require_user(alice.id)).assigned_tasks == []


async def test_invalid_task_id(client, admin_headers):
    resp = await client.get("/api/tasks/not-an-id", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid task_id"


async def test_admin_views_user_task_lists(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    task = await _create(client, admin_headers)

    pending = (await client.get(f"/api/users/{alice.id}/pending-tasks", headers=admin_headers)).json()
    assert [t["id"] for t in pending] == [task["id"]]

    await client.post(f"/api/tasks/{task['id']}/accept", headers=headers_for(alice))

    assert (await client.get(f"/api/users/{alice.id}/pending-tasks", headers=admin_headers)).json() == []
    assigned = (await client.get(f"/api/users/{alice.id}/assigned-tasks", headers=admin_headers)).json()
    assert [t["id"] for t in assigned] == [task["id"]]


async def test_patch_notification_frequency_keeps_unsent_keys(client, admin_headers):
    frequency = {"type": "once", "start_time": "2030-01-01T06:30:00Z", "end_time": "2030-01-01T18:00:00Z"}
    task = await _create(client, admin_headers, notification_frequency=frequency)

    resp = await client.patch(
        f"/api/tasks/{task['id']}",
        json={"notification_frequency": {"type": "recurring", "custom_interval": {"hours": 7, "minutes": 15}}},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    updated = resp.json()["notification_frequency"]
    assert updated["type"] == "recurring"
    assert updated["interval"] == "daily"
    assert updated["custom_interval"] == {"hours": 7, "minutes": 15}
    assert parse_iso_datetime(updated["start_time"]) == datetime(2030, 1, 1, 6, 30, tzinfo=timezone.utc)
    assert parse_iso_datetime(updated["end_time"]) == datetime(2030, 1, 1, 18, 0, tzinfo=timezone.utc)


async def test_assignee_cannot_move_accepted_task_back_to_pending(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    task = await _create(client, admin_headers)
    await client.post(f"/api/tasks/{task['id']}/accept", headers=headers_for(alice))

    resp = await client.patch(f"/api/tasks/{task['id']}/status", json={"status": "pending"}, headers=headers_for(alice))

    assert resp.status_code == 409
    assert resp.json()["detail"] == "Accepted task cannot go back to pending"
    current = (await client.get(f"/api/tasks/{task['id']}", headers=admin_headers)).json()
    assert current["status"] == "in-progress"
    assert current["assignment_status"] == "accepted"


async def test_admin_pending_status_releases_acceptance(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    task = await _create(client, admin_headers)
    await client.post(f"/api/tasks/{task['id']}/accept", headers=headers_for(alice))

    resp = await client.patch(f"/api/tasks/{task['id']}", json={"status": "pending"}, headers=admin_headers)

    assert resp.status_code == 200
    updated = resp.json()
    assert updated["status"] == "pending"
    assert updated["assignment_status"] == "pending"
    assert [h["action"] for h in updated["history"]][-2:] == [
        "assignment status changed from accepted to pending",
        "status changed from in-progress to pending",
    ]
    assert (await users_crud.require_user(alice.id)).assigned_tasks == []


async def test_deleting_user_releases_their_tasks(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    bob = await make_user("salesman")
    pooled = await _create(client, admin_headers)
    direct = await _create(client, admin_headers, assign_type="user", assigned_to=[alice.id, bob.id], assigned_role=None)
    await client.post(f"/api/tasks/{pooled['id']}/accept", headers=headers_for(alice))

    resp = await client.delete(f"/api/users/{alice.id}", headers=admin_headers)
    assert resp.status_code == 200

    released = (await client.get(f"/api/tasks/{pooled['id']}", headers=admin_headers)).json()
    assert released["assigned_to"] == []
    assert released["assignment_status"] == "pending"
    assert released["history"][-1]["action"] == "assignee removed"
    assert pooled["id"] in await _pending_ids(client, headers_for(bob))

    remaining = (await client.get(f"/api/tasks/{direct['id']}", headers=admin_headers)).json()
    assert remaining["assigned_to"] == [bob.id]


async def test_admin_responses_include_assignee_usernames(client, admin_headers, make_user, headers_for):
    alice = await make_user("salesman")
    created = await _create(client, admin_headers, assign_type="user", assigned_to=[alice.id], assigned_role=None)
    assert created["assignees"] == [{"id": alice.id, "username": alice.username}]

    pooled = await _create(client, admin_headers, title="Pool task")
    assert pooled["assignees"] == []

    listed = (await client.get("/api/tasks", headers=admin_headers)).json()
    by_title = {t["title"]: t for t in listed}
    assert by_title["Collect signature"]["assignees"] == [{"id": alice.id, "username": alice.username}]

    mine = (await client.get("/api/tasks/my-tasks", headers=headers_for(alice))).json()
    assert mine[0]["assignees"] is None
