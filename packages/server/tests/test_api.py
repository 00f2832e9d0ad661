"""
End-to-end API tests through httpx against the ASGI app.
"""

from __future__ import annotations

import uuid

import pytest

from percival_shared.schemas.common import UserRole


@pytest.fixture
async def people(factory):
    owner = await factory.user()
    worker = await factory.user()
    return owner, worker


@pytest.fixture
async def project(client, headers_for, people):
    owner, _ = people
    resp = await client.post(
        "/api/v1/entities/project", json={"name": "Apollo"}, headers=headers_for(owner.id)
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
async def task(client, headers_for, people, project):
    owner, _ = people
    resp = await client.post(
        "/api/v1/entities/task",
        json={"project_id": project["id"], "title": "Launch"},
        headers=headers_for(owner.id),
    )
    assert resp.status_code == 201
    return resp.json()


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        resp = await client.get("/api/v1/entities/project")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        resp = await client.get("/api/v1/entities/project", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_self_registration(self, client, headers_for):
        newcomer = uuid.uuid4()
        resp = await client.post(
            "/api/v1/entities/user",
            json={"email": "new@example.com", "password_hash": "h", "display_name": "New"},
            headers=headers_for(newcomer, UserRole.MEMBER),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["email"] == "new@example.com"
        assert "password_hash" not in body


class TestEntities:
    @pytest.mark.asyncio
    async def test_crud_round(self, client, headers_for, people, project):
        owner, _ = people
        headers = headers_for(owner.id)
        url = f"/api/v1/entities/project/{project['id']}"

        assert project["owner_id"] == str(owner.id)
        assert (await client.get(url, headers=headers)).json()["name"] == "Apollo"

        resp = await client.patch(url, json={"status": "active"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

        listed = await client.get("/api/v1/entities/project", params={"status": "active"}, headers=headers)
        assert [p["id"] for p in listed.json()] == [project["id"]]

        assert (await client.delete(url, headers=headers)).status_code == 204
        assert (await client.get(url, headers=headers)).status_code == 404

    @pytest.mark.asyncio
    async def test_not_found_body(self, client, headers_for, people):
        owner, _ = people
        missing = uuid.uuid4()
        resp = await client.get(f"/api/v1/entities/task/{missing}", headers=headers_for(owner.id))
        assert resp.status_code == 404
        assert resp.json() == {
            "error": {
                "code": "NOT_FOUND",
                "message": f"task {missing} not found",
                "entity_type": "task",
                "entity_id": str(missing),
                "invariant": "exists",
            }
        }

    @pytest.mark.asyncio
    async def test_unknown_field(self, client, headers_for, people):
        owner, _ = people
        resp = await client.post(
            "/api/v1/entities/project", json={"name": "X", "colour": "red"}, headers=headers_for(owner.id)
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
        assert resp.json()["error"]["invariant"] == "project.colour"

    @pytest.mark.asyncio
    async def test_unknown_kind(self, client, headers_for, people):
        owner, _ = people
        resp = await client.get("/api/v1/entities/spaceship", headers=headers_for(owner.id))
        assert resp.status_code == 422
        assert "error" in resp.json()

    @pytest.mark.asyncio
    async def test_restricted_delete_lists_blockers(self, client, headers_for, people, project):
        owner, _ = people
        resp = await client.delete(f"/api/v1/entities/user/{owner.id}", headers=headers_for(owner.id))

        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "REFERENTIAL_CONFLICT"
        assert error["blockers"] == [
            {"entity_type": "project", "entity_id": project["id"], "column": "owner_id"}
        ]

    @pytest.mark.asyncio
    async def test_mutations_are_published(self, client, headers_for, people, project, redis_client):
        pipe = redis_client.pipeline.return_value
        channels = [call.args[0] for call in pipe.publish.call_args_list]
        assert "activity" in channels
        assert f"activity:project:{project['id']}" in channels
        pipe.execute.assert_awaited()


class TestTasks:
    @pytest.mark.asyncio
    async def test_lifecycle(self, client, headers_for, people, task):
        owner, _ = people
        headers = headers_for(owner.id)
        base = f"/api/v1/tasks/{task['id']}"

        resp = await client.post(f"{base}/transition", json={"to_status": "review"}, headers=headers)
        assert resp.json()["status"] == "review"

        resp = await client.post(f"{base}/transition", json={"to_status": "blocked"}, headers=headers)
        assert resp.json()["blocked_from"] == "review"

        resp = await client.post(f"{base}/unblock", headers=headers)
        assert resp.json()["status"] == "review"

        resp = await client.post(f"{base}/transition", json={"to_status": "review"}, headers=headers)
        assert resp.status_code == 422
        assert resp.json()["error"]["invariant"] == "task.status_changes"

    @pytest.mark.asyncio
    async def test_invalid_status(self, client, headers_for, people, task):
        owner, _ = people
        resp = await client.post(
            f"/api/v1/tasks/{task['id']}/transition", json={"to_status": "archived"}, headers=headers_for(owner.id)
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_assignment_reaches_the_inbox(self, client, headers_for, people, task):
        owner, worker = people
        resp = await client.post(
            f"/api/v1/tasks/{task['id']}/assign", json={"assignee_id": str(worker.id)}, headers=headers_for(owner.id)
        )
        assert resp.json()["assignee_id"] == str(worker.id)

        inbox = await client.get("/api/v1/notifications", headers=headers_for(worker.id))
        assert [n["type"] for n in inbox.json()] == ["task_assigned"]

        count = await client.get("/api/v1/notifications/unread-count", headers=headers_for(worker.id))
        assert count.json() == {"unread": 1}

        note_id = inbox.json()[0]["id"]
        # Someone else's notification looks missing
        assert (await client.post(f"/api/v1/notifications/{note_id}/read", headers=headers_for(owner.id))).status_code == 404

        resp = await client.post(f"/api/v1/notifications/{note_id}/read", headers=headers_for(worker.id))
        assert resp.json()["is_read"] is True
        resp = await client.post("/api/v1/notifications/read-all", headers=headers_for(worker.id))
        assert resp.json() == {"updated": 0}

        resp = await client.delete(f"/api/v1/notifications/{note_id}", headers=headers_for(worker.id))
        assert resp.status_code == 204
        assert (await client.get("/api/v1/notifications", headers=headers_for(worker.id))).json() == []


    @pytest.mark.asyncio
    async def test_replace_tags(self, client, headers_for, people, task, redis_client):
        owner, _ = people
        headers = headers_for(owner.id)
        tags = []
        for name in ("infra", "docs"):
            resp = await client.post("/api/v1/entities/tag", json={"name": name}, headers=headers)
            tags.append(resp.json()["id"])
        url = f"/api/v1/tasks/{task['id']}/tags"
        published = redis_client.pipeline.return_value.execute.await_count

        resp = await client.put(url, json={"tag_ids": tags}, headers=headers)
        assert resp.status_code == 200
        assert [t["name"] for t in resp.json()] == ["docs", "infra"]
        assert redis_client.pipeline.return_value.execute.await_count > published

        resp = await client.put(url, json={"tag_ids": [tags[0], str(uuid.uuid4())]}, headers=headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["invariant"] == "task_tag.tag_id"

        resp = await client.put(url, json={"tag_ids": [tags[1]]}, headers=headers)
        assert [t["name"] for t in resp.json()] == ["docs"]


class TestTime:
    @pytest.mark.asyncio
    async def test_totals(self, client, headers_for, people, project, task):
        owner, _ = people
        headers = headers_for(owner.id)
        for hours in (2.5, 1.25):
            resp = await client.post(
                "/api/v1/time-entries",
                json={"task_id": task["id"], "hours": hours, "date": "2024-03-04"},
                headers=headers,
            )
            assert resp.status_code == 201

        resp = await client.get(f"/api/v1/tasks/{task['id']}/time-total", headers=headers)
        assert resp.json() == {"hours": "3.75"}
        resp = await client.get(f"/api/v1/projects/{project['id']}/time-total", headers=headers)
        assert resp.json() == {"hours": "3.75"}

        resp = await client.get(
            f"/api/v1/users/{owner.id}/timesheet",
            params={"start": "2024-03-01", "end": "2024-03-10"},
            headers=headers,
        )
        sheet = resp.json()
        assert sheet["total"] == "3.75"
        assert sheet["days"] == {"2024-03-04": "3.75"}
        assert sheet["weeks"] == {"2024-03-04": "3.75"}

    @pytest.mark.asyncio
    async def test_bad_hours(self, client, headers_for, people, task):
        owner, _ = people
        headers = headers_for(owner.id)
        resp = await client.post(
            "/api/v1/time-entries",
            json={"task_id": task["id"], "hours": 0.1, "work_date": "2024-03-04"},
            headers=headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["invariant"] == "time_entry.hours"

        resp = await client.get(f"/api/v1/tasks/{task['id']}/time-total", headers=headers)
        assert resp.json() == {"hours": "0.00"}

    @pytest.mark.asyncio
    async def test_update_and_delete_entry(self, client, headers_for, people, task):
        owner, _ = people
        headers = headers_for(owner.id)
        entry = (
            await client.post(
                "/api/v1/time-entries",
                json={"task_id": task["id"], "hours": 4, "work_date": "2024-03-04"},
                headers=headers,
            )
        ).json()

        resp = await client.patch(f"/api/v1/time-entries/{entry['id']}", json={"hours": 1.5}, headers=headers)
        assert resp.json()["hours"] == "1.50"

        assert (await client.delete(f"/api/v1/time-entries/{entry['id']}", headers=headers)).status_code == 204
        resp = await client.get(f"/api/v1/tasks/{task['id']}/time-total", headers=headers)
        assert resp.json() == {"hours": "0.00"}

    @pytest.mark.asyncio
    async def test_inverted_range(self, client, headers_for, people):
        owner, _ = people
        resp = await client.get(
            f"/api/v1/users/{owner.id}/time-total",
            params={"start": "2024-03-10", "end": "2024-03-01"},
            headers=headers_for(owner.id),
        )
        assert resp.status_code == 422


class TestActivity:
    @pytest.mark.asyncio
    async def test_feed_pages(self, client, headers_for, people, project, task):
        owner, _ = people
        headers = headers_for(owner.id)
        for status in ("in_progress", "review", "done"):
            await client.post(f"/api/v1/tasks/{task['id']}/transition", json={"to_status": status}, headers=headers)

        first = (
            await client.get("/api/v1/activity", params={"project_id": project["id"], "limit": 3}, headers=headers)
        ).json()
        assert [e["action"] for e in first["items"]] == ["status_changed"] * 3
        assert first["next_cursor"]

        second = (
            await client.get(
                "/api/v1/activity",
                params={"project_id": project["id"], "limit": 3, "before": first["next_cursor"]},
                headers=headers,
            )
        ).json()
        assert [e["entity_type"] for e in second["items"]] == ["task", "project"]
        assert second["next_cursor"] is None

    @pytest.mark.asyncio
    async def test_feed_by_actor(self, client, headers_for, people, project, task):
        owner, worker = people
        await client.post(
            f"/api/v1/tasks/{task['id']}/transition", json={"to_status": "review"}, headers=headers_for(worker.id)
        )

        resp = await client.get(
            "/api/v1/activity", params={"actor_id": str(worker.id)}, headers=headers_for(owner.id)
        )
        items = resp.json()["items"]
        assert [(e["action"], e["actor_id"]) for e in items] == [("status_changed", str(worker.id))]

        resp = await client.get(
            "/api/v1/activity", params={"actor_id": str(uuid.uuid4())}, headers=headers_for(owner.id)
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_bad_cursor(self, client, headers_for, people):
        owner, _ = people
        resp = await client.get("/api/v1/activity", params={"before": "%%%"}, headers=headers_for(owner.id))
        assert resp.status_code == 422
        assert resp.json()["error"]["invariant"] == "activity.cursor"
