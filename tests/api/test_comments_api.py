"""Integration tests for project comments."""

from datetime import UTC, datetime, timedelta

import pytest

from devhance.db.models import Project, ProjectComment

pytestmark = pytest.mark.integration


@pytest.fixture
async def projects(db_session, create_user):
    await create_user("u1", "alice")
    await create_user("u2", "bob")
    first = Project(author="u1", title="First", description="d", story="s")
    second = Project(author="u1", title="Second", description="d", story="s")
    db_session.add_all([first, second])
    await db_session.commit()
    return first, second


async def test_add_comment_embeds_author(client, login, projects):
    project, _ = projects
    login("u2")

    response = await client.post(f"/api/projects/{project.id}/comments", json={"text": "  Lovely  "})

    assert response.status_code == 201
    body = response.json()
    assert body["text"] == "Lovely"
    assert body["user"]["username"] == "bob"
    assert body["project_id"] == project.id


async def test_empty_comment_rejected(client, login, projects):
    project, _ = projects
    login("u2")

    response = await client.post(f"/api/projects/{project.id}/comments", json={"text": "   "})

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "text"


async def test_overlong_comment_rejected(client, login, projects):
    project, _ = projects
    login("u2")

    response = await client.post(f"/api/projects/{project.id}/comments", json={"text": "x" * 501})

    assert response.status_code == 400


async def test_list_comments_newest_first(client, projects, db_session):
    project, _ = projects
    now = datetime.now(UTC)
    db_session.add_all([
        ProjectComment(project_id=project.id, user_id="u2", text="older", created_at=now - timedelta(minutes=5)),
        ProjectComment(project_id=project.id, user_id="u1", text="newer", created_at=now),
    ])
    await db_session.commit()

    response = await client.get(f"/api/projects/{project.id}/comments")

    assert response.status_code == 200
    assert [c["text"] for c in response.json()] == ["newer", "older"]
    assert response.json()[1]["user"]["username"] == "bob"


async def test_list_comments_missing_project_404(client):
    assert (await client.get("/api/projects/missing/comments")).status_code == 404


async def test_update_own_comment(client, login, projects):
    project, _ = projects
    login("u2")
    created = (await client.post(f"/api/projects/{project.id}/comments", json={"text": "typo"})).json()

    response = await client.put(
        f"/api/projects/{project.id}/comments/{created['id']}", json={"text": "fixed"}
    )

    assert response.status_code == 200
    assert response.json()["text"] == "fixed"


async def test_update_someone_elses_comment_forbidden(client, login, projects, db_session):
    project, _ = projects
    login("u2")
    created = (await client.post(f"/api/projects/{project.id}/comments", json={"text": "mine"})).json()
    login("u1")

    response = await client.put(
        f"/api/projects/{project.id}/comments/{created['id']}", json={"text": "edited"}
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "You can only update your own comments"
    db_session.expire_all()
    assert (await db_session.get(ProjectComment, created["id"])).text == "mine"


async def test_delete_someone_elses_comment_forbidden(client, login, projects, db_session):
    project, _ = projects
    login("u2")
    created = (await client.post(f"/api/projects/{project.id}/comments", json={"text": "keep me"})).json()
    login("u1")

    response = await client.delete(f"/api/projects/{project.id}/comments/{created['id']}")

    assert response.status_code == 403
    assert "debug_id" in response.json()
    db_session.expire_all()
    row = await db_session.get(ProjectComment, created["id"])
    assert row is not None
    assert row.text == "keep me"
    assert row.user_id == "u2"


async def test_comment_from_other_project_rejected(client, login, projects):
    first, second = projects
    login("u2")
    created = (await client.post(f"/api/projects/{first.id}/comments", json={"text": "hi"})).json()

    response = await client.delete(f"/api/projects/{second.id}/comments/{created['id']}")

    assert response.status_code == 400
    assert response.json()["detail"] == "Comment does not belong to this project"


async def test_delete_own_comment(client, login, projects, db_session):
    project, _ = projects
    login("u2")
    created = (await client.post(f"/api/projects/{project.id}/comments", json={"text": "bye"})).json()

    response = await client.delete(f"/api/projects/{project.id}/comments/{created['id']}")

    assert response.status_code == 204
    db_session.expire_all()
    assert await db_session.get(ProjectComment, created["id"]) is None


async def test_delete_missing_comment_404(client, login, projects):
    project, _ = projects
    login("u2")

    response = await client.delete(f"/api/projects/{project.id}/comments/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "Comment not found"
