# tests/test_calendar_feed_api.py

from fastapi.testclient import TestClient
from sqlmodel import Session

from cadence.models.project import Project


def issue_token(client: TestClient, auth_headers: dict) -> dict:
    response = client.post("/api/user-1/calendar/tokens", headers=auth_headers)
    assert response.status_code == 201, response.text
    return response.json()


def unfolded(text: str) -> list:
    return text.replace("\r\n ", "").split("\r\n")


def test_issue_token_and_feed_url(client: TestClient, auth_headers: dict) -> None:
    assert client.get("/api/user-1/calendar/feed-url", headers=auth_headers).json()["has_token"] is False

    issued = issue_token(client, auth_headers)
    assert issued["token"].startswith("cad_")
    assert "token=" in issued["feed_url"]

    info = client.get("/api/user-1/calendar/feed-url", headers=auth_headers).json()
    assert info["has_token"] is True
    assert info["token_prefix"] == issued["token_prefix"]
    assert info["feed_url"].endswith("/api/calendar/feed.ics")


def test_feed_renders_templates_and_skips_instances(client: TestClient, auth_headers: dict) -> None:
    template = client.post(
        "/api/user-1/tasks",
        json={"name": "Review; \"Q1, Q2\"", "due_date": "2024-01-01", "recurrence_type": "weekly",
              "recurrence_interval": 2, "recurrence_weekdays": [1, 3]},
        headers=auth_headers,
    ).json()
    client.post("/api/user-1/recurring-tasks/advance", headers=auth_headers)
    client.post("/api/user-1/tasks", json={"name": "No date"}, headers=auth_headers)
    token = issue_token(client, auth_headers)["token"]

    response = client.get("/api/calendar/feed.ics", params={"token": token})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/calendar")

    lines = unfolded(response.text)
    assert lines.count("BEGIN:VEVENT") == 1
    assert f"UID:task-{template['id']}@cadence.local" in lines
    assert r'SUMMARY:Review\; "Q1\, Q2"' in lines
    assert "RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE" in lines
    assert response.text.endswith("END:VCALENDAR\r\n")


def test_completed_and_project_filters(client: TestClient, auth_headers: dict, session: Session, user) -> None:
    project = Project(user_id=user.id, name="Home")
    session.add(project)
    session.commit()
    session.refresh(project)

    done = client.post(
        "/api/user-1/tasks", json={"name": "Done", "due_date": "2024-02-01"}, headers=auth_headers
    ).json()
    client.patch(f"/api/user-1/tasks/{done['id']}/complete", headers=auth_headers)
    client.post(
        "/api/user-1/tasks",
        json={"name": "Garden", "due_date": "2024-02-02", "project_id": project.id},
        headers=auth_headers,
    )
    token = issue_token(client, auth_headers)["token"]

    default = unfolded(client.get("/api/calendar/feed.ics", params={"token": token}).text)
    assert "SUMMARY:Garden" in default
    assert "SUMMARY:Done" not in default
    assert any(line.startswith("DESCRIPTION:Project: Home") for line in default)

    with_done = unfolded(client.get("/api/calendar/feed.ics", params={"token": token, "completed": "true"}).text)
    assert "SUMMARY:Done" in with_done

    by_project = unfolded(
        client.get("/api/calendar/feed.ics", params={"token": token, "completed": "1", "project": project.id}).text
    )
    assert by_project.count("BEGIN:VEVENT") == 1
    assert "SUMMARY:Garden" in by_project


def test_feed_rejects_missing_or_unknown_token(client: TestClient) -> None:
    assert client.get("/api/calendar/feed.ics").status_code == 401
    assert client.get("/api/calendar/feed.ics", params={"token": "cad_nope"}).status_code == 401
