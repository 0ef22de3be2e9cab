# tests/test_habits_api.py

from fastapi.testclient import TestClient
from sqlmodel import Session

from cadence.models.task import Task


def create_habit(client: TestClient, auth_headers: dict, **body) -> dict:
    body.setdefault("name", "Read")
    response = client.post("/api/user-1/habits", json=body, headers=auth_headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_list_habits(client: TestClient, auth_headers: dict) -> None:
    habit = create_habit(client, auth_headers)
    assert habit["habit_mode"] is True
    assert habit["recurrence_type"] == "none"

    listed = client.get("/api/user-1/habits", headers=auth_headers).json()
    assert listed["count"] == 1
    assert listed["habits"][0]["id"] == habit["id"]


def test_check_in_skip_and_undo_today(client: TestClient, auth_headers: dict, session: Session) -> None:
    habit = create_habit(client, auth_headers)
    url = f"/api/user-1/habits/{habit['id']}"

    logged = client.post(f"{url}/completions", json={}, headers=auth_headers).json()
    assert logged["stats"] == {"current_streak": 1, "best_streak": 1, "total_completions": 1, "completion_rate": 1.0,
                               "target_completion_rate": None}
    today = logged["completion"]["occurrence_date"]

    cached = session.get(Task, habit["id"])
    session.refresh(cached)
    assert cached.habit_current_streak == 1
    assert cached.habit_total_completions == 1
    assert cached.habit_last_completion_at is not None

    skipped = client.post(f"{url}/skips", json={"occurrence_date": today}, headers=auth_headers).json()
    assert skipped["completion"]["skipped"] is True
    assert skipped["stats"]["current_streak"] == 1
    assert skipped["stats"]["total_completions"] == 0

    undone = client.delete(f"{url}/completions/{today}", headers=auth_headers)
    assert undone.status_code == 200
    assert undone.json()["current_streak"] == 0
    assert client.delete(f"{url}/completions/{today}", headers=auth_headers).status_code == 404


def test_recurring_template_completion_and_stats(client: TestClient, auth_headers: dict) -> None:
    template = client.post(
        "/api/user-1/tasks",
        json={"name": "Weekly review", "due_date": "2024-01-01", "recurrence_type": "weekly",
              "recurrence_weekdays": [1]},
        headers=auth_headers,
    ).json()
    url = f"/api/user-1/habits/{template['id']}"

    rejected = client.post(f"{url}/completions", json={"occurrence_date": "2024-01-09"}, headers=auth_headers)
    assert rejected.status_code == 400

    accepted = client.post(f"{url}/completions", json={"occurrence_date": "2024-01-08"}, headers=auth_headers)
    assert accepted.status_code == 200
    assert accepted.json()["stats"]["best_streak"] == 1

    stats = client.get(f"{url}/stats", params={"end_date": "2024-01-08"}, headers=auth_headers).json()
    assert stats == {"current_streak": 1, "best_streak": 1, "total_completions": 1, "completion_rate": 1.0,
                     "target_completion_rate": None}

    bad_window = client.get(
        f"{url}/stats", params={"start_date": "2024-02-01", "end_date": "2024-01-08"}, headers=auth_headers
    )
    assert bad_window.status_code == 400


def test_list_completions_in_range(client: TestClient, auth_headers: dict) -> None:
    habit = create_habit(client, auth_headers)
    url = f"/api/user-1/habits/{habit['id']}"
    for day in ["2024-03-01", "2024-03-02", "2024-03-05"]:
        client.post(f"{url}/completions", json={"occurrence_date": day}, headers=auth_headers)

    response = client.get(
        f"{url}/completions", params={"start_date": "2024-03-02", "end_date": "2024-03-04"}, headers=auth_headers
    )
    assert [c["occurrence_date"] for c in response.json()] == ["2024-03-02"]


def test_habit_routes_require_ownership(client: TestClient, auth_headers: dict, session: Session, other_user) -> None:
    foreign = Task(user_id=other_user.id, name="Not mine", habit_mode=True)
    session.add(foreign)
    session.commit()
    session.refresh(foreign)

    response = client.post(f"/api/user-1/habits/{foreign.id}/completions", json={}, headers=auth_headers)
    assert response.status_code == 404
    assert client.get("/api/user-2/habits", headers=auth_headers).status_code == 403


def test_stats_default_to_today(client: TestClient, auth_headers: dict) -> None:
    habit = create_habit(client, auth_headers)
    stats = client.get(f"/api/user-1/habits/{habit['id']}/stats", headers=auth_headers).json()
    assert stats == {"current_streak": 0, "best_streak": 0, "total_completions": 0, "completion_rate": 0.0,
                     "target_completion_rate": None}


def test_due_today_filter_and_target_rate(client: TestClient, auth_headers: dict) -> None:
    done = create_habit(client, auth_headers, name="Meditate")
    pending = create_habit(client, auth_headers, name="Run", habit_target_count=2, habit_frequency_period="daily")
    assert pending["habit_frequency_period"] == "daily"

    client.post(f"/api/user-1/habits/{done['id']}/completions", json={}, headers=auth_headers)
    logged = client.post(f"/api/user-1/habits/{pending['id']}/completions", json={}, headers=auth_headers).json()
    # One run against a target of two for the day
    assert logged["stats"]["target_completion_rate"] == 0.5

    client.delete(f"/api/user-1/habits/{pending['id']}/completions/{logged['completion']['occurrence_date']}",
                  headers=auth_headers)
    due = client.get("/api/user-1/habits", params={"due_today": True}, headers=auth_headers).json()
    assert [h["id"] for h in due["habits"]] == [pending["id"]]


def test_invalid_streak_mode_is_rejected(client: TestClient, auth_headers: dict) -> None:
    response = client.post("/api/user-1/habits", json={"name": "Read", "habit_streak_mode": "sometimes"},
                           headers=auth_headers)
    assert response.status_code == 422
