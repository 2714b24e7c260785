from datetime import timedelta

from sqlalchemy import text

from conftest import auth_headers, completed_activity
from fitnessvibe.models import Goal, Notification, User, db, utcnow


def goal_payload(**overrides):
    now = utcnow()
    payload = {
        "title": "Run 10 km this week",
        "type": "distance",
        "frequency": "weekly",
        "target_value": 10,
        "unit": "km",
        "start_date": (now - timedelta(days=1)).isoformat(),
        "end_date": (now + timedelta(days=6)).isoformat(),
    }
    payload.update(overrides)
    return payload


def create(client, headers, **overrides):
    res = client.post("/api/goals", headers=headers, json=goal_payload(**overrides))
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def test_create_goal(client, headers):
    goal = create(client, headers)
    assert goal["status"] == "active"
    assert goal["type"] == "distance"
    assert goal["current_value"] == 0.0
    assert goal["progress_percentage"] == 0.0
    assert goal["time_remaining_seconds"] > 0


def test_create_goal_validation(client, headers):
    now = utcnow()
    bad = [
        goal_payload(title=""),
        goal_payload(type="vibes"),
        goal_payload(frequency="hourly"),
        goal_payload(target_value=0),
        goal_payload(target_value="nan"),
        goal_payload(target_value="inf"),
        goal_payload(unit=None),
        goal_payload(end_date=None),
        goal_payload(end_date=(now - timedelta(days=2)).isoformat()),
    ]
    for payload in bad:
        assert client.post("/api/goals", headers=headers, json=payload).status_code == 400, payload


def test_goal_type_alias(client, headers):
    payload = goal_payload(type=None, goal_type="frequency", unit="sessions")
    res = client.post("/api/goals", headers=headers, json=payload)
    assert res.status_code == 201
    assert res.get_json()["type"] == "frequency"


def test_manual_progress_and_completion(client, user, headers):
    goal = create(client, headers)
    url = f"/api/goals/{goal['id']}/progress"

    res = client.post(url, headers=headers, json={"increment": 4})
    assert res.status_code == 200
    assert res.get_json()["current_value"] == 4.0
    assert res.get_json()["progress_percentage"] == 40.0
    assert res.get_json()["just_completed"] is False

    assert client.post(url, headers=headers, json={"increment": -1}).status_code == 400
    assert client.post(url, headers=headers, json={"value": -3}).status_code == 400
    assert client.post(url, headers=headers, json={}).status_code == 400

    done = client.post(url, headers=headers, json={"value": 12}).get_json()
    assert done["status"] == "completed"
    assert done["just_completed"] is True
    assert done["progress_percentage"] == 100.0
    assert [b["code"] for b in done["badges_earned"]] == ["goal_getter"]

    db.session.expire_all()
    assert db.session.get(User, user.id).experience_points == 100
    assert Notification.query.filter_by(user_id=user.id, type="goal_completed").count() == 1
    assert client.post(url, headers=headers, json={"increment": 1}).status_code == 409

    history = client.get(url, headers=headers).get_json()
    assert [e["value"] for e in history["entries"]] == [4.0, 12.0]
    assert [e["delta"] for e in history["entries"]] == [4.0, 8.0]


def test_completed_goal_cannot_be_edited(client, headers):
    goal = create(client, headers)
    client.post(f"/api/goals/{goal['id']}/complete", headers=headers)
    res = client.put(f"/api/goals/{goal['id']}", headers=headers, json={"title": "New"})
    assert res.status_code == 409
    assert client.post(f"/api/goals/{goal['id']}/complete", headers=headers).status_code == 409


def test_update_goal(client, headers):
    goal = create(client, headers)
    res = client.put(f"/api/goals/{goal['id']}", headers=headers, json={"title": "Run 15 km", "target_value": 15})
    assert res.status_code == 200
    assert res.get_json()["title"] == "Run 15 km"
    assert res.get_json()["target_value"] == 15.0
    assert client.put(f"/api/goals/{goal['id']}", headers=headers, json={"target_value": -5}).status_code == 400


def test_lowering_target_below_progress_completes_goal(client, headers):
    goal = create(client, headers)
    client.post(f"/api/goals/{goal['id']}/progress", headers=headers, json={"value": 6})
    res = client.put(f"/api/goals/{goal['id']}", headers=headers, json={"target_value": 5})
    assert res.get_json()["status"] == "completed"


def test_goal_expires_and_reactivates(client, headers):
    now = utcnow()
    goal = create(client, headers,
                  start_date=(now - timedelta(days=10)).isoformat(),
                  end_date=(now - timedelta(days=1)).isoformat())
    fetched = client.get(f"/api/goals/{goal['id']}", headers=headers).get_json()
    assert fetched["status"] == "expired"
    assert fetched["time_remaining_seconds"] == 0
    assert client.post(f"/api/goals/{goal['id']}/progress", headers=headers,
                       json={"increment": 1}).status_code == 409

    extended = client.put(f"/api/goals/{goal['id']}", headers=headers,
                          json={"end_date": (now + timedelta(days=3)).isoformat()})
    assert extended.get_json()["status"] == "active"


def test_pause_resume_abandon(client, headers):
    goal = create(client, headers)
    base = f"/api/goals/{goal['id']}"
    assert client.post(f"{base}/resume", headers=headers).status_code == 409
    assert client.post(f"{base}/pause", headers=headers).get_json()["status"] == "paused"
    assert client.post(f"{base}/progress", headers=headers, json={"increment": 1}).status_code == 409
    assert client.post(f"{base}/resume", headers=headers).get_json()["status"] == "active"
    assert client.post(f"{base}/abandon", headers=headers).get_json()["status"] == "abandoned"
    assert client.post(f"{base}/abandon", headers=headers).status_code == 409


def test_goal_ownership_and_soft_delete(client, headers, make_user):
    goal = create(client, headers)
    other = auth_headers(make_user("other"))
    assert client.get(f"/api/goals/{goal['id']}", headers=other).status_code == 403
    assert client.delete(f"/api/goals/{goal['id']}", headers=other).status_code == 403

    assert client.delete(f"/api/goals/{goal['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/goals/{goal['id']}", headers=headers).status_code == 404
    assert db.session.get(Goal, goal["id"]) is not None
    assert client.get("/api/goals", headers=headers).get_json()["total"] == 0


def test_list_goals_filters_by_status(client, headers):
    first = create(client, headers, title="First")
    create(client, headers, title="Second")
    client.post(f"/api/goals/{first['id']}/pause", headers=headers)

    everything = client.get("/api/goals", headers=headers).get_json()
    assert everything["total"] == 2
    paused = client.get("/api/goals?status=paused", headers=headers).get_json()
    assert [g["title"] for g in paused["items"]] == ["First"]
    assert client.get("/api/goals?status=unknown", headers=headers).status_code == 400


def test_completed_activity_advances_matching_goals(client, headers):
    distance = create(client, headers, title="Distance", target_value=10)
    frequency = create(client, headers, title="Sessions", type="frequency", target_value=1, unit="sessions")
    cycling = create(client, headers, title="Cycling", activity_type="cycling")

    res = client.post("/api/activities/manual", headers=headers, json={
        "activity_type": "running",
        "started_at": (utcnow() - timedelta(minutes=31)).isoformat(),
        "duration_minutes": 30,
        "distance_km": 4.5,
    })
    assert res.status_code == 201
    assert res.get_json()["rewards"]["goals_completed"] == [frequency["id"]]

    assert client.get(f"/api/goals/{distance['id']}", headers=headers).get_json()["current_value"] == 4.5
    assert client.get(f"/api/goals/{frequency['id']}", headers=headers).get_json()["status"] == "completed"
    assert client.get(f"/api/goals/{cycling['id']}", headers=headers).get_json()["current_value"] == 0.0
    history = client.get(f"/api/goals/{distance['id']}/progress", headers=headers).get_json()
    assert history["entries"][0]["source"] == "activity"


def test_goal_analytics(client, headers):
    done = create(client, headers, title="Done")
    create(client, headers, title="Half", type="calories", unit="kcal", target_value=1000)
    abandoned = create(client, headers, title="Dropped")
    client.post(f"/api/goals/{done['id']}/complete", headers=headers)
    client.post(f"/api/goals/{abandoned['id']}/abandon", headers=headers)

    body = client.get("/api/goals/analytics", headers=headers).get_json()
    assert body["total"] == 3
    assert body["by_status"]["completed"] == 1
    assert body["by_status"]["abandoned"] == 1
    assert body["by_status"]["active"] == 1
    assert body["by_type"] == {"distance": 2, "calories": 1}
    assert body["completion_rate"] == 50.0


def test_stale_goal_write_returns_conflict(client, headers):
    goal_id = create(client, headers)["id"]
    goal = db.session.get(Goal, goal_id)
    version = goal.version
    # another writer bumps the row behind this session's back
    db.session.execute(text("UPDATE goal SET version = version + 1 WHERE id = :id"), {"id": goal_id})

    res = client.put(f"/api/goals/{goal_id}", headers=headers, json={"title": "Run 12 km"})
    assert res.status_code == 409
    assert "modified by another request" in res.get_json()["message"]

    db.session.expire_all()
    reloaded = db.session.get(Goal, goal_id)
    assert reloaded.title == "Run 10 km this week"
    assert reloaded.version == version


def test_goal_templates(client, headers):
    res = client.get("/api/goals/templates", headers=headers, query_string={"difficulty": "beginner"})
    assert res.status_code == 200
    templates = res.get_json()["items"]
    assert templates and all(t["difficulty"] == "beginner" for t in templates)
    running = client.get("/api/goals/templates", headers=headers, query_string={"category": "running"})
    assert {t["id"] for t in running.get_json()["items"]} == {"first-5k", "weekly-10k", "marathon-base"}
    assert client.get("/api/goals/templates", headers=headers,
                      query_string={"difficulty": "superhuman"}).status_code == 400


def test_create_goal_from_template(client, headers):
    res = client.post("/api/goals/templates/first-5k/create", headers=headers, json={"target_value": 6})
    assert res.status_code == 201
    goal = res.get_json()
    assert goal["title"] == "Run Your First 5K"
    assert goal["type"] == "distance"
    assert goal["target_value"] == 6.0
    assert goal["activity_type"] == "running"
    stored = db.session.get(Goal, goal["id"])
    assert (stored.end_date - stored.start_date).days == 28

    assert client.post("/api/goals/templates/nope/create", headers=headers, json={}).status_code == 404
    assert client.post("/api/goals/templates/first-5k/create", headers=headers,
                       json={"target_value": -1}).status_code == 400


def test_goal_suggestions_scale_recent_activity(client, user, headers):
    res = client.get("/api/goals/suggestions", headers=headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["based_on_history"] is False
    assert body["difficulty"] == "beginner"
    assert all("template_id" in s for s in body["items"])

    for days_ago in (1, 8, 15, 22):
        completed_activity(user, days_ago=days_ago, minutes=60, distance_km=10.0, calories_burned=500)
    body = client.get("/api/goals/suggestions", headers=headers,
                      query_string={"difficulty": "advanced"}).get_json()
    suggestions = {s["type"]: s for s in body["items"]}
    assert body["based_on_history"] is True
    assert suggestions["distance"]["current_weekly_average"] == 10.0
    assert suggestions["distance"]["target_value"] == 12.0
    assert suggestions["frequency"]["target_value"] == 2.0
    assert suggestions["duration"]["unit"] == "minutes"
