from datetime import timedelta

import pytest

from conftest import auth_headers, befriend, completed_activity
from fitnessvibe.handlers.activities import (
    base_xp, difficulty_for, estimate_calories, generate_activity_name, performance_rating,
    seed_templates, streak_bonus, time_of_day,
)
from fitnessvibe.models import Activity, ActivityTemplate, User, XpTransaction, db, utcnow


def start(client, headers, **payload):
    payload.setdefault("activity_type", "running")
    return client.post("/api/activities/start", headers=headers, json=payload)


def manual(client, headers, minutes=30, **payload):
    payload.setdefault("activity_type", "running")
    payload.setdefault("started_at", (utcnow() - timedelta(minutes=minutes + 1)).isoformat())
    payload.setdefault("duration_minutes", minutes)
    return client.post("/api/activities/manual", headers=headers, json=payload)


def test_calorie_and_xp_helpers():
    assert estimate_calories("running", 30, "intermediate") == 300.0
    assert estimate_calories("running", 30, "beginner") == 240.0
    assert estimate_calories("underwater_basket_weaving", 60, "elite") == 420.0
    assert base_xp("running", 30) == 150
    assert base_xp("walking", 1) == 10
    assert base_xp("bouldering", 20) == 60


def test_streak_bonus_scales_weekly_and_caps():
    assert streak_bonus(100, 6) == 0
    assert streak_bonus(100, 7) == 10
    assert streak_bonus(100, 20) == 20
    assert streak_bonus(100, 500) == 100


def test_naming_and_rating_helpers():
    assert time_of_day(6) == "Morning"
    assert time_of_day(13) == "Afternoon"
    assert time_of_day(19) == "Evening"
    assert time_of_day(2) == "Late Night"
    when = utcnow().replace(hour=7)
    assert generate_activity_name("cycling", "Sam", when) == "Sam's Morning Ride"
    assert generate_activity_name("boxing", "Sam", when) == "Sam's Morning Boxing"
    assert difficulty_for("running", 10) == "Easy"
    assert difficulty_for("running", 100) == "Extreme"
    assert performance_rating(None) == "Good Effort"
    assert performance_rating(10) == "Beast Mode!"


def test_start_activity(client, headers):
    res = start(client, headers, planned_duration_minutes=60, tags=["tempo"])
    assert res.status_code == 201
    body = res.get_json()
    activity = body["activity"]
    assert activity["status"] == "active"
    assert activity["name"].startswith("Alex's ")
    assert activity["name"].endswith(" Run")
    assert activity["tags"] == ["tempo"]
    assert body["is_gps_enabled"] is True
    assert body["live_session_url"] == f"/live-session/{activity['id']}"
    assert body["estimated_stats"]["distance_km"] == 10.0
    assert body["estimated_stats"]["calories"] == 480
    assert "Alex" in body["motivational_message"]


def test_start_activity_validation(client, headers):
    assert start(client, headers, activity_type="quidditch").status_code == 400
    assert start(client, headers, start_latitude=10.0).status_code == 400
    assert start(client, headers, start_latitude=91, start_longitude=0).status_code == 400
    assert start(client, headers, tags=[f"t{i}" for i in range(11)]).status_code == 400
    assert start(client, headers, template_id=999).status_code == 404


def test_only_one_live_session(client, headers):
    assert start(client, headers).status_code == 201
    assert start(client, headers, activity_type="cycling").status_code == 409


def test_start_from_template_counts_usage(client, headers):
    seed_templates()
    template = ActivityTemplate.query.filter_by(name="Weekend Ride").one()
    res = start(client, headers, template_id=template.id, activity_type=None)
    assert res.status_code == 201
    assert res.get_json()["activity"]["activity_type"] == "cycling"
    assert res.get_json()["estimated_stats"]["duration_minutes"] == 90
    db.session.expire_all()
    assert db.session.get(ActivityTemplate, template.id).usage_count == 1


def test_pause_resume_complete(client, user, headers):
    activity_id = start(client, headers).get_json()["activity"]["id"]

    assert client.post(f"/api/activities/{activity_id}/resume", headers=headers).status_code == 409
    paused = client.post(f"/api/activities/{activity_id}/pause", headers=headers)
    assert paused.get_json()["status"] == "paused"
    assert client.post(f"/api/activities/{activity_id}/pause", headers=headers).status_code == 409
    resumed = client.post(f"/api/activities/{activity_id}/resume", headers=headers)
    assert resumed.get_json()["status"] == "active"

    res = client.post(f"/api/activities/{activity_id}/complete", headers=headers,
                      json={"perceived_exertion": 8, "mood_after": "great"})
    assert res.status_code == 200
    body = res.get_json()
    assert body["activity"]["status"] == "completed"
    assert body["rewards"]["xp_earned"] == 10
    assert body["rewards"]["xp_bonus"] == 0
    assert body["rewards"]["streak_days"] == 1
    assert [b["code"] for b in body["rewards"]["badges_earned"]] == ["first_steps"]
    assert body["performance_rating"] == "Excellent Workout"
    assert body["celebration_message"].startswith("Workout complete!")

    db.session.expire_all()
    assert db.session.get(User, user.id).experience_points == 35
    assert XpTransaction.query.filter_by(user_id=user.id, source="activity").count() == 1


def test_complete_from_paused(client, headers):
    activity_id = start(client, headers).get_json()["activity"]["id"]
    client.post(f"/api/activities/{activity_id}/pause", headers=headers)
    res = client.post(f"/api/activities/{activity_id}/complete", headers=headers, json={})
    assert res.status_code == 200
    db.session.expire_all()
    activity = db.session.get(Activity, activity_id)
    assert activity.status == "completed"
    assert activity.paused_at is None


def test_complete_rejects_bad_end_time_and_repeat(client, headers):
    activity_id = start(client, headers).get_json()["activity"]["id"]
    future = (utcnow() + timedelta(hours=1)).isoformat()
    past = (utcnow() - timedelta(hours=1)).isoformat()
    url = f"/api/activities/{activity_id}/complete"
    assert client.post(url, headers=headers, json={"end_time": future}).status_code == 400
    assert client.post(url, headers=headers, json={"end_time": past}).status_code == 400
    assert client.post(url, headers=headers, json={"perceived_exertion": 11}).status_code == 400
    assert client.post(url, headers=headers, json={}).status_code == 200
    assert client.post(url, headers=headers, json={}).status_code == 409


def test_complete_with_manual_figures_and_share(client, headers):
    activity_id = start(client, headers).get_json()["activity"]["id"]
    res = client.post(f"/api/activities/{activity_id}/complete", headers=headers, json={
        "manual_distance_km": 5.0, "manual_calories": 420, "share_to_feed": True, "caption": "Felt good",
    })
    body = res.get_json()
    assert body["activity"]["distance_km"] == 5.0
    assert body["activity"]["calories_burned"] == 420
    assert body["shared_post_id"]
    metrics = {r["metric"] for r in body["personal_records"]["new_records"]}
    assert {"distance_km", "calories_burned"} <= metrics


def test_cancel_activity(client, headers):
    activity_id = start(client, headers).get_json()["activity"]["id"]
    res = client.post(f"/api/activities/{activity_id}/cancel", headers=headers, json={"reason": "Rain"})
    assert res.status_code == 200
    assert res.get_json()["status"] == "cancelled"
    assert res.get_json()["cancel_reason"] == "Rain"
    assert client.post(f"/api/activities/{activity_id}/cancel", headers=headers).status_code == 409
    assert client.post(f"/api/activities/{activity_id}/complete", headers=headers).status_code == 409
    # a cancelled session no longer blocks a new one
    assert start(client, headers).status_code == 201


def test_other_users_cannot_modify_activity(client, headers, make_user):
    activity_id = start(client, headers).get_json()["activity"]["id"]
    intruder = auth_headers(make_user("intruder"))
    assert client.post(f"/api/activities/{activity_id}/pause", headers=intruder).status_code == 403
    assert client.post(f"/api/activities/{activity_id}/complete", headers=intruder).status_code == 403
    assert client.post("/api/activities/9999/pause", headers=intruder).status_code == 404


def test_activity_visibility(client, user, make_user):
    friend = make_user("friend")
    stranger = make_user("stranger")
    befriend(user, friend)
    public = completed_activity(user)
    private = completed_activity(user, days_ago=1, is_public=False)

    assert client.get(f"/api/activities/{public.id}", headers=auth_headers(user)).status_code == 200
    assert client.get(f"/api/activities/{public.id}", headers=auth_headers(friend)).status_code == 200
    assert client.get(f"/api/activities/{private.id}", headers=auth_headers(friend)).status_code == 403
    assert client.get(f"/api/activities/{public.id}", headers=auth_headers(stranger)).status_code == 403


def test_list_activities_paginates_and_filters(client, user, headers):
    completed_activity(user, days_ago=0)
    completed_activity(user, days_ago=1, activity_type="cycling")
    completed_activity(user, days_ago=2)
    start(client, headers, activity_type="yoga")

    res = client.get("/api/activities?page_size=2", headers=headers)
    body = res.get_json()
    assert body["total"] == 4
    assert body["pages"] == 2
    assert len(body["items"]) == 2
    assert body["items"][0]["activity_type"] == "yoga"

    completed = client.get("/api/activities?status=completed&activity_type=running", headers=headers).get_json()
    assert completed["total"] == 2
    assert client.get("/api/activities?status=sleeping", headers=headers).status_code == 400


def test_manual_activity(client, user, headers):
    res = manual(client, headers, minutes=30, distance_km=5.0)
    assert res.status_code == 201
    body = res.get_json()
    assert body["activity"]["is_manual"] is True
    assert body["activity"]["calories_burned"] == 240.0
    assert body["rewards"]["xp_earned"] == 150
    assert body["rewards"]["leveled_up"] is True
    assert body["rewards"]["new_level"] == 2
    assert body["stats"]["average_pace_min_per_km"] == 6.0


def test_manual_activity_validation(client, headers):
    future_start = (utcnow() - timedelta(minutes=10)).isoformat()
    assert manual(client, headers, minutes=30, started_at=future_start).status_code == 400
    assert manual(client, headers, duration_minutes=0).status_code == 400
    assert manual(client, headers, started_at="yesterday").status_code == 400
    assert client.post("/api/activities/manual", headers=headers, json={"activity_type": "running"}).status_code == 400


def test_streak_bonus_applied_on_completion(client, user, headers):
    for days_ago in range(1, 8):
        completed_activity(user, days_ago=days_ago)
    body = manual(client, headers, minutes=30).get_json()
    assert body["rewards"]["streak_days"] == 8
    assert body["rewards"]["xp_bonus"] == 15
    codes = {b["code"] for b in body["rewards"]["badges_earned"]}
    assert {"first_steps", "on_a_roll", "week_warrior"} <= codes


def test_improved_personal_record(client, headers):
    manual(client, headers, minutes=20, distance_km=3.0)
    body = manual(client, headers, minutes=40, distance_km=8.0).get_json()
    improved = {r["metric"]: r for r in body["personal_records"]["improved_records"]}
    assert improved["distance_km"]["previous"] == 3.0
    assert improved["duration_minutes"]["value"] == 40.0


def test_route_points_and_stats(client, headers):
    activity_id = start(client, headers).get_json()["activity"]["id"]
    url = f"/api/activities/{activity_id}/route"
    now = utcnow()
    points = [
        {"latitude": 51.50, "longitude": -0.1, "elevation": 10, "timestamp": (now - timedelta(minutes=10)).isoformat()},
        {"latitude": 51.51, "longitude": -0.1, "elevation": 25, "timestamp": (now - timedelta(minutes=5)).isoformat()},
        {"latitude": 51.52, "longitude": -0.1, "elevation": 15, "timestamp": (now - timedelta(minutes=1)).isoformat()},
    ]
    for i, point in enumerate(points, start=1):
        res = client.post(url, headers=headers, json=point)
        assert res.status_code == 201
        assert res.get_json()["point_count"] == i

    route = client.get(url, headers=headers).get_json()
    assert [p["sequence"] for p in route["points"]] == [1, 2, 3]
    assert route["statistics"]["total_distance_m"] == pytest.approx(2224, rel=0.01)
    assert route["statistics"]["elevation_gain"] == 15.0

    window_start = (now - timedelta(minutes=6)).isoformat()
    stats = client.get(f"{url}/stats", headers=headers, query_string={"start_time": window_start}).get_json()
    assert stats["point_count"] == 2
    assert stats["total_distance_m"] == pytest.approx(1112, rel=0.01)

    completed = client.post(f"/api/activities/{activity_id}/complete", headers=headers, json={}).get_json()
    assert completed["activity"]["distance_km"] == pytest.approx(2.224, rel=0.01)


def test_route_point_validation(client, headers, make_user):
    activity_id = start(client, headers).get_json()["activity"]["id"]
    url = f"/api/activities/{activity_id}/route"
    future = (utcnow() + timedelta(minutes=5)).isoformat()
    assert client.post(url, headers=headers, json={"latitude": 91, "longitude": 0}).status_code == 400
    assert client.post(url, headers=headers, json={"latitude": 0, "longitude": 181}).status_code == 400
    assert client.post(url, headers=headers, json={"latitude": 0}).status_code == 400
    assert client.post(url, headers=headers,
                       json={"latitude": 0, "longitude": 0, "elevation": 10000}).status_code == 400
    assert client.post(url, headers=headers,
                       json={"latitude": 0, "longitude": 0, "timestamp": future}).status_code == 400
    other = auth_headers(make_user("other"))
    assert client.post(url, headers=other, json={"latitude": 0, "longitude": 0}).status_code == 403

    client.post(f"/api/activities/{activity_id}/pause", headers=headers)
    assert client.post(url, headers=headers, json={"latitude": 0, "longitude": 0}).status_code == 409


def test_live_view_for_friend(client, user, make_user):
    friend = make_user("friend")
    befriend(user, friend)
    activity_id = start(client, auth_headers(user)).get_json()["activity"]["id"]
    client.post(f"/api/activities/{activity_id}/route", headers=auth_headers(user),
                json={"latitude": 40.0, "longitude": -74.0})

    res = client.get(f"/api/activities/{activity_id}/live", headers=auth_headers(friend))
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "active"
    assert body["point_count"] == 1
    assert body["last_point"]["latitude"] == 40.0
    assert body["cheers"] == []


def test_templates(client, headers, make_user):
    seed_templates()
    listing = client.get("/api/activities/templates", headers=headers).get_json()
    assert listing["total"] == 6
    assert listing["items"][0]["is_featured"] is True
    featured = client.get("/api/activities/templates?featured=true", headers=headers).get_json()
    assert featured["total"] == 3
    search = client.get("/api/activities/templates?search=ride", headers=headers).get_json()
    assert [t["name"] for t in search["items"]] == ["Weekend Ride"]

    payload = {"name": "Stair Climb", "activity_type": "cardio", "category": "Cardio",
               "difficulty_level": 3, "estimated_duration_minutes": 20, "estimated_calories": 200}
    assert client.post("/api/activities/templates", headers=headers, json=payload).status_code == 403
    admin = auth_headers(make_user("coach", is_admin=True))
    created = client.post("/api/activities/templates", headers=admin, json=payload)
    assert created.status_code == 201
    assert created.get_json()["category"] == "cardio"
    bad = dict(payload, difficulty_level=6)
    assert client.post("/api/activities/templates", headers=admin, json=bad).status_code == 400


def test_rate_template_keeps_running_average(client, headers):
    seed_templates()
    template = ActivityTemplate.query.filter_by(name="Easy 5K").one()
    url = f"/api/activities/templates/{template.id}/rate"
    client.post(url, headers=headers, json={"rating": 5})
    res = client.post(url, headers=headers, json={"rating": 2})
    assert res.get_json()["average_rating"] == 3.5
    assert res.get_json()["rating_count"] == 2
    assert client.post(url, headers=headers, json={"rating": 0}).status_code == 400


def test_route_point_rejects_non_finite_coordinates(client, headers):
    activity_id = start(client, headers).get_json()["activity"]["id"]
    url = f"/api/activities/{activity_id}/route"
    res = client.post(url, headers=headers, json={"latitude": "nan", "longitude": 0})
    assert res.status_code == 400
    assert "finite" in res.get_json()["message"]
    assert client.post(url, headers=headers, json={"latitude": 0, "longitude": "-inf"}).status_code == 400
    assert client.get(url, headers=headers).get_json()["points"] == []
