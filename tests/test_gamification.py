import pytest

from conftest import auth_headers, befriend, completed_activity
from fitnessvibe.gamification import (
    BADGE_CATALOGUE, award_xp, evaluate_badges, level_for_xp, level_progress, level_title, seed_badges,
    xp_for_level,
)
from fitnessvibe.models import DEFAULT_PREFERENCES, Badge, Notification, User, UserBadge, XpTransaction, db


@pytest.mark.parametrize("level,xp", [(1, 0), (2, 100), (3, 300), (4, 600), (5, 1000), (10, 4500)])
def test_xp_for_level(level, xp):
    assert xp_for_level(level) == xp


@pytest.mark.parametrize("xp,level", [(0, 1), (99, 1), (100, 2), (299, 2), (300, 3), (1000, 5), (4499, 9)])
def test_level_for_xp(xp, level):
    assert level_for_xp(xp) == level


def test_level_titles():
    assert level_title(1) == "Rookie"
    assert level_title(5) == "Mover"
    assert level_title(12) == "Athlete"
    assert level_title(20) == "Champion"
    assert level_title(40) == "Legend"


def test_award_xp_records_transaction_and_levels_up(user):
    total, leveled_up = award_xp(user, 80, "Warm up", bonus=40)
    db.session.commit()
    assert (total, leveled_up) == (120, True)
    assert user.level == 2
    tx = XpTransaction.query.filter_by(user_id=user.id).one()
    assert (tx.amount, tx.base_amount, tx.bonus_amount) == (120, 80, 40)
    assert award_xp(user, 0, "Nothing") == (0, False)


def test_level_progress(user):
    award_xp(user, 150, "Test")
    progress = level_progress(user)
    assert progress["level"] == 2
    assert progress["xp_to_next_level"] == 150
    assert progress["level_progress_percentage"] == 25.0
    assert progress["level_title"] == "Rookie"


def test_welcome_badge_only_when_requested(user):
    assert evaluate_badges(user) == []
    earned = evaluate_badges(user, kinds={"welcome"})
    assert [b.code for b in earned] == ["welcome"]
    assert evaluate_badges(user, kinds={"welcome"}) == []
    assert user.experience_points == 10


def test_seed_badges_is_idempotent(app):
    assert Badge.query.count() == len(BADGE_CATALOGUE)
    assert seed_badges() == 0
    assert Badge.query.filter_by(code="marathoner").one().icon_url == "/assets/badges/marathoner.svg"


def test_distance_badge(user):
    completed_activity(user, distance_km=30.0)
    completed_activity(user, days_ago=3, distance_km=15.0)
    codes = {b.code for b in evaluate_badges(user)}
    assert "marathoner" in codes
    assert "first_steps" in codes


def test_dashboard(client, user, headers):
    award_xp(user, 150, "Test", source="admin")
    completed_activity(user)
    evaluate_badges(user)
    db.session.commit()
    body = client.get("/api/gamification/dashboard", headers=headers).get_json()
    assert body["level"] == 2
    assert body["experience_points"] == 175
    assert body["current_streak"] == 1
    assert body["badge_count"] == 1
    assert body["recent_badges"][0]["code"] == "first_steps"
    assert len(body["recent_xp_transactions"]) == 2


def test_badges_listing(client, user, headers):
    evaluate_badges(user, kinds={"welcome"})
    db.session.commit()
    body = client.get("/api/gamification/badges", headers=headers).get_json()
    assert body["total"] == len(BADGE_CATALOGUE)
    assert body["earned_count"] == 1
    welcome = next(b for b in body["items"] if b["code"] == "welcome")
    assert welcome["earned"] is True
    assert welcome["criteria"] == {"type": "welcome", "threshold": 1}


def test_streaks(client, user, headers):
    for days_ago in (0, 1, 2, 5, 6, 7, 8):
        completed_activity(user, days_ago=days_ago)
    body = client.get("/api/gamification/streaks", headers=headers).get_json()
    assert body == {"current_streak": 3, "longest_streak": 4, "today_counted": True, "next_milestone": 7}


def test_leaderboard_ranks_and_hides_opted_out_users(client, make_user):
    top = make_user("top", experience_points=500, level=3)
    me = make_user("me", experience_points=300, level=3)
    make_user("hidden", experience_points=1000, level=5,
              preferences=dict(DEFAULT_PREFERENCES, show_in_leaderboards=False))

    body = client.get("/api/gamification/leaderboard", headers=auth_headers(me)).get_json()
    assert [(e["user"]["username"], e["rank"], e["score"]) for e in body["entries"]] == [
        ("top", 1, 500), ("me", 2, 300),
    ]
    assert body["my_position"]["rank"] == 2
    assert body["my_position"]["is_current_user"] is True
    assert body["metric"] == "xp"
    assert top.id == body["entries"][0]["user"]["id"]


def test_opted_out_user_still_sees_own_rank(client, make_user):
    make_user("top", experience_points=500)
    shy = make_user("shy", experience_points=100,
                    preferences=dict(DEFAULT_PREFERENCES, show_in_leaderboards=False))
    body = client.get("/api/gamification/leaderboard", headers=auth_headers(shy)).get_json()
    assert body["my_position"]["rank"] == 2


def test_friends_leaderboard_by_activity_count(client, make_user):
    me = make_user("me")
    friend = make_user("friend")
    stranger = make_user("stranger")
    befriend(me, friend)
    completed_activity(friend)
    completed_activity(friend, days_ago=0, minutes=10)
    completed_activity(me)
    completed_activity(stranger)
    completed_activity(stranger)
    completed_activity(stranger)

    body = client.get("/api/gamification/leaderboard?metric=activities&scope=friends&timeframe=this_week",
                      headers=auth_headers(me)).get_json()
    assert [(e["user"]["username"], e["score"]) for e in body["entries"]] == [("friend", 2), ("me", 1)]
    assert body["total"] == 2


def test_leaderboard_validation(client, headers):
    assert client.get("/api/gamification/leaderboard?metric=vibes", headers=headers).status_code == 400
    assert client.get("/api/gamification/leaderboard?scope=galaxy", headers=headers).status_code == 400
    assert client.get("/api/gamification/leaderboard?page_size=500", headers=headers).status_code == 400


def test_admin_award_xp(client, user, headers, make_user):
    admin = auth_headers(make_user("coach", is_admin=True))
    payload = {"user_id": user.id, "amount": 100, "reason": "Community event", "multiplier_percentage": 150}
    assert client.post("/api/gamification/award-xp", headers=headers, json=payload).status_code == 403
    assert client.post("/api/gamification/award-xp", headers=admin,
                       json=dict(payload, amount=0)).status_code == 400
    assert client.post("/api/gamification/award-xp", headers=admin,
                       json=dict(payload, user_id=999)).status_code == 404

    res = client.post("/api/gamification/award-xp", headers=admin, json=payload)
    assert res.status_code == 200
    body = res.get_json()
    assert body["total_awarded"] == 150
    assert body["bonus_xp"] == 50
    assert body["leveled_up"] is True
    assert body["level"] == 2
    assert body["xp_to_next_level"] == 150
    assert Notification.query.filter_by(user_id=user.id, type="xp_awarded").count() == 1


def test_admin_award_badge(client, user, make_user):
    admin = auth_headers(make_user("coach", is_admin=True))
    badge = Badge.query.filter_by(code="dedicated").one()
    payload = {"user_id": user.id, "badge_id": badge.id, "context": "Club champion"}

    res = client.post("/api/gamification/award-badge", headers=admin, json=payload)
    assert res.status_code == 201
    assert res.get_json()["code"] == "dedicated"
    assert res.get_json()["earned_context"] == "Club champion"
    assert client.post("/api/gamification/award-badge", headers=admin, json=payload).status_code == 409
    assert client.post("/api/gamification/award-badge", headers=admin,
                       json=dict(payload, badge_id=999)).status_code == 404
    db.session.expire_all()
    assert db.session.get(User, user.id).experience_points == badge.points


def test_admin_award_xp_unlocks_level_badge(client, user, make_user):
    admin = auth_headers(make_user("coach", is_admin=True))
    res = client.post("/api/gamification/award-xp", headers=admin,
                      json={"user_id": user.id, "amount": 1200, "reason": "Season finale"})
    assert res.status_code == 200
    body = res.get_json()
    assert [b["code"] for b in body["badges_earned"]] == ["rising_star"]
    assert body["level"] == 5

    db.session.expire_all()
    target = db.session.get(User, user.id)
    assert "rising_star" in {ub.badge.code for ub in UserBadge.query.filter_by(user_id=user.id)}
    assert target.experience_points == 1200 + Badge.query.filter_by(code="rising_star").one().points


def test_admin_award_badge_reevaluates_badges(client, user, make_user):
    admin = auth_headers(make_user("coach", is_admin=True))
    user.experience_points = 990
    user.level = 4
    db.session.commit()
    badge = Badge.query.filter_by(code="dedicated").one()

    res = client.post("/api/gamification/award-badge", headers=admin,
                      json={"user_id": user.id, "badge_id": badge.id})
    assert res.status_code == 201
    body = res.get_json()
    assert body["leveled_up"] is True
    assert [b["code"] for b in body["badges_earned"]] == ["rising_star"]


def test_achievements_list_badges_and_level_ups(client, user, headers):
    award_xp(user, 350, "Season kickoff")
    evaluate_badges(user, kinds=["welcome"])
    db.session.commit()

    res = client.get("/api/gamification/achievements", headers=headers)
    assert res.status_code == 200
    items = res.get_json()["items"]
    level_ups = sorted(i["level"] for i in items if i["type"] == "level_up")
    assert level_ups == [2, 3]
    welcome = next(i for i in items if i["type"] == "badge")
    assert welcome["badge"]["code"] == "welcome"
    assert welcome["is_rare"] is False
    assert "Welcome Aboard" in welcome["shareable_text"]

    limited = client.get("/api/gamification/achievements", headers=headers, query_string={"limit": 1})
    assert len(limited.get_json()["items"]) == 1
    assert client.get("/api/gamification/achievements", headers=headers,
                      query_string={"days": 0}).status_code == 400


def test_achievements_ignore_xp_before_the_ledger(client, make_user):
    veteran = make_user("veteran", experience_points=950, level=4)
    award_xp(veteran, 100, "Comeback")
    db.session.commit()
    items = client.get("/api/gamification/achievements", headers=auth_headers(veteran)).get_json()["items"]
    assert [i["level"] for i in items if i["type"] == "level_up"] == [5]


def test_milestones(client, user, headers):
    award_xp(user, 80, "Almost there")
    completed_activity(user, days_ago=0)
    db.session.commit()

    res = client.get("/api/gamification/milestones", headers=headers)
    assert res.status_code == 200
    items = res.get_json()["items"]
    level = next(m for m in items if m["type"] == "level")
    assert level["title"] == "Reach level 2"
    assert level["priority"] == 1
    assert level["xp_needed"] == 20
    streak = next(m for m in items if m["type"] == "streak")
    assert (streak["current"], streak["target"]) == (1, 3)
    codes = {m["badge"]["code"] for m in items if m["type"] == "badge"}
    assert "first_steps" in codes
    assert "welcome" not in codes
    assert [m["priority"] for m in items] == sorted(m["priority"] for m in items)

    urgent = client.get("/api/gamification/milestones", headers=headers, query_string={"priority": 1})
    assert all(m["priority"] == 1 for m in urgent.get_json()["items"])
    assert client.get("/api/gamification/milestones", headers=headers,
                      query_string={"priority": 4}).status_code == 400
