from flask import jsonify, request

from .. import app
from ..auth import admin_required, token_required
from ..handlers import gamification as handlers
from . import json_body


@app.route("/api/gamification/dashboard", methods=["GET"])
@token_required
def gamification_dashboard(user):
    return jsonify(handlers.dashboard(user)), 200


@app.route("/api/gamification/leaderboard", methods=["GET"])
@token_required
def leaderboard(user):
    return jsonify(handlers.leaderboard(user, request.args)), 200


@app.route("/api/gamification/badges", methods=["GET"])
@token_required
def badges(user):
    return jsonify(handlers.badges(user)), 200


@app.route("/api/gamification/streaks", methods=["GET"])
@token_required
def streaks(user):
    return jsonify(handlers.streaks(user)), 200


@app.route("/api/gamification/award-xp", methods=["POST"])
@token_required
@admin_required
def award_xp(user):
    return jsonify(handlers.award_xp(user, json_body())), 200


@app.route("/api/gamification/award-badge", methods=["POST"])
@token_required
@admin_required
def award_badge(user):
    return jsonify(handlers.award_badge(user, json_body())), 201


@app.route("/api/gamification/achievements", methods=["GET"])
@token_required
def recent_achievements(user):
    return jsonify(handlers.achievements(user, request.args)), 200


@app.route("/api/gamification/milestones", methods=["GET"])
@token_required
def upcoming_milestones(user):
    return jsonify(handlers.milestones(user, request.args)), 200
