from flask import jsonify, request

from .. import app
from ..auth import admin_required, token_required
from ..handlers import activities as handlers
from . import json_body


@app.route("/api/activities", methods=["GET"])
@token_required
def list_activities(user):
    return jsonify(handlers.list_user_activities(user, request.args)), 200


@app.route("/api/activities/start", methods=["POST"])
@token_required
def start_activity(user):
    return jsonify(handlers.start_activity(user, json_body())), 201


@app.route("/api/activities/manual", methods=["POST"])
@token_required
def log_manual_activity(user):
    return jsonify(handlers.log_manual_activity(user, json_body())), 201


@app.route("/api/activities/<int:activity_id>", methods=["GET"])
@token_required
def get_activity(user, activity_id):
    return jsonify(handlers.get_activity(user, activity_id)), 200


@app.route("/api/activities/<int:activity_id>/pause", methods=["POST"])
@token_required
def pause_activity(user, activity_id):
    return jsonify(handlers.pause_activity(user, activity_id)), 200


@app.route("/api/activities/<int:activity_id>/resume", methods=["POST"])
@token_required
def resume_activity(user, activity_id):
    return jsonify(handlers.resume_activity(user, activity_id)), 200


@app.route("/api/activities/<int:activity_id>/complete", methods=["POST"])
@token_required
def complete_activity(user, activity_id):
    return jsonify(handlers.complete_activity(user, activity_id, json_body())), 200


@app.route("/api/activities/<int:activity_id>/cancel", methods=["POST"])
@token_required
def cancel_activity(user, activity_id):
    return jsonify(handlers.cancel_activity(user, activity_id, json_body())), 200


@app.route("/api/activities/<int:activity_id>/live", methods=["GET"])
@token_required
def live_activity(user, activity_id):
    return jsonify(handlers.get_live_activity(user, activity_id)), 200


@app.route("/api/activities/<int:activity_id>/route", methods=["GET", "POST"])
@token_required
def activity_route(user, activity_id):
    if request.method == "POST":
        return jsonify(handlers.add_route_point(user, activity_id, json_body())), 201
    return jsonify(handlers.get_route(user, activity_id)), 200


@app.route("/api/activities/<int:activity_id>/route/stats", methods=["GET"])
@token_required
def activity_route_stats(user, activity_id):
    return jsonify(handlers.get_route_stats(user, activity_id, request.args)), 200


@app.route("/api/activities/templates", methods=["GET"])
@token_required
def list_templates(user):
    return jsonify(handlers.list_templates(request.args)), 200


@app.route("/api/activities/templates", methods=["POST"])
@token_required
@admin_required
def create_template(user):
    return jsonify(handlers.create_template(user, json_body())), 201


@app.route("/api/activities/templates/<int:template_id>/rate", methods=["POST"])
@token_required
def rate_template(user, template_id):
    return jsonify(handlers.rate_template(user, template_id, json_body())), 200
