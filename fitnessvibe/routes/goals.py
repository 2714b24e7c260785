from flask import jsonify, request

from .. import app
from ..auth import token_required
from ..handlers import goals as handlers
from . import json_body


@app.route("/api/goals", methods=["GET", "POST"])
@token_required
def goals(user):
    if request.method == "POST":
        return jsonify(handlers.create_goal(user, json_body())), 201
    return jsonify(handlers.list_goals(user, request.args)), 200


@app.route("/api/goals/analytics", methods=["GET"])
@token_required
def goal_analytics(user):
    return jsonify(handlers.analytics(user)), 200


@app.route("/api/goals/templates", methods=["GET"])
@token_required
def goal_templates(user):
    return jsonify(handlers.list_goal_templates(request.args)), 200


@app.route("/api/goals/templates/<template_id>/create", methods=["POST"])
@token_required
def create_goal_from_template(user, template_id):
    return jsonify(handlers.create_goal_from_template(user, template_id, json_body())), 201


@app.route("/api/goals/suggestions", methods=["GET"])
@token_required
def goal_suggestions(user):
    return jsonify(handlers.goal_suggestions(user, request.args)), 200


@app.route("/api/goals/<int:goal_id>", methods=["GET", "PUT", "DELETE"])
@token_required
def goal(user, goal_id):
    if request.method == "PUT":
        return jsonify(handlers.update_goal(user, goal_id, json_body())), 200
    if request.method == "DELETE":
        return jsonify(handlers.delete_goal(user, goal_id)), 200
    return jsonify(handlers.get_goal(user, goal_id)), 200


@app.route("/api/goals/<int:goal_id>/progress", methods=["GET", "POST"])
@token_required
def goal_progress(user, goal_id):
    if request.method == "POST":
        return jsonify(handlers.update_progress(user, goal_id, json_body())), 200
    return jsonify(handlers.progress_history(user, goal_id)), 200


@app.route("/api/goals/<int:goal_id>/complete", methods=["POST"])
@token_required
def complete_goal(user, goal_id):
    return jsonify(handlers.complete_goal(user, goal_id)), 200


@app.route("/api/goals/<int:goal_id>/pause", methods=["POST"])
@token_required
def pause_goal(user, goal_id):
    return jsonify(handlers.pause_goal(user, goal_id)), 200


@app.route("/api/goals/<int:goal_id>/resume", methods=["POST"])
@token_required
def resume_goal(user, goal_id):
    return jsonify(handlers.resume_goal(user, goal_id)), 200


@app.route("/api/goals/<int:goal_id>/abandon", methods=["POST"])
@token_required
def abandon_goal(user, goal_id):
    return jsonify(handlers.abandon_goal(user, goal_id)), 200
