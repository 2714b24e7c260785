from flask import Response, jsonify, request

from .. import app
from ..auth import token_required
from ..handlers import users as handlers
from . import json_body


@app.route("/api/users/profile", methods=["GET", "PUT"])
@token_required
def profile(user):
    if request.method == "GET":
        return jsonify(handlers.get_profile(user)), 200
    return jsonify(handlers.update_profile(user, json_body())), 200


@app.route("/api/users/profile/fitness", methods=["PUT"])
@token_required
def update_fitness_profile(user):
    return jsonify(handlers.update_fitness_profile(user, json_body())), 200


@app.route("/api/users/profile/avatar", methods=["PUT"])
@token_required
def set_avatar(user):
    return jsonify(handlers.set_avatar(user, json_body())), 200


@app.route("/api/users/preferences", methods=["GET", "PUT"])
@token_required
def preferences(user):
    if request.method == "GET":
        return jsonify(handlers.get_preferences(user)), 200
    return jsonify(handlers.update_preferences(user, json_body())), 200


@app.route("/api/users/change-password", methods=["POST"])
@token_required
def change_password(user):
    return jsonify(handlers.change_password(user, json_body())), 200


@app.route("/api/users/account", methods=["DELETE"])
@token_required
def delete_account(user):
    return jsonify(handlers.delete_account(user, json_body())), 200


@app.route("/api/users/<int:user_id>", methods=["GET"])
@token_required
def public_profile(user, user_id):
    return jsonify(handlers.get_public_profile(user, user_id)), 200


@app.route("/api/users/analytics", methods=["GET"])
@token_required
def user_analytics(user):
    return jsonify(handlers.get_analytics(user, request.args.get("timeframe"))), 200


@app.route("/api/users/personal-records", methods=["GET"])
@token_required
def personal_records(user):
    return jsonify(handlers.get_personal_records(user)), 200


@app.route("/api/users/privacy", methods=["GET", "PUT"])
@token_required
def privacy_settings(user):
    if request.method == "GET":
        return jsonify(handlers.get_privacy_settings(user)), 200
    return jsonify(handlers.update_privacy_settings(user, json_body())), 200


@app.route("/api/users/export", methods=["GET", "POST"])
@token_required
def export_data(user):
    export = handlers.export_data(user, request.args)
    if export["format"] == "csv":
        return Response(
            export["content"], mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={export['filename']}"},
        ), 200
    return jsonify(export), 200
