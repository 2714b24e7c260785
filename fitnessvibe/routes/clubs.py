from flask import jsonify, request

from .. import app
from ..auth import token_required
from ..handlers import clubs as handlers
from . import json_body


@app.route("/api/clubs", methods=["GET", "POST"])
@token_required
def clubs(user):
    if request.method == "POST":
        return jsonify(handlers.create_club(user, json_body())), 201
    return jsonify(handlers.discover(user, request.args)), 200


@app.route("/api/clubs/mine", methods=["GET"])
@token_required
def my_clubs(user):
    return jsonify(handlers.my_clubs(user, request.args)), 200


@app.route("/api/clubs/<int:club_id>", methods=["GET", "PUT"])
@token_required
def club(user, club_id):
    if request.method == "PUT":
        return jsonify(handlers.update_club(user, club_id, json_body())), 200
    return jsonify(handlers.get_club(user, club_id)), 200


@app.route("/api/clubs/<int:club_id>/join", methods=["POST"])
@token_required
def join_club(user, club_id):
    return jsonify(handlers.join_club(user, club_id)), 201


@app.route("/api/clubs/<int:club_id>/leave", methods=["POST"])
@token_required
def leave_club(user, club_id):
    return jsonify(handlers.leave_club(user, club_id)), 200


@app.route("/api/clubs/<int:club_id>/members", methods=["GET"])
@token_required
def club_members(user, club_id):
    return jsonify(handlers.members(user, club_id, request.args)), 200


@app.route("/api/clubs/<int:club_id>/members/<int:member_id>", methods=["PUT", "DELETE"])
@token_required
def club_member(user, club_id, member_id):
    if request.method == "DELETE":
        return jsonify(handlers.remove_member(user, club_id, member_id)), 200
    return jsonify(handlers.update_member_role(user, club_id, member_id, json_body())), 200


@app.route("/api/clubs/<int:club_id>/activity", methods=["GET"])
@token_required
def club_activity(user, club_id):
    return jsonify(handlers.club_activity(user, club_id, request.args)), 200


@app.route("/api/clubs/<int:club_id>/challenges", methods=["GET", "POST"])
@token_required
def club_challenges(user, club_id):
    if request.method == "POST":
        return jsonify(handlers.create_club_challenge(user, club_id, json_body())), 201
    return jsonify(handlers.list_club_challenges(user, club_id, request.args)), 200


@app.route("/api/clubs/<int:club_id>/challenges/<int:challenge_id>", methods=["GET"])
@token_required
def club_challenge(user, club_id, challenge_id):
    return jsonify(handlers.get_club_challenge(user, club_id, challenge_id)), 200
