from flask import jsonify, request

from .. import app
from ..auth import token_required
from ..handlers import challenges as handlers
from . import json_body


@app.route("/api/challenges", methods=["GET", "POST"])
@token_required
def challenges(user):
    if request.method == "POST":
        return jsonify(handlers.create_challenge(user, json_body())), 201
    return jsonify(handlers.search_challenges(user, request.args)), 200


@app.route("/api/challenges/mine", methods=["GET"])
@token_required
def my_challenges(user):
    return jsonify(handlers.my_challenges(user, request.args)), 200


@app.route("/api/challenges/<int:challenge_id>", methods=["GET"])
@token_required
def get_challenge(user, challenge_id):
    return jsonify(handlers.get_challenge(user, challenge_id)), 200


@app.route("/api/challenges/<int:challenge_id>/activate", methods=["POST"])
@token_required
def activate_challenge(user, challenge_id):
    return jsonify(handlers.activate_challenge(user, challenge_id)), 200


@app.route("/api/challenges/<int:challenge_id>/join", methods=["POST"])
@token_required
def join_challenge(user, challenge_id):
    return jsonify(handlers.join_challenge(user, challenge_id)), 201


@app.route("/api/challenges/<int:challenge_id>/progress", methods=["POST"])
@token_required
def challenge_progress(user, challenge_id):
    return jsonify(handlers.update_progress(user, challenge_id, json_body())), 200
