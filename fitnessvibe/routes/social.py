from flask import jsonify, request

from .. import app
from ..auth import token_required
from ..handlers import social as handlers
from . import json_body


@app.route("/api/social/friend-requests", methods=["GET", "POST"])
@token_required
def friend_requests(user):
    if request.method == "POST":
        result = handlers.send_friend_request(user, json_body())
        return jsonify(result), 201 if result["status"] == "sent" else 200
    return jsonify(handlers.list_friend_requests(user, request.args)), 200


@app.route("/api/social/friend-requests/<int:request_id>/respond", methods=["POST"])
@token_required
def respond_to_friend_request(user, request_id):
    return jsonify(handlers.respond_to_friend_request(user, request_id, json_body())), 200


@app.route("/api/social/friends", methods=["GET"])
@token_required
def list_friends(user):
    return jsonify(handlers.list_friends(user, request.args)), 200


@app.route("/api/social/friends/<int:friend_id>", methods=["DELETE"])
@token_required
def remove_friend(user, friend_id):
    return jsonify(handlers.remove_friend(user, friend_id)), 200


@app.route("/api/social/share", methods=["POST"])
@token_required
def share_activity(user):
    return jsonify(handlers.share_activity(user, json_body())), 201


@app.route("/api/social/feed", methods=["GET"])
@token_required
def feed(user):
    return jsonify(handlers.feed(user, request.args)), 200


@app.route("/api/social/posts/<int:post_id>/like", methods=["POST", "DELETE"])
@token_required
def like_post(user, post_id):
    if request.method == "DELETE":
        return jsonify(handlers.unlike_post(user, post_id)), 200
    return jsonify(handlers.like_post(user, post_id)), 201


@app.route("/api/social/posts/<int:post_id>/comments", methods=["GET", "POST"])
@token_required
def post_comments(user, post_id):
    if request.method == "POST":
        return jsonify(handlers.comment_on_post(user, post_id, json_body())), 201
    return jsonify(handlers.list_comments(user, post_id, request.args)), 200


@app.route("/api/social/posts/<int:post_id>/comments/<int:comment_id>", methods=["DELETE"])
@token_required
def delete_comment(user, post_id, comment_id):
    return jsonify(handlers.delete_comment(user, post_id, comment_id)), 200


@app.route("/api/social/cheers", methods=["POST"])
@token_required
def send_cheer(user):
    return jsonify(handlers.send_cheer(user, json_body())), 201
