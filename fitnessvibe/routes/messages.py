from flask import jsonify, request

from .. import app
from ..auth import token_required
from ..handlers import messages as handlers
from . import json_body


@app.route("/api/messages", methods=["GET", "POST"])
@token_required
def messages(user):
    if request.method == "POST":
        return jsonify(handlers.send_message(user, json_body())), 201
    return jsonify(handlers.list_conversations(user)), 200


@app.route("/api/messages/thread/<int:other_id>", methods=["GET"])
@token_required
def message_thread(user, other_id):
    return jsonify(handlers.get_thread(user, other_id, request.args)), 200


@app.route("/api/messages/<int:message_id>", methods=["DELETE"])
@token_required
def delete_message(user, message_id):
    return jsonify(handlers.delete_message(user, message_id)), 200
