from flask import jsonify, request

from .. import app
from ..auth import token_required
from ..handlers import notifications as handlers
from . import json_body


@app.route("/api/notifications", methods=["GET"])
@token_required
def list_notifications(user):
    return jsonify(handlers.list_notifications(user, request.args)), 200


@app.route("/api/notifications/counts", methods=["GET"])
@token_required
def notification_counts(user):
    return jsonify(handlers.counts(user)), 200


@app.route("/api/notifications/read-all", methods=["POST"])
@token_required
def mark_all_notifications_read(user):
    return jsonify(handlers.mark_all_read(user, json_body())), 200


@app.route("/api/notifications/<int:notification_id>/read", methods=["POST"])
@token_required
def mark_notification_read(user, notification_id):
    return jsonify(handlers.mark_read(user, notification_id)), 200


@app.route("/api/notifications/<int:notification_id>", methods=["DELETE"])
@token_required
def delete_notification(user, notification_id):
    return jsonify(handlers.delete_notification(user, notification_id)), 200


@app.route("/api/notifications/mark-read", methods=["POST"])
@token_required
def mark_notifications_read(user):
    return jsonify(handlers.mark_read_batch(user, json_body())), 200


@app.route("/api/notifications/preferences", methods=["GET", "PUT"])
@token_required
def notification_preferences(user):
    if request.method == "GET":
        return jsonify(handlers.get_preferences(user)), 200
    return jsonify(handlers.update_preferences(user, json_body())), 200


@app.route("/api/notifications/reminders", methods=["GET", "POST"])
@token_required
def reminders(user):
    if request.method == "GET":
        return jsonify(handlers.list_reminders(user, request.args)), 200
    return jsonify(handlers.create_reminder(user, json_body())), 201


@app.route("/api/notifications/reminders/<int:reminder_id>", methods=["GET", "PUT", "DELETE"])
@token_required
def reminder_detail(user, reminder_id):
    if request.method == "GET":
        return jsonify(handlers.get_reminder(user, reminder_id)), 200
    if request.method == "PUT":
        return jsonify(handlers.update_reminder(user, reminder_id, json_body())), 200
    return jsonify(handlers.delete_reminder(user, reminder_id)), 200
