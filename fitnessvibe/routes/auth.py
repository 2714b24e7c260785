import logging

from flask import jsonify

from .. import app
from ..auth import token_required
from ..handlers import auth as handlers
from . import json_body

logger = logging.getLogger(__name__)


@app.route("/api/auth/register", methods=["POST"])
def register():
    return jsonify(handlers.register(json_body())), 201


@app.route("/api/auth/login", methods=["POST"])
def login():
    return jsonify(handlers.login(json_body())), 200


@app.route("/api/auth/me", methods=["GET"])
@token_required
def me(user):
    return jsonify(handlers.me(user)), 200


@app.route("/api/auth/refresh", methods=["POST"])
def refresh_token():
    return jsonify(handlers.refresh(json_body())), 200


@app.route("/api/auth/logout", methods=["POST"])
@token_required
def logout(user):
    return jsonify(handlers.logout(user)), 200


@app.route("/api/auth/forgot-password", methods=["POST"])
def forgot_password():
    return jsonify(handlers.forgot_password(json_body())), 200


@app.route("/api/auth/reset-password", methods=["POST"])
def reset_password():
    return jsonify(handlers.reset_password(json_body())), 200


@app.route("/api/auth/verify-email", methods=["POST"])
def verify_email():
    return jsonify(handlers.verify_email(json_body())), 200
