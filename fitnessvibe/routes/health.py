import logging

from flask import jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .. import app, db
from ..models import utcnow

logger = logging.getLogger(__name__)


@app.route("/api/health", methods=["GET"])
def health():
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database failure: {str(e)}")
        db.session.rollback()
        database = "unavailable"
    status = "healthy" if database == "ok" else "degraded"
    return jsonify({
        "status": status,
        "database": database,
        "timestamp": utcnow().isoformat(),
    }), 200 if status == "healthy" else 503
