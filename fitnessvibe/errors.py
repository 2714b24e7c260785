import logging

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from . import app, db
from .exceptions import FitnessVibeError

logger = logging.getLogger(__name__)


@app.errorhandler(FitnessVibeError)
def handle_domain_error(e):
    db.session.rollback()
    if e.status_code >= 500:
        logger.error(f"Unhandled handler error: {e.message}")
    else:
        logger.warning(f"{type(e).__name__}: {e.message}")
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(StaleDataError)
def handle_stale_data(e):
    db.session.rollback()
    logger.warning(f"Concurrent modification detected: {str(e)}")
    return jsonify({"message": "The resource was modified by another request, please retry"}), 409


@app.errorhandler(SQLAlchemyError)
def handle_database_error(e):
    db.session.rollback()
    logger.error(f"Database error: {str(e)}")
    return jsonify({"message": "A database error occurred"}), 500


@app.errorhandler(HTTPException)
def handle_http_error(e):
    return jsonify({"message": e.description}), e.code
