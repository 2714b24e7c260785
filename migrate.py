import logging
import os
import sys

from flask_migrate import upgrade
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

os.environ.setdefault("AUTO_CREATE_TABLES", "false")

from fitnessvibe import app, db  # noqa: E402
from fitnessvibe.gamification import seed_badges  # noqa: E402
from fitnessvibe.handlers.activities import seed_templates  # noqa: E402

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "migrations")

# Test database connection
try:
    engine = create_engine(app.config["SQLALCHEMY_DATABASE_URI"])
    with engine.connect() as conn:
        logger.info("Database connection successful")
except OperationalError as e:
    logger.error(f"Database connection failed: {e}")
    sys.exit(1)

with app.app_context():
    if os.path.isdir(MIGRATIONS_DIR):
        upgrade(directory=MIGRATIONS_DIR)
        logger.info("Database migrations applied successfully")
    else:
        db.create_all()
        logger.info("No migrations directory, tables created from models")
    seed_badges()
    seed_templates()
