import logging

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate

from .config import Config
from .models import db

app = Flask(__name__)
app.config.from_object(Config)

logging.basicConfig(
    level=app.config["LOG_LEVEL"],
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CORS(app, resources={r"/api/*": {
    "origins": [o.strip() for o in app.config["FRONTEND_URL"].split(",")],
    "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    "allow_headers": ["Authorization", "Content-Type"],
    "supports_credentials": True,
    "expose_headers": ["Authorization"]
}})

db.init_app(app)
migrate = Migrate(app, db)

# Route modules register themselves on import
from . import errors  # noqa: E402,F401
import fitnessvibe.routes.activities  # noqa: E402,F401
import fitnessvibe.routes.auth  # noqa: E402,F401
import fitnessvibe.routes.challenges  # noqa: E402,F401
import fitnessvibe.routes.clubs  # noqa: E402,F401
import fitnessvibe.routes.gamification  # noqa: E402,F401
import fitnessvibe.routes.goals  # noqa: E402,F401
import fitnessvibe.routes.health  # noqa: E402,F401
import fitnessvibe.routes.messages  # noqa: E402,F401
import fitnessvibe.routes.notifications  # noqa: E402,F401
import fitnessvibe.routes.social  # noqa: E402,F401
import fitnessvibe.routes.users  # noqa: E402,F401
from .gamification import seed_badges  # noqa: E402

if app.config["AUTO_CREATE_TABLES"]:
    with app.app_context():
        db.create_all()
        seed_badges()
        logger.debug("Database tables ensured")


@app.cli.command("seed")
def seed_command():
    """Seed the badge catalogue and default activity templates."""
    from .handlers.activities import seed_templates

    seed_badges()
    seed_templates()
    logger.info("Seed data applied")


@app.cli.command("send-reminders")
def send_reminders_command():
    """Send the workout and goal reminders that are due now."""
    from .handlers.notifications import send_due_reminders

    sent = send_due_reminders()
    logger.info(f"{sent} reminders sent")
