import logging

import click
from flask import Flask, jsonify

from auth import users_bp
from badges import badges_bp
from config import Config
from db import ensure_indexes, init_db
from errors import register_error_handlers
from hackathons import hackathons_bp
from judging import judging_bp
from maintenance import cleanup_empty_profile_fields
from notifications import announcements_bp, notifications_bp
from results import results_bp, scores_bp
from submissions import submissions_bp
from teams import registration_bp, teams_bp

# --- Logging setup ---
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

BLUEPRINTS = (
    (users_bp, "/api/users"),
    (hackathons_bp, "/api/hackathons"),
    (registration_bp, "/api/registration"),
    (teams_bp, "/api/teams"),
    (submissions_bp, "/api/submissions"),
    (notifications_bp, "/api/notifications"),
    (announcements_bp, "/api/announcements"),
    (judging_bp, "/api/judge-management"),
    (results_bp, "/api/judge-management"),
    (scores_bp, "/api/scores"),
    (badges_bp, "/api/badges"),
)


def create_app(config_object=Config, mongo_client=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    init_db(mongo_client, app.config["MONGO_DB_NAME"])
    register_error_handlers(app)

    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)

    @app.route("/", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.cli.command("ensure-indexes")
    def ensure_indexes_command():
        """Create the MongoDB indexes the API relies on."""
        ensure_indexes()
        click.echo("Indexes ensured")

    @app.cli.command("cleanup-profiles")
    def cleanup_profiles_command():
        """Remove empty profile fields left by older signups."""
        counts = cleanup_empty_profile_fields()
        for field, modified in counts.items():
            click.echo(f"{field}: {modified} users updated")

    return app


app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8000, debug=Config.LOG_LEVEL.upper() == "DEBUG")
