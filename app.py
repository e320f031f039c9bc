import traceback

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from config import Config
from models import db
from models.user import User
from routes import BLUEPRINTS
from security.csrf import require_csrf
from utils import booking_rules, trust_levels
from utils.audit import log_event
from utils.auth_context import load_current_user
from utils.errors import ApiError
from utils.logger import logger, setup_logging
from utils.seed import seed_config


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    setup_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_DIR"))

    # Register routes
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed default booking rules at startup (idempotent)
    if app.config.get("SEED_CONFIG_ON_STARTUP", True):
        with app.app_context():
            try:
                added = seed_config()
                if added:
                    logger.info("Seeded config keys: {}", ", ".join(added))
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.warning("Config not seeded, run migrations first: {}", exc)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    log_event("WARN", f"CSRF check failed on {request.method} {request.path}")
                    return failure

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_error_handlers(app)
    register_cli(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def _api_error(exc):
        if exc.status >= 500:
            log_event("ERROR", exc.message)
        return jsonify(exc.to_dict()), exc.status

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(exc):
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return jsonify(error=f"File is too large (maximum {limit_mb} MB)", code="PAYLOAD_TOO_LARGE"), 413

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return jsonify(error=exc.description or exc.name, code=exc.name.upper().replace(" ", "_")), exc.code

    @app.errorhandler(Exception)
    def _unhandled(exc):
        db.session.rollback()
        logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.path)
        log_event("CRITICAL", f"{type(exc).__name__}: {exc}", stack=traceback.format_exc()[:20000])
        return jsonify(error="Internal Server Error", code="INTERNAL_ERROR"), 500


#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("username")
    def make_admin(username):
        """Promote a user to admin by username (bootstrap)."""
        user = User.query.filter_by(username=username.strip()).first()
        if not user:
            click.echo("User not found")
            return
        user.role = "admin"
        db.session.commit()
        click.echo(f"{user.username} promoted to admin")

    @app.cli.command("seed-config")
    def seed_config_command():
        """Insert missing default booking rules."""
        added = seed_config()
        click.echo(f"Added {len(added)} config keys" + (f": {', '.join(added)}" if added else ""))

    @app.cli.command("complete-bookings")
    def complete_bookings_command():
        """Mark confirmed bookings that already ended as completed."""
        count = booking_rules.complete_past_bookings()
        logger.info("{} bookings marked as completed", count)
        click.echo(f"{count} bookings completed")

    @app.cli.command("evaluate-trust-levels")
    @click.option("--apply", "apply_changes", is_flag=True, help="Save the proposed role changes.")
    def evaluate_trust_levels_command(apply_changes):
        """Show (or apply with --apply) trust level promotions and demotions."""
        changes = trust_levels.evaluate()
        for c in changes:
            click.echo(f"{c['username']}: {c['currentRole']} -> {c['newRole']} ({c['reason']})")
        if apply_changes:
            trust_levels.apply_changes(changes)
            click.echo(f"Applied {len(changes)} changes")
        else:
            click.echo(f"{len(changes)} changes proposed, use --apply to save")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
