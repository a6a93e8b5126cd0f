import logging

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate

from config import Config
from routes import (
    health_bp, booking_bp, cancellation_bp, cart_bp, promotion_bp, payments_bp, webhook_bp,
)
from models import db
from models.user import User, Role
from celery_app import celery_init_app
from services.errors import BookingError
from services.hold_reclaimer import release_expired_holds
from utils.seed import seed_roles
from utils.auth_context import load_current_user
from security.csrf import require_csrf

logger = logging.getLogger(__name__)

BLUEPRINTS = (
    health_bp, booking_bp, cancellation_bp, cart_bp, promotion_bp, payments_bp, webhook_bp,
)

# writes here authenticate with something other than the session cookie:
# a Stripe signature or a single-use decision token
CSRF_EXEMPT_PATHS = {
    "/health",
    "/webhooks/stripe",
    "/cancellations/decision",
}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none';",
}


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

    db.init_app(app)
    Migrate(app, db)

    # Periodic hold sweep (beat) and worker tasks
    celery_init_app(app)

    if app.config.get("SEED_ROLES_ON_STARTUP", True):
        with app.app_context():
            seed_roles()

    register_hooks(app)
    register_cli(app)
    return app


def register_hooks(app):
    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return None
        if request.path in CSRF_EXEMPT_PATHS:
            return None
        # guests carry no session cookie, so there is nothing to forge
        if g.get("user") is None:
            return None
        return require_csrf()

    @app.after_request
    def _security_headers(resp):
        for name, value in SECURITY_HEADERS.items():
            resp.headers.setdefault(name, value)
        return resp


def register_cli(app):
    @app.cli.command("grant-role")
    @click.argument("email")
    @click.argument("role_name")
    def grant_role(email, role_name):
        """Give a user a role (CUSTOMER, OWNER or ADMIN) by email."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException(f"No user with email {email}")

        role_name = role_name.strip().upper()
        role = Role.query.filter_by(name=role_name).first()
        if not role:
            raise click.ClickException(f"Unknown role {role_name}; run the app once to seed roles")

        if role not in user.roles:
            user.roles.append(role)
            db.session.commit()
        click.echo(f"{user.email} has {role_name}")

    @app.cli.command("release-holds")
    @click.option("--field-id", type=int, default=None, help="Only sweep one field.")
    def release_holds(field_id):
        """Release expired slot holds now instead of waiting for the beat schedule."""
        released = release_expired_holds(field_id=field_id)
        click.echo(f"Released {released} expired hold(s)")


if __name__ == "__main__":
    create_app().run(host="127.0.0.1", port=5002)
