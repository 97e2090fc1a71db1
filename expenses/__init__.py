import logging
import os
import secrets
import sqlite3
import sys
from datetime import date, datetime, timedelta
from datetime import timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import click
from dotenv import load_dotenv
from flask import Flask, Response, g, render_template, request
from flask_bootstrap import Bootstrap
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from flask_wtf.csrf import CSRFError
from sqlalchemy import event
from werkzeug.security import generate_password_hash

load_dotenv()
db = SQLAlchemy()
login_manager = LoginManager()
login_manager.login_view = "auth.login"
storage_uri = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
limiter = Limiter(key_func=get_remote_address, storage_uri=storage_uri)


def _get_bool_env(var_name: str, default: bool = False) -> bool:
    """Return a boolean environment variable value."""

    value = os.getenv(var_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


DEFAULT_CSP_TEMPLATE = (
    "default-src 'self'; "
    "img-src 'self' data:; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "script-src 'self' https://cdn.jsdelivr.net 'nonce-{nonce}'; "
    "font-src 'self' data:; "
    "connect-src 'self'; "
    "frame-ancestors 'self'; "
    "form-action 'self'; "
    "object-src 'none'; "
    "base-uri 'self'"
)
DEFAULT_TIMEZONE = "America/Sao_Paulo"
DEFAULT_REPORT_TITLE = "EJC - Relatório de Custos"
NAV_LINKS = {
    "main.home": "Dashboard",
    "purchase.register_purchase": "Registrar Compra",
    "purchase.view_purchases": "Lista de Compras",
    "report.view_report": "Relatórios",
}


def _register_sqlite_functions(dbapi_connection, connection_record):
    """Replace SQLite's ASCII-only ``lower`` so ``ilike`` folds accents."""

    if isinstance(dbapi_connection, sqlite3.Connection):
        dbapi_connection.create_function(
            "lower",
            1,
            lambda value: value.lower() if isinstance(value, str) else value,
            deterministic=True,
        )


@login_manager.user_loader
def load_user(user_id):
    """Retrieve a user by ID for Flask-Login."""
    from expenses.models import User

    return db.session.get(User, int(user_id))


def create_admin_user():
    """Ensure an admin user exists for the application."""
    from expenses.models import User

    # Tables may not exist yet on first run or in tests.
    db.create_all()

    admin_exists = User.query.filter_by(is_admin=True).first()
    if not admin_exists:
        admin_email = os.getenv("ADMIN_EMAIL")
        raw_password = os.getenv("ADMIN_PASS")
        if raw_password is None:
            raise RuntimeError("ADMIN_PASS environment variable not set")
        admin_user = User(
            email=admin_email,
            password=generate_password_hash(raw_password),
            is_admin=True,
            active=True,
        )

        db.session.add(admin_user)
        db.session.commit()
        logging.getLogger(__name__).info("Admin user %s created.", admin_email)


def _register_commands(app: Flask) -> None:
    @app.cli.command("seed-teams")
    def seed_teams_command():
        """Create the default event teams that do not exist yet."""
        from expenses.services.teams import seed_teams

        created = seed_teams()
        click.echo(f"{len(created)} team(s) created.")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("password")
    @click.option("--admin", is_flag=True, default=False)
    def create_user_command(email, password, admin):
        """Create an active user account."""
        from expenses.models import User

        if User.query.filter_by(email=email).first() is not None:
            raise click.ClickException(f"User {email} already exists.")
        db.session.add(
            User(
                email=email,
                password=generate_password_hash(password),
                is_admin=admin,
                active=True,
            )
        )
        db.session.commit()
        click.echo(f"User {email} created.")


def create_app(args: list):
    """Application factory used by Flask."""
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY")
    default_secure_cookies = "--demo" not in args
    session_cookie_secure = _get_bool_env(
        "SESSION_COOKIE_SECURE", default=default_secure_cookies
    )
    enforce_https = _get_bool_env("ENFORCE_HTTPS", default=False)
    app.config["ENFORCE_HTTPS"] = enforce_https
    app.config.update(
        SESSION_COOKIE_SECURE=session_cookie_secure,
        REMEMBER_COOKIE_SECURE=session_cookie_secure,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=timedelta(hours=8),
    )
    app.config["DEFAULT_TIMEZONE"] = os.getenv(
        "DEFAULT_TIMEZONE", DEFAULT_TIMEZONE
    )
    app.config["REPORT_TITLE"] = os.getenv("REPORT_TITLE", DEFAULT_REPORT_TITLE)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    app.logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Absolute paths keep the database location stable if the working
    # directory changes after app creation.
    base_dir = os.getcwd()
    default_db_path = os.path.join(base_dir, "expenses.db")
    db_path = os.getenv("DATABASE_PATH", default_db_path)
    if os.path.isdir(db_path):
        db_path = os.path.join(db_path, "expenses.db")

    db_path = os.path.abspath(db_path)
    os.makedirs(os.path.dirname(db_path), exist_ok=True)
    app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"

    app.config["DEMO"] = "--demo" in args

    db.init_app(app)
    with app.app_context():
        event.listen(db.engine, "connect", _register_sqlite_functions)
    from flask_migrate import Migrate

    Migrate(app, db)
    login_manager.init_app(app)
    app.config["RATELIMIT_ENABLED"] = _get_bool_env(
        "RATELIMIT_ENABLED", default=True
    )
    limiter.init_app(app)
    # The CSP only allows same-origin scripts and cdn.jsdelivr.net.
    app.config["BOOTSTRAP_SERVE_LOCAL"] = True
    Bootstrap(app)

    from flask_login import current_user

    from expenses.auth import AuthEvent, AuthSessionManager
    from expenses.utils import formatting
    from expenses.utils.activity import log_activity

    auth_manager = AuthSessionManager(app)

    def record_auth_event(event, snapshot):
        label = "Logged in" if event is AuthEvent.SIGNED_IN else "Logged out"
        log_activity(label, snapshot.user_id)

    auth_manager.subscribe(record_auth_event)

    def format_datetime(value, fmt="%d/%m/%Y %H:%M:%S"):
        if value is None:
            return ""
        tz_name = getattr(current_user, "timezone", None)
        if not tz_name:
            tz_name = app.config.get("DEFAULT_TIMEZONE") or "UTC"
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            tz = ZoneInfo("UTC")
        if isinstance(value, date) and not isinstance(value, datetime):
            value = datetime.combine(value, datetime.min.time())
            value = value.replace(tzinfo=dt_timezone.utc)
        elif value.tzinfo is None:
            value = value.replace(tzinfo=dt_timezone.utc)
        if sys.platform.startswith("win"):
            fmt = fmt.replace("%-", "%#")
        return value.astimezone(tz).strftime(fmt)

    app.jinja_env.filters["format_datetime"] = format_datetime
    app.jinja_env.filters["currency"] = formatting.format_currency
    app.jinja_env.filters["br_date"] = formatting.format_date
    app.jinja_env.filters["truncate_name"] = formatting.truncate_name

    @app.context_processor
    def inject_nav_links():
        """Provide navigation labels to templates."""
        return dict(NAV_LINKS=NAV_LINKS)

    @app.context_processor
    def inject_pagination_sizes():
        """Expose pagination size options to all templates."""
        from expenses.utils.pagination import PAGINATION_SIZES

        return {"PAGINATION_SIZES": PAGINATION_SIZES}

    @app.before_request
    def set_csp_nonce():
        """Generate a nonce for inline scripts allowed by the CSP."""

        g.csp_nonce = secrets.token_urlsafe(16)

    @app.after_request
    def apply_security_headers(response):
        """Attach standard security headers to every response."""
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if request.is_secure or app.config.get("ENFORCE_HTTPS", False):
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains; preload",
            )
        nonce = getattr(g, "csp_nonce", "")
        if not nonce:
            nonce = secrets.token_urlsafe(16)
            g.csp_nonce = nonce
        csp_template = app.config.get(
            "CONTENT_SECURITY_POLICY", DEFAULT_CSP_TEMPLATE
        )
        try:
            csp = csp_template.format(nonce=nonce)
        except (KeyError, IndexError, ValueError):
            csp = csp_template
        response.headers.setdefault("Content-Security-Policy", csp)
        return response

    @app.context_processor
    def inject_csp_nonce():
        """Expose the CSP nonce to templates for inline scripts."""

        return {"csp_nonce": getattr(g, "csp_nonce", "")}

    @app.before_request
    def block_http_options():
        """Return a 405 for HTTP OPTIONS requests to reduce information leakage."""
        if request.method == "OPTIONS":
            return Response(status=405)

    @app.route("/.well-known/security.txt")
    def security_txt():
        """Provide contact details for responsible disclosure."""
        contact_email = os.getenv("SECURITY_CONTACT_EMAIL") or os.getenv(
            "ADMIN_EMAIL", "security@example.com"
        )
        policy_url = os.getenv("SECURITY_POLICY_URL", "https://example.com/security")
        lines = [
            f"Contact: mailto:{contact_email}",
            f"Policy: {policy_url}",
            "Preferred-Languages: pt-BR, en",
        ]
        return Response("\n".join(lines) + "\n", mimetype="text/plain")

    _register_commands(app)

    with app.app_context():
        # Create the schema on start so the app runs before migrations do.
        from . import models  # noqa: F401

        db.create_all()

        from expenses.routes.auth_routes import auth
        from expenses.routes.main_routes import main
        from expenses.routes.purchase_routes import purchase
        from expenses.routes.report_routes import report

        app.register_blueprint(auth, url_prefix="/auth")
        app.register_blueprint(main)
        app.register_blueprint(purchase)
        app.register_blueprint(report)
        from sqlalchemy.exc import OperationalError

        from expenses.models import Setting

        try:
            tz_value = Setting.get_value("DEFAULT_TIMEZONE")
            if tz_value:
                app.config["DEFAULT_TIMEZONE"] = tz_value
            title_value = Setting.get_value("REPORT_TITLE")
            if title_value:
                app.config["REPORT_TITLE"] = title_value
        except OperationalError:
            app.logger.warning("Settings table unavailable; using defaults.")

        CSRFProtect(app)

        @app.errorhandler(CSRFError)
        def handle_csrf_error(error):
            """Render a helpful page when CSRF validation fails."""
            return (
                render_template(
                    "errors/csrf_error.html",
                    reason=error.description,
                ),
                400,
            )

    return app
