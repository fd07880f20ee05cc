import logging
import os
import secrets

from flask import (
    Flask,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .models import Certificate, Student  # noqa: E402,F401  registers tables
from .constants import (  # noqa: E402
    BUSY_SETTLE_MS,
    CAPTURE_SETTLE_MS,
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_ADMIN_USERNAME,
    DEFAULT_VERIFY_BASE_URL,
    MOUNT_SETTLE_MS,
    PREVIEW_MAX_WIDTH,
    UNMOUNT_SETTLE_MS,
)
from .entities import format_score  # noqa: E402
from .services.export import ExportBusyError, init_exporter  # noqa: E402
from .shared.passwords import hash_password  # noqa: E402


def _env_number(name: str, default, cast=float):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        logging.warning("[config] %s=%r is not a number; using %s", name, raw, default)
        return default


def _load_config(overrides=None) -> dict:
    site_root = os.getenv("SITE_ROOT", "/srv")
    config = {
        "SECRET_KEY": os.getenv("SECRET_KEY", "dev"),
        "SQLALCHEMY_DATABASE_URI": os.getenv("DATABASE_URL", "sqlite:///:memory:"),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,
        "SITE_ROOT": site_root,
        "EXPORT_DIR": os.getenv("EXPORT_DIR", os.path.join(site_root, "certificates")),
        "VERIFY_BASE_URL": os.getenv("VERIFY_BASE_URL", DEFAULT_VERIFY_BASE_URL),
        "ADMIN_USERNAME": os.getenv("ADMIN_USERNAME", DEFAULT_ADMIN_USERNAME),
        "ADMIN_PASSWORD": os.getenv("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD),
        "ADMIN_PASSWORD_HASH": os.getenv("ADMIN_PASSWORD_HASH"),
        "PREVIEW_MAX_WIDTH": _env_number("PREVIEW_MAX_WIDTH", PREVIEW_MAX_WIDTH),
        "CAPTURE_SCALE": _env_number("CAPTURE_SCALE", 1.0),
        "BUSY_SETTLE_MS": _env_number("BUSY_SETTLE_MS", BUSY_SETTLE_MS, int),
        "CAPTURE_SETTLE_MS": _env_number("CAPTURE_SETTLE_MS", CAPTURE_SETTLE_MS, int),
        "MOUNT_SETTLE_MS": _env_number("MOUNT_SETTLE_MS", MOUNT_SETTLE_MS, int),
        "UNMOUNT_SETTLE_MS": _env_number("UNMOUNT_SETTLE_MS", UNMOUNT_SETTLE_MS, int),
        "SIGNATURE_IMAGE": os.getenv("SIGNATURE_IMAGE") or None,
        "ASSETS_DIR": os.getenv("ASSETS_DIR") or None,
    }
    if overrides:
        config.update(overrides)
    return config


def create_app(overrides=None):
    app = Flask(__name__, template_folder="templates")
    app.config.update(_load_config(overrides))
    app.secret_key = app.config["SECRET_KEY"]
    app.jinja_env.filters["score"] = format_score

    if not app.config.get("ADMIN_PASSWORD_HASH"):
        app.config["ADMIN_PASSWORD_HASH"] = hash_password(app.config["ADMIN_PASSWORD"])
    app.config.pop("ADMIN_PASSWORD", None)

    def generate_csrf_token():
        token = session.get("_csrf_token")
        if not token:
            token = secrets.token_hex(16)
            session["_csrf_token"] = token
        return token

    app.jinja_env.globals["csrf_token"] = generate_csrf_token

    db.init_app(app)
    with app.app_context():
        db.create_all()

    init_exporter(app)

    @app.context_processor
    def inject_user():
        return {
            "is_admin": bool(session.get("is_admin")),
            "admin_username": session.get("admin_username"),
        }

    @app.errorhandler(ExportBusyError)
    def export_busy(exc):
        app.logger.info(f"[cert-export] busy path={request.path}")
        return jsonify({"error": str(exc), "busy": True}), 409

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    @app.get("/")
    def index():
        if session.get("is_admin"):
            return redirect(url_for("dashboard.index"))
        return render_template("index.html")

    from .routes.auth import bp as auth_bp
    from .routes.dashboard import bp as dashboard_bp
    from .routes.certificates import bp as certificates_bp
    from .routes.verify import bp as verify_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(verify_bp)

    return app


app = create_app()
